from fastapi import APIRouter, Depends, Query, Request

from server.dependencies.auth import verify_api_key
from shared.models.lifecycle import BulkCleanupResult

router = APIRouter(prefix="/maintenance", tags=["maintenance"])


@router.post("/context-cache/cleanup")
async def cleanup_expired_contexts(
    request: Request,
    expiration_hours: float | None = Query(None, ge=0),
    dry_run: bool = Query(False),
    _: None = Depends(verify_api_key),
) -> BulkCleanupResult:
    """Sweep expired retrieval contexts of all courses, for a scheduler to call.

    Args:
        request (Request): FastAPI request (provides app.state.cleanup_service).
        expiration_hours (float | None): Minimum age of expired entries; the configured default when omitted.
        dry_run (bool): Only report what would be deleted.
        _ (None): Auth dependency result (unused).

    Returns:
        BulkCleanupResult: Per-course outcomes and collected errors.
    """
    return await request.app.state.cleanup_service.cleanup_expired_contexts(
        expiration_hours=expiration_hours, dry_run=dry_run,
    )
