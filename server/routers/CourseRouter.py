from fastapi import APIRouter, Depends, Query, Request

from server.dependencies.auth import verify_api_key
from server.models.responses import ContextCacheStatusResponse
from shared.models.lifecycle import CleanupResult

router = APIRouter(prefix="/courses", tags=["courses"])


@router.delete("/{course_id}")
async def cleanup_course(
    request: Request,
    course_id: str,
    organization_id: str = Query(...),
    _: None = Depends(verify_api_key),
) -> CleanupResult:
    """Remove every course-scoped resource of a course.

    Partial failures do not fail the request; callers must inspect
    ``success`` and ``errors`` of the returned result.

    Args:
        request (Request): FastAPI request (provides app.state.cleanup_service).
        course_id (str): Course being deleted.
        organization_id (str): Tenant owning the course.
        _ (None): Auth dependency result (unused).

    Returns:
        CleanupResult: Per-resource outcomes.
    """
    return await request.app.state.cleanup_service.cleanup_course(course_id, organization_id)


@router.get("/{course_id}/context-cache")
async def get_context_cache_status(
    request: Request,
    course_id: str,
    _: None = Depends(verify_api_key),
) -> ContextCacheStatusResponse:
    entries = await request.app.state.cleanup_service.get_context_count(course_id)
    return ContextCacheStatusResponse(course_id=course_id, entries=entries, has_context=entries > 0)
