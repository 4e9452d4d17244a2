from fastapi import APIRouter, Depends, Request

from server.dependencies.auth import verify_api_key
from shared.clients.catalog.models.Organization import DeduplicationStats, OrganizationQuota

router = APIRouter(prefix="/organizations", tags=["organizations"])


@router.get("/{organization_id}/quota")
async def get_quota(
    request: Request,
    organization_id: str,
    _: None = Depends(verify_api_key),
) -> OrganizationQuota:
    return await request.app.state.quota_ledger.get_quota(organization_id)


@router.get("/{organization_id}/deduplication-stats")
async def get_deduplication_stats(
    request: Request,
    organization_id: str,
    _: None = Depends(verify_api_key),
) -> DeduplicationStats:
    """Report how many files and bytes the tenant saved through deduplication."""
    return await request.app.state.lifecycle_service.get_deduplication_stats(organization_id)
