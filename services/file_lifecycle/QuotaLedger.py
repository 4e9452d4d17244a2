"""Per-tenant storage accounting.

Every change is one atomic delta on the catalog. Increments are checked after
they are applied and compensated when they overshoot, so the stored usage
never stays above the quota once a call returns.
"""

from shared.clients.catalog.CatalogClientInterface import CatalogClientInterface
from shared.clients.catalog.models.Organization import OrganizationQuota
from shared.helper.HelperConfig import HelperConfig
from shared.models.errors import QuotaExceededError


class QuotaLedger:
    def __init__(self, helper_config: HelperConfig, catalog_client: CatalogClientInterface) -> None:
        self.logging = helper_config.get_logger()
        self._catalog = catalog_client

    @staticmethod
    def _validate(organization_id: str, size_bytes: int) -> None:
        if not organization_id:
            raise ValueError("Invalid organizationId: must be a non-empty string.")
        if size_bytes <= 0:
            raise ValueError(f"Invalid fileSize: must be a positive integer, got {size_bytes}.")

    async def adjust(self, organization_id: str, delta_bytes: int) -> OrganizationQuota:
        """Apply a signed storage delta to a tenant.

        Args:
            organization_id (str): Tenant to charge or credit.
            delta_bytes (int): Positive to charge, negative to credit. Zero is a no-op read.

        Returns:
            OrganizationQuota: Accounting after the call.

        Raises:
            QuotaExceededError: If a charge overshot the quota; the charge has been rolled back.
            OrganizationNotFoundError: If the tenant does not exist.
        """
        if delta_bytes == 0:
            return await self._catalog.do_get_organization_quota(organization_id)

        quota = await self._catalog.do_adjust_organization_storage(organization_id, delta_bytes)
        if delta_bytes < 0 or not quota.is_over_quota:
            self.logging.debug(
                "Storage for organization %s adjusted by %d bytes: %d / %d",
                organization_id, delta_bytes, quota.storage_used_bytes, quota.storage_quota_bytes,
            )
            return quota

        # roll back the charge before reporting, the stored value must not stay over quota
        restored = await self._catalog.do_adjust_organization_storage(organization_id, -delta_bytes)
        self.logging.warning(
            "Storage quota exceeded for organization %s: %d / %d bytes after +%d, rolled back to %d",
            organization_id, quota.storage_used_bytes, quota.storage_quota_bytes, delta_bytes, restored.storage_used_bytes,
        )
        raise QuotaExceededError(
            organization_id=organization_id,
            used_bytes=quota.storage_used_bytes,
            quota_bytes=quota.storage_quota_bytes,
            requested_bytes=delta_bytes,
        )

    async def increment(self, organization_id: str, size_bytes: int) -> OrganizationQuota:
        self._validate(organization_id, size_bytes)
        return await self.adjust(organization_id, size_bytes)

    async def decrement(self, organization_id: str, size_bytes: int) -> OrganizationQuota:
        self._validate(organization_id, size_bytes)
        return await self.adjust(organization_id, -size_bytes)

    async def get_quota(self, organization_id: str) -> OrganizationQuota:
        return await self._catalog.do_get_organization_quota(organization_id)

    async def check(self, organization_id: str, size_bytes: int) -> bool:
        """Dry run: would charging size_bytes stay within the quota right now?"""
        self._validate(organization_id, size_bytes)
        quota = await self._catalog.do_get_organization_quota(organization_id)
        return quota.storage_used_bytes + size_bytes <= quota.storage_quota_bytes
