from pydantic import BaseModel, computed_field


class OrganizationQuota(BaseModel):
    """Storage accounting of one tenant."""

    organization_id: str
    storage_used_bytes: int
    storage_quota_bytes: int

    @computed_field
    @property
    def available_bytes(self) -> int:
        return max(self.storage_quota_bytes - self.storage_used_bytes, 0)

    @computed_field
    @property
    def usage_percentage(self) -> float:
        if self.storage_quota_bytes <= 0:
            return 0.0
        return min(round(self.storage_used_bytes / self.storage_quota_bytes * 100, 2), 100.0)

    @property
    def is_over_quota(self) -> bool:
        return self.storage_used_bytes > self.storage_quota_bytes


class DeduplicationStats(BaseModel):
    """Per-tenant effect of content deduplication.

    Attributes:
        original_files:      Records owning physical bytes.
        reference_files:     Records pointing at another record's bytes.
        storage_saved_bytes: Bytes not written to disk thanks to references.
        total_storage_bytes: Bytes charged to the tenant's quota.
    """

    organization_id: str
    original_files: int = 0
    reference_files: int = 0
    storage_saved_bytes: int = 0
    total_storage_bytes: int = 0
