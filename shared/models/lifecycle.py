"""Inputs and results of the upload, delete and course cleanup flows."""

from datetime import datetime

from pydantic import BaseModel

from shared.clients.catalog.models.FileRecord import VectorStatus


class UploadMetadata(BaseModel):
    filename: str
    organization_id: str
    course_id: str
    mime_type: str
    user_id: str | None = None


class UploadResult(BaseModel):
    """Which path an upload took.

    Attributes:
        file_id:            ID of the created FileRecord.
        deduplicated:       True if existing content was reused.
        original_file_id:   The donor's ID when deduplicated.
        vector_status:      Status of the new record's vectors.
        vectors_duplicated: Points copied from the donor when deduplicated.
    """

    file_id: str
    deduplicated: bool
    original_file_id: str | None = None
    vector_status: VectorStatus
    vectors_duplicated: int | None = None


class DeleteResult(BaseModel):
    """Outcome of removing one file reference.

    remaining_references comes from the atomic decrement and is authoritative
    even when the physical deletion failed.
    """

    physical_file_deleted: bool
    remaining_references: int
    vectors_deleted: int
    storage_freed_bytes: int


class ResourceResult(BaseModel):
    """Outcome of one best-effort sub-operation. Never raised, always returned."""

    resource: str
    success: bool
    deleted_count: int = 0
    error: str | None = None


class CleanupResult(BaseModel):
    """Aggregate outcome of a course teardown.

    success covers vectors, cache, context_cache and blob_storage; the parse
    cache is an optimisation and only contributes to errors.
    """

    course_id: str
    organization_id: str
    success: bool
    vectors: ResourceResult
    cache: ResourceResult
    context_cache: ResourceResult
    blob_storage: ResourceResult
    parse_cache: ResourceResult
    errors: list[str] = []


class ContextCleanupResult(BaseModel):
    course_id: str
    success: bool
    deleted_count: int = 0
    error: str | None = None


class BulkCleanupResult(BaseModel):
    """Outcome of one sweep over expired retrieval contexts.

    With dry_run the counts are what would have been deleted.
    """

    total_deleted: int
    courses_processed: int
    dry_run: bool
    results: list[ContextCleanupResult] = []
    errors: list[str] = []
    timestamp: datetime
