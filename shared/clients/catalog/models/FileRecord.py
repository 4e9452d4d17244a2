"""FileRecord model: one reference to uploaded content within one course."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class VectorStatus(str, Enum):
    PENDING = "pending"
    INDEXING = "indexing"
    INDEXED = "indexed"
    FAILED = "failed"


# allowed vector_status transitions; writing the current status again is always allowed
VECTOR_STATUS_TRANSITIONS: dict[VectorStatus, set[VectorStatus]] = {
    VectorStatus.PENDING: {VectorStatus.INDEXING, VectorStatus.FAILED},
    VectorStatus.INDEXING: {VectorStatus.INDEXED, VectorStatus.FAILED},
    VectorStatus.INDEXED: set(),
    VectorStatus.FAILED: {VectorStatus.PENDING},
}


def is_valid_transition(current: VectorStatus, target: VectorStatus) -> bool:
    """Check a vector_status change against the lifecycle state machine."""
    return current == target or target in VECTOR_STATUS_TRANSITIONS[current]


class FileRecordCreate(BaseModel):
    """Column values for inserting a FileRecord. The id is generated by the catalog.

    reference_count is only sent for originals; a reference record's count is
    not authoritative and is left to the column default.
    """

    model_config = ConfigDict(populate_by_name=True)

    organization_id: str
    course_id: str
    filename: str
    file_type: str
    file_size: int
    storage_path: str
    content_fingerprint: str = Field(alias="hash")
    mime_type: str
    vector_status: VectorStatus
    original_file_id: str | None = None
    reference_count: int | None = None
    parsed_content: Any = None
    markdown_content: str | None = None

    def to_row(self) -> dict:
        """Serialize to the catalog's column names, omitting unset optional columns."""
        row = self.model_dump(mode="json", by_alias=True)
        if row["reference_count"] is None:
            row.pop("reference_count")
        return row


class FileRecord(BaseModel):
    """A row of the file catalog.

    Attributes:
        id:                  Catalog-generated identifier.
        organization_id:     Tenant owning this reference.
        course_id:           Course this reference belongs to.
        filename:            Name as uploaded.
        mime_type:           MIME type as uploaded.
        file_type:           Lower-cased extension.
        file_size:           Byte length of the content.
        content_fingerprint: SHA-256 of the raw bytes (column "hash").
        storage_path:        Location of the physical bytes, shared by all references.
        original_file_id:    None on the original; the original's id on a reference.
        reference_count:     Authoritative only on the original.
        vector_status:       Vector generation stage of this record's own vectors.
        parsed_content:      Cached parse result, copied into references.
        markdown_content:    Cached markdown rendition, copied into references.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    organization_id: str
    course_id: str
    filename: str
    mime_type: str = ""
    file_type: str = ""
    file_size: int
    content_fingerprint: str = Field(alias="hash")
    storage_path: str
    original_file_id: str | None = None
    reference_count: int = 1
    vector_status: VectorStatus = VectorStatus.PENDING
    parsed_content: Any = None
    markdown_content: str | None = None
    created_at: str | None = None
    updated_at: str | None = None

    @property
    def is_original(self) -> bool:
        return self.original_file_id is None

    @property
    def owner_id(self) -> str:
        """ID of the record that owns the physical bytes (self for an original)."""
        return self.id if self.original_file_id is None else self.original_file_id
