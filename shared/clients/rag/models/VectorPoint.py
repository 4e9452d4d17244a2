"""VectorPoint model: metadata stored alongside each embedded course chunk."""

from pydantic import BaseModel, ConfigDict


class VectorPoint(BaseModel):
    """Payload stored alongside each vector chunk in the vector index.

    The three tenancy tags are mandatory on every point: deletes and reads are
    always filtered by document_id and/or course_id, and a point must never be
    reachable through another FileRecord's tags. Fields written by the
    processing pipeline that are not modelled here are kept verbatim.

    Attributes:
        document_id:      ID of the FileRecord owning this point.
        course_id:        Course the owning FileRecord belongs to.
        organization_id:  Tenant of the owning FileRecord.
        chunk_id:         Stable chunk identifier within the document; with
                          document_id it determines the point ID.
        content:          Text of the chunk.
        heading_path:     Breadcrumb of headings above the chunk.
        chapter:          Top-level chapter title, if detected.
        page_number:      Source page of the chunk, if known.
        has_code:         The chunk contains a code block.
        has_table:        The chunk contains a table.
        has_images:       The chunk references images.
        indexed_at:       ISO-8601 timestamp of when the point was written.
        last_updated:     ISO-8601 timestamp of the last payload change.
    """

    model_config = ConfigDict(extra="allow")

    # Tenancy tags, never None
    document_id: str
    course_id: str
    organization_id: str

    # Chunk identity
    chunk_id: str | int | None = None

    # Content and structure
    content: str | None = None
    heading_path: str | None = None
    chapter: str | None = None
    page_number: int | None = None
    has_code: bool = False
    has_table: bool = False
    has_images: bool = False

    # Timestamps
    indexed_at: str | None = None
    last_updated: str | None = None
