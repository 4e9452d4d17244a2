from pydantic import BaseModel

from shared.clients.catalog.models.FileRecord import VectorStatus


class VectorStatusResponse(BaseModel):
    file_id: str
    vector_status: VectorStatus


class DuplicateVectorsResponse(BaseModel):
    vectors_duplicated: int


class ErrorResponse(BaseModel):
    detail: str


class ContextCacheStatusResponse(BaseModel):
    course_id: str
    entries: int
    has_context: bool
