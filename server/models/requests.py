from pydantic import BaseModel

from shared.clients.catalog.models.FileRecord import VectorStatus


class VectorStatusRequest(BaseModel):
    vector_status: VectorStatus


class DuplicateVectorsRequest(BaseModel):
    new_file_id: str
    new_course_id: str
    new_organization_id: str
