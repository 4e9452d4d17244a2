from fastapi import APIRouter, Depends, File, Form, Request, UploadFile

from server.dependencies.auth import verify_api_key
from server.models.requests import DuplicateVectorsRequest, VectorStatusRequest
from server.models.responses import DuplicateVectorsResponse, VectorStatusResponse
from shared.models.lifecycle import DeleteResult, UploadMetadata, UploadResult

router = APIRouter(prefix="/files", tags=["files"])


@router.post("")
async def upload_file(
    request: Request,
    file: UploadFile = File(...),
    organization_id: str = Form(...),
    course_id: str = Form(...),
    user_id: str | None = Form(None),
    _: None = Depends(verify_api_key),
) -> UploadResult:
    """Store an uploaded file, reusing identical content that is already indexed.

    Args:
        request (Request): FastAPI request (provides app.state.lifecycle_service).
        file (UploadFile): The multipart file part.
        organization_id (str): Tenant of the upload.
        course_id (str): Course of the upload.
        user_id (str | None): Uploading user, informational only.
        _ (None): Auth dependency result (unused).

    Returns:
        UploadResult: Whether the content was deduplicated and the new file id.
    """
    data = await file.read()
    metadata = UploadMetadata(
        filename=file.filename or "upload",
        organization_id=organization_id,
        course_id=course_id,
        mime_type=file.content_type or "application/octet-stream",
        user_id=user_id,
    )
    return await request.app.state.lifecycle_service.handle_upload(data, metadata)


@router.delete("/{file_id}")
async def delete_file(
    request: Request,
    file_id: str,
    _: None = Depends(verify_api_key),
) -> DeleteResult:
    """Delete one file reference; the content is freed with its last reference."""
    return await request.app.state.lifecycle_service.handle_delete(file_id)


@router.patch("/{file_id}/vector-status")
async def update_vector_status(
    request: Request,
    file_id: str,
    body: VectorStatusRequest,
    _: None = Depends(verify_api_key),
) -> VectorStatusResponse:
    record = await request.app.state.lifecycle_service.set_vector_status(file_id, body.vector_status)
    return VectorStatusResponse(file_id=record.id, vector_status=record.vector_status)


@router.post("/{file_id}/vectors/duplicate")
async def duplicate_vectors(
    request: Request,
    file_id: str,
    body: DuplicateVectorsRequest,
    _: None = Depends(verify_api_key),
) -> DuplicateVectorsResponse:
    """Copy the vectors of file_id to another record without re-embedding (administrative re-index)."""
    count = await request.app.state.lifecycle_service.duplicate_vectors(
        donor_file_id=file_id,
        new_file_id=body.new_file_id,
        new_course_id=body.new_course_id,
        new_organization_id=body.new_organization_id,
    )
    return DuplicateVectorsResponse(vectors_duplicated=count)
