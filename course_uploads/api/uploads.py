"""Course video upload endpoints.

Clients upload part bytes straight to object storage through the URLs handed
out here; these endpoints only coordinate the multipart session.
"""

import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter
from fastapi import Depends
from fastapi import Path
from starlette import status

from course_uploads.api.schemas import AbortUploadBody
from course_uploads.api.schemas import AbortUploadResponse
from course_uploads.api.schemas import CompleteUploadBody
from course_uploads.api.schemas import CompleteUploadResponse
from course_uploads.api.schemas import InitiateUploadBody
from course_uploads.api.schemas import InitiateUploadResponse
from course_uploads.api.schemas import PartUrlsBody
from course_uploads.api.schemas import PartUrlsResponse
from course_uploads.api.schemas import RecordPartBody
from course_uploads.api.schemas import RecordPartResponse
from course_uploads.api.schemas import UploadSessionResponse
from course_uploads.dependencies import get_caller
from course_uploads.dependencies import get_upload_service
from course_uploads.models.caller import Caller
from course_uploads.services.upload_session_service import UploadSessionService
from course_uploads.services.upload_types import InitiateUploadRequest
from course_uploads.services.upload_types import PartReceipt


logger = logging.getLogger(__name__)
router = APIRouter(tags=["video-uploads"])


@router.post(
    "/courses/{course_id}/video-uploads",
    status_code=status.HTTP_201_CREATED,
    response_model=InitiateUploadResponse,
)
async def initiate_upload(
    body: InitiateUploadBody,
    course_id: UUID = Path(..., description="Course receiving the video"),
    caller: Caller = Depends(get_caller),
    service: UploadSessionService = Depends(get_upload_service),
) -> InitiateUploadResponse:
    """Open a multipart upload session for a new course video."""
    result = await service.initiate_upload(
        course_id,
        caller,
        InitiateUploadRequest(
            file_name=body.file_name,
            file_size=body.file_size,
            mime_type=body.mime_type,
            part_size=body.part_size,
            total_parts=body.total_parts,
            title=body.title,
            auto_detect_duration=body.auto_detect_duration,
            provided_duration=body.provided_duration,
        ),
    )
    return InitiateUploadResponse.model_validate(result)


@router.post("/video-uploads/{session_id}/part-urls", response_model=PartUrlsResponse)
async def get_part_upload_urls(
    body: PartUrlsBody,
    session_id: UUID,
    caller: Caller = Depends(get_caller),
    service: UploadSessionService = Depends(get_upload_service),
) -> PartUrlsResponse:
    """Presigned PUT URLs for the requested part numbers."""
    result = await service.get_part_upload_urls(session_id, caller, body.part_numbers)
    return PartUrlsResponse.model_validate(result)


@router.put("/video-uploads/{session_id}/parts/{part_number}", response_model=RecordPartResponse)
async def record_uploaded_part(
    body: RecordPartBody,
    session_id: UUID,
    part_number: int,
    caller: Caller = Depends(get_caller),
    service: UploadSessionService = Depends(get_upload_service),
) -> RecordPartResponse:
    """Record the storage receipt of an uploaded part. Re-recording a part replaces its receipt."""
    result = await service.record_uploaded_part(session_id, caller, part_number, body.receipt_tag, body.size_bytes)
    return RecordPartResponse.model_validate(result)


@router.post("/video-uploads/{session_id}/complete", response_model=CompleteUploadResponse)
async def complete_upload(
    session_id: UUID,
    body: Optional[CompleteUploadBody] = None,
    caller: Caller = Depends(get_caller),
    service: UploadSessionService = Depends(get_upload_service),
) -> CompleteUploadResponse:
    """
    Finalize the object in storage and append the video to the course.

    Calling this again on a completed session returns the same video.
    """
    body = body or CompleteUploadBody()
    parts = None
    if body.parts is not None:
        parts = [PartReceipt(part_number=p.part_number, receipt_tag=p.receipt_tag) for p in body.parts]
    result = await service.complete_upload(session_id, caller, parts=parts, duration=body.duration)
    return CompleteUploadResponse.model_validate(result)


@router.post("/video-uploads/{session_id}/abort", response_model=AbortUploadResponse)
async def abort_upload(
    session_id: UUID,
    body: Optional[AbortUploadBody] = None,
    caller: Caller = Depends(get_caller),
    service: UploadSessionService = Depends(get_upload_service),
) -> AbortUploadResponse:
    result = await service.abort_upload(session_id, caller, reason=body.reason if body else None)
    return AbortUploadResponse.model_validate(result)


@router.get("/video-uploads/{session_id}", response_model=UploadSessionResponse)
async def get_upload_session(
    session_id: UUID,
    caller: Caller = Depends(get_caller),
    service: UploadSessionService = Depends(get_upload_service),
) -> UploadSessionResponse:
    result = await service.get_upload_session(session_id, caller)
    return UploadSessionResponse.model_validate(result)
