"""Request and response bodies of the upload API."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field

from course_uploads.models.enums import UploadStatus


class InitiateUploadBody(BaseModel):
    file_name: str = Field(..., min_length=1, max_length=1024)
    file_size: int = Field(..., description="Total file size in bytes")
    mime_type: str
    part_size: int = Field(..., description="Size of every part but the last, in bytes")
    total_parts: int
    title: Optional[str] = Field(default=None, max_length=255)
    auto_detect_duration: bool = False
    provided_duration: Optional[float] = Field(default=None, description="Clip length in seconds")


class PartUrlsBody(BaseModel):
    part_numbers: list[int] = Field(..., min_length=1)


class RecordPartBody(BaseModel):
    receipt_tag: str = Field(..., description="ETag returned by object storage for the part")
    size_bytes: Optional[int] = None


class CompletedPartBody(BaseModel):
    part_number: int
    receipt_tag: str


class CompleteUploadBody(BaseModel):
    parts: Optional[list[CompletedPartBody]] = Field(
        default=None, description="Defaults to the parts recorded through the API"
    )
    duration: Optional[float] = None


class AbortUploadBody(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=1024)


class ResponseModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class InitiateUploadResponse(ResponseModel):
    session_id: UUID
    upload_id: str
    storage_key: str
    part_size: int
    total_parts: int
    expires_at: datetime


class PartUploadUrlResponse(ResponseModel):
    part_number: int
    url: str


class PartUrlsResponse(ResponseModel):
    session_id: UUID
    status: UploadStatus
    expires_in: int
    urls: list[PartUploadUrlResponse]


class UploadedPartResponse(ResponseModel):
    part_number: int
    receipt_tag: str
    size_bytes: Optional[int] = None
    uploaded_at: datetime


class RecordPartResponse(ResponseModel):
    session_id: UUID
    status: UploadStatus
    parts: list[UploadedPartResponse]
    remaining_parts: int


class VideoResponse(ResponseModel):
    video_id: UUID
    course_id: UUID
    title: str
    video_url: str
    storage_key: str
    duration: int
    order: int
    uploaded_at: datetime
    file_size: Optional[int] = None


class CompleteUploadResponse(ResponseModel):
    session_id: UUID
    status: UploadStatus
    video: VideoResponse
    completed_at: Optional[datetime] = None
    resolved_duration: int


class AbortUploadResponse(ResponseModel):
    session_id: UUID
    status: UploadStatus
    reason: str


class UploadSessionResponse(ResponseModel):
    session_id: UUID
    course_id: UUID
    instructor_id: str
    initiator_role: str
    title: str
    file_name: str
    file_size: int
    mime_type: str
    part_size: int
    total_parts: int
    storage_key: Optional[str] = None
    status: UploadStatus
    auto_detect_duration: bool
    provided_duration: Optional[int] = None
    resolved_duration: Optional[int] = None
    error_message: Optional[str] = None
    expires_at: datetime
    completed_at: Optional[datetime] = None
    video_id: Optional[UUID] = None
    parts: list[UploadedPartResponse]
    remaining_parts: int
