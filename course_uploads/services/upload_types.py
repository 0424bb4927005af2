from __future__ import annotations

from dataclasses import dataclass
from dataclasses import field
from datetime import datetime
from typing import Optional
from uuid import UUID

from course_uploads.models.course import CourseVideoDB
from course_uploads.models.enums import UploadStatus
from course_uploads.models.upload_session import UploadSessionDB
from course_uploads.models.upload_session_part import UploadSessionPartDB


@dataclass
class InitiateUploadRequest:
    file_name: str
    file_size: int
    mime_type: str
    part_size: int
    total_parts: int
    title: Optional[str] = None
    auto_detect_duration: bool = False
    provided_duration: Optional[float] = None


@dataclass(frozen=True)
class PartReceipt:
    part_number: int
    receipt_tag: str
    size_bytes: Optional[int] = None


@dataclass
class InitiateUploadResult:
    session_id: UUID
    upload_id: str
    storage_key: str
    part_size: int
    total_parts: int
    expires_at: datetime


@dataclass
class PartUploadUrl:
    part_number: int
    url: str


@dataclass
class PartUrlsResult:
    session_id: UUID
    status: UploadStatus
    expires_in: int
    urls: list[PartUploadUrl] = field(default_factory=list)


@dataclass
class UploadedPart:
    part_number: int
    receipt_tag: str
    size_bytes: Optional[int]
    uploaded_at: datetime

    @classmethod
    def from_db(cls, part: UploadSessionPartDB) -> "UploadedPart":
        return cls(
            part_number=part.part_number,
            receipt_tag=part.receipt_tag,
            size_bytes=part.size_bytes,
            uploaded_at=part.uploaded_at,
        )


@dataclass
class RecordPartResult:
    session_id: UUID
    status: UploadStatus
    parts: list[UploadedPart]
    remaining_parts: int


@dataclass
class VideoRef:
    video_id: UUID
    course_id: UUID
    title: str
    video_url: str
    storage_key: str
    duration: int
    order: int
    uploaded_at: datetime
    file_size: Optional[int]

    @classmethod
    def from_db(cls, video: CourseVideoDB) -> "VideoRef":
        return cls(
            video_id=video.video_id,
            course_id=video.course_id,
            title=video.title,
            video_url=video.video_url,
            storage_key=video.storage_key,
            duration=video.duration,
            order=video.order,
            uploaded_at=video.uploaded_at,
            file_size=video.file_size,
        )


@dataclass
class CompleteUploadResult:
    session_id: UUID
    status: UploadStatus
    video: VideoRef
    completed_at: Optional[datetime]
    resolved_duration: int


@dataclass
class AbortUploadResult:
    session_id: UUID
    status: UploadStatus
    reason: str


@dataclass
class UploadSessionView:
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
    storage_key: Optional[str]
    status: UploadStatus
    auto_detect_duration: bool
    provided_duration: Optional[int]
    resolved_duration: Optional[int]
    error_message: Optional[str]
    expires_at: datetime
    completed_at: Optional[datetime]
    video_id: Optional[UUID]
    parts: list[UploadedPart]
    remaining_parts: int

    @classmethod
    def build(cls, upload: UploadSessionDB, parts: list[UploadSessionPartDB]) -> "UploadSessionView":
        return cls(
            session_id=upload.session_id,
            course_id=upload.course_id,
            instructor_id=upload.instructor_id,
            initiator_role=upload.initiator_role,
            title=upload.title,
            file_name=upload.file_name,
            file_size=upload.file_size,
            mime_type=upload.mime_type,
            part_size=upload.part_size,
            total_parts=upload.total_parts,
            storage_key=upload.storage_key,
            status=upload.state,
            auto_detect_duration=upload.auto_detect_duration,
            provided_duration=upload.provided_duration,
            resolved_duration=upload.resolved_duration,
            error_message=upload.error_message,
            expires_at=upload.expires_at,
            completed_at=upload.completed_at,
            video_id=upload.video_id,
            parts=[UploadedPart.from_db(p) for p in parts],
            remaining_parts=max(0, upload.total_parts - len(parts)),
        )
