from __future__ import annotations

from datetime import datetime
from datetime import timedelta
from typing import Optional
from uuid import UUID
from uuid import uuid4

from sqlalchemy import BigInteger
from sqlalchemy import Column
from sqlalchemy import DateTime
from sqlalchemy import Index
from sqlalchemy import text
from sqlmodel import Field

from course_uploads.models.base import TimestampMixin
from course_uploads.models.base import utcnow
from course_uploads.models.enums import UploadStatus


ACTIVE_SESSION_INDEX = "uq_upload_sessions_active_course_instructor"


class UploadSessionDB(TimestampMixin, table=True):
    """One multipart upload attempt of a course video."""

    __tablename__ = "upload_sessions"
    __table_args__ = (
        # At most one in-flight upload per course and instructor
        Index(
            ACTIVE_SESSION_INDEX,
            "course_id",
            "instructor_id",
            unique=True,
            postgresql_where=text("status IN ('initiated', 'uploading')"),
        ),
        Index("ix_upload_sessions_expires_at", "expires_at"),
    )

    session_id: UUID = Field(default_factory=uuid4, primary_key=True)
    course_id: UUID = Field(foreign_key="courses.course_id", nullable=False)
    instructor_id: str = Field(max_length=64, nullable=False)
    initiator_role: str = Field(max_length=32, nullable=False)

    title: str = Field(max_length=255, nullable=False)
    file_name: str = Field(max_length=1024, nullable=False)
    file_size: int = Field(sa_column=Column(BigInteger, nullable=False))
    mime_type: str = Field(max_length=255, nullable=False)
    part_size: int = Field(sa_column=Column(BigInteger, nullable=False))
    total_parts: int = Field(nullable=False)

    upload_id: Optional[str] = Field(default=None, max_length=1024)
    storage_key: Optional[str] = Field(default=None, max_length=1024)

    auto_detect_duration: bool = Field(default=False, nullable=False)
    provided_duration: Optional[int] = Field(default=None)
    resolved_duration: Optional[int] = Field(default=None)

    status: str = Field(default=UploadStatus.INITIATED.value, max_length=16, nullable=False)
    error_message: Optional[str] = Field(default=None)
    expires_at: datetime = Field(sa_type=DateTime(timezone=True), nullable=False)
    completed_at: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))
    video_id: Optional[UUID] = Field(default=None, foreign_key="course_videos.video_id")

    class Config:
        arbitrary_types_allowed = True

    @property
    def state(self) -> UploadStatus:
        return UploadStatus(self.status)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or utcnow()) >= self.expires_at

    def part_in_range(self, part_number: int) -> bool:
        return 1 <= part_number <= self.total_parts

    @staticmethod
    def expiry_from(now: datetime, ttl_seconds: int) -> datetime:
        return now + timedelta(seconds=ttl_seconds)
