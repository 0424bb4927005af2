from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID
from uuid import uuid4

from sqlalchemy import BigInteger
from sqlalchemy import Column
from sqlalchemy import DateTime
from sqlalchemy import Integer
from sqlalchemy import UniqueConstraint
from sqlmodel import Field
from sqlmodel import SQLModel

from course_uploads.models.base import utcnow


class CourseDB(SQLModel, table=True):
    """Course row as far as the upload coordinator needs it; owned by the course module."""

    __tablename__ = "courses"

    course_id: UUID = Field(default_factory=uuid4, primary_key=True)
    instructor_id: str = Field(max_length=64, nullable=False, index=True)
    title: str = Field(max_length=255, nullable=False)


class CourseVideoDB(SQLModel, table=True):
    """Video appended to a course by a completed upload. Immutable once written."""

    __tablename__ = "course_videos"
    __table_args__ = (UniqueConstraint("course_id", "video_order", name="uq_course_videos_course_order"),)

    video_id: UUID = Field(default_factory=uuid4, primary_key=True)
    course_id: UUID = Field(foreign_key="courses.course_id", nullable=False, index=True)
    title: str = Field(max_length=255, nullable=False)
    video_url: str = Field(max_length=2048, nullable=False)
    storage_key: str = Field(max_length=1024, nullable=False)
    duration: int = Field(default=0, nullable=False)
    order: int = Field(sa_column=Column("video_order", Integer, nullable=False))
    uploaded_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True), nullable=False)
    file_size: Optional[int] = Field(default=None, sa_column=Column(BigInteger, nullable=True))
