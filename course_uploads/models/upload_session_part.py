from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import BigInteger
from sqlalchemy import Column
from sqlalchemy import DateTime
from sqlalchemy import ForeignKey
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlmodel import Field
from sqlmodel import SQLModel

from course_uploads.models.base import utcnow


class UploadSessionPartDB(SQLModel, table=True):
    """Receipt for one transferred part; keyed by (session_id, part_number)."""

    __tablename__ = "upload_session_parts"

    session_id: UUID = Field(
        sa_column=Column(
            PG_UUID(as_uuid=True),
            ForeignKey("upload_sessions.session_id", ondelete="CASCADE"),
            primary_key=True,
        )
    )
    part_number: int = Field(primary_key=True)
    receipt_tag: str = Field(max_length=1024, nullable=False)
    size_bytes: Optional[int] = Field(default=None, sa_column=Column(BigInteger, nullable=True))
    uploaded_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True), nullable=False)

    class Config:
        arbitrary_types_allowed = True
