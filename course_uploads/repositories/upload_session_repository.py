from __future__ import annotations

from datetime import datetime
from typing import Literal
from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from course_uploads.models.base import utcnow
from course_uploads.models.enums import ACTIVE_STATUSES
from course_uploads.models.enums import UploadStatus
from course_uploads.models.upload_session import UploadSessionDB
from course_uploads.orm.base_repository import BaseRepository


LockMode = Literal["update", "key_share"]


class UploadSessionRepository(BaseRepository[UploadSessionDB]):
    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, UploadSessionDB)

    async def get_by_id(self, session_id: UUID, lock: Optional[LockMode] = None) -> Optional[UploadSessionDB]:
        """Load a session, optionally row-locked.

        ``update`` serializes completion/abort against everything else;
        ``key_share`` lets concurrent part recordings proceed while blocking
        a concurrent ``update`` lock holder.
        """
        stmt = select(UploadSessionDB).where(UploadSessionDB.session_id == session_id)
        if lock == "update":
            stmt = stmt.with_for_update()
        elif lock == "key_share":
            stmt = stmt.with_for_update(read=True, key_share=True)
        stmt = stmt.execution_options(populate_existing=True)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_active(self, course_id: UUID, instructor_id: str) -> Optional[UploadSessionDB]:
        """Get the in-flight session for a course+instructor, if any."""
        stmt = select(UploadSessionDB).where(
            UploadSessionDB.course_id == course_id,
            UploadSessionDB.instructor_id == instructor_id,
            UploadSessionDB.status.in_([s.value for s in ACTIVE_STATUSES]),
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def mark_uploading(self, upload: UploadSessionDB) -> bool:
        """Conditionally move initiated -> uploading. Returns True if this call did it."""
        stmt = (
            update(UploadSessionDB)
            .where(
                UploadSessionDB.session_id == upload.session_id,
                UploadSessionDB.status == UploadStatus.INITIATED.value,
            )
            .values(status=UploadStatus.UPLOADING.value, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        if result.rowcount:
            await self.session.refresh(upload)
            return True
        return False

    async def list_expired(self, now: datetime, limit: int = 100) -> list[UploadSessionDB]:
        """Sessions past their expiry, oldest first; rows locked by another sweeper are skipped."""
        stmt = (
            select(UploadSessionDB)
            .where(UploadSessionDB.expires_at <= now)
            .order_by(UploadSessionDB.expires_at.asc())
            .limit(limit)
            .with_for_update(skip_locked=True)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
