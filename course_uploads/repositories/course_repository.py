from __future__ import annotations

from typing import Optional
from uuid import UUID

from sqlalchemy import func
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from course_uploads.models.course import CourseDB
from course_uploads.models.course import CourseVideoDB
from course_uploads.orm.base_repository import BaseRepository


class CourseRepository(BaseRepository[CourseDB]):
    """The slice of course persistence the upload coordinator depends on."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, CourseDB)

    async def get_by_id(self, course_id: UUID, for_update: bool = False) -> Optional[CourseDB]:
        stmt = select(CourseDB).where(CourseDB.course_id == course_id)
        if for_update:
            # NO KEY UPDATE: upload_sessions foreign-key inserts on the course stay unblocked
            stmt = stmt.with_for_update(key_share=True)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def count_videos(self, course_id: UUID) -> int:
        stmt = select(func.count()).select_from(CourseVideoDB).where(CourseVideoDB.course_id == course_id)
        result = await self.session.execute(stmt)
        return int(result.scalar_one())

    async def get_video(self, video_id: UUID) -> Optional[CourseVideoDB]:
        return await self.session.get(CourseVideoDB, video_id)

    async def append_video(self, video: CourseVideoDB) -> CourseVideoDB:
        """Append a video at the end of the course's list.

        The course row is locked so two completions on the same course cannot
        compute the same order.
        """
        course = await self.get_by_id(video.course_id, for_update=True)
        if course is None:
            raise LookupError(f"course {video.course_id} not found")

        video.order = await self.count_videos(video.course_id) + 1
        self.session.add(video)
        await self.session.flush()
        await self.session.refresh(video)
        return video
