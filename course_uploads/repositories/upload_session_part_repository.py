from __future__ import annotations

from typing import Iterable
from typing import Optional
from uuid import UUID

from sqlalchemy import func
from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from course_uploads.models.base import utcnow
from course_uploads.models.upload_session_part import UploadSessionPartDB


class UploadSessionPartRepository:
    """Per-part receipts. Writes are keyed upserts so concurrent reports never clobber each other."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def upsert(
        self,
        session_id: UUID,
        part_number: int,
        receipt_tag: str,
        size_bytes: Optional[int] = None,
    ) -> None:
        await self.upsert_many(session_id, [(part_number, receipt_tag, size_bytes)])

    async def upsert_many(
        self,
        session_id: UUID,
        parts: Iterable[tuple[int, str, Optional[int]]],
    ) -> None:
        now = utcnow()
        rows = [
            {
                "session_id": session_id,
                "part_number": part_number,
                "receipt_tag": receipt_tag,
                "size_bytes": size_bytes,
                "uploaded_at": now,
            }
            for part_number, receipt_tag, size_bytes in parts
        ]
        if not rows:
            return

        stmt = insert(UploadSessionPartDB).values(rows)
        stmt = stmt.on_conflict_do_update(
            index_elements=["session_id", "part_number"],
            set_={
                "receipt_tag": stmt.excluded.receipt_tag,
                "size_bytes": func.coalesce(stmt.excluded.size_bytes, UploadSessionPartDB.size_bytes),
                "uploaded_at": stmt.excluded.uploaded_at,
            },
        )
        await self.session.execute(stmt)

    async def list_for_session(self, session_id: UUID) -> list[UploadSessionPartDB]:
        """List recorded parts ordered by part number."""
        stmt = (
            select(UploadSessionPartDB)
            .where(UploadSessionPartDB.session_id == session_id)
            .order_by(UploadSessionPartDB.part_number.asc())
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
