"""Sweep of expired upload sessions.

An abandoned session holds the one-active-upload slot of its course and
instructor, and its multipart upload keeps storage-side parts alive. The
sweep releases both: it aborts the storage upload of every expired
non-terminal session (best effort) and deletes the row; receipts go with it
through the foreign-key cascade. Expired terminal rows are deleted as well.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.ext.asyncio import async_sessionmaker

from course_uploads.adapters.storage import StorageAdapter
from course_uploads.config import Config
from course_uploads.models.base import utcnow
from course_uploads.orm.transaction import transactional
from course_uploads.repositories.upload_session_repository import UploadSessionRepository
from course_uploads.services.ray_id_service import bind_upload_session
from course_uploads.services.upload_session_service import abort_storage_upload_quietly


logger = logging.getLogger(__name__)

RepositoryFactory = Callable[[AsyncSession], UploadSessionRepository]


@dataclass
class ReapStats:
    scanned: int = 0
    aborted: int = 0
    abort_failures: int = 0
    deleted: int = 0

    def add(self, other: "ReapStats") -> None:
        self.scanned += other.scanned
        self.aborted += other.aborted
        self.abort_failures += other.abort_failures
        self.deleted += other.deleted


async def reap_batch(
    db: AsyncSession,
    storage: StorageAdapter,
    now: datetime,
    limit: int,
    repository_factory: RepositoryFactory = UploadSessionRepository,
) -> ReapStats:
    """Reap up to ``limit`` expired sessions in one transaction."""
    stats = ReapStats()
    sessions = repository_factory(db)

    async with transactional(db):
        expired = await sessions.list_expired(now, limit=limit)
        stats.scanned = len(expired)

        for upload in expired:
            bind_upload_session(upload.session_id)
            if not upload.state.is_terminal:
                released = await abort_storage_upload_quietly(storage, upload.storage_key, upload.upload_id)
                if released:
                    stats.aborted += 1
                else:
                    stats.abort_failures += 1
            logger.debug(
                f"Reaping session={upload.session_id} status={upload.status} expired_at={upload.expires_at.isoformat()}"
            )
            await sessions.delete(upload)
            stats.deleted += 1

    return stats


async def reap_expired_sessions(
    session_factory: async_sessionmaker[AsyncSession],
    storage: StorageAdapter,
    config: Config,
    now: Optional[datetime] = None,
    repository_factory: RepositoryFactory = UploadSessionRepository,
) -> ReapStats:
    """Reap every session expired at ``now``, one batch per transaction."""
    now = now or utcnow()
    batch_size = max(1, config.reaper_batch_size)
    totals = ReapStats()

    while True:
        async with session_factory() as db:
            stats = await reap_batch(db, storage, now, batch_size, repository_factory)
        totals.add(stats)
        if stats.scanned < batch_size:
            break

    if totals.scanned:
        logger.info(
            f"Reaped expired sessions: scanned={totals.scanned} deleted={totals.deleted} "
            f"aborted={totals.aborted} abort_failures={totals.abort_failures}"
        )
    return totals
