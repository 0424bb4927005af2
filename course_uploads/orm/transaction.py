from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession


@asynccontextmanager
async def transactional(session: AsyncSession) -> AsyncGenerator[AsyncSession, None]:
    """Commit on success, roll back and re-raise on any error."""
    try:
        yield session
        await session.commit()
    except BaseException:
        await session.rollback()
        raise
