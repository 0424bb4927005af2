from course_uploads.orm.base_repository import BaseRepository
from course_uploads.orm.session import dispose_engine
from course_uploads.orm.session import get_async_session
from course_uploads.orm.session import get_session_factory
from course_uploads.orm.session import initialize_engine
from course_uploads.orm.transaction import transactional


__all__ = [
    "dispose_engine",
    "get_async_session",
    "get_session_factory",
    "initialize_engine",
    "BaseRepository",
    "transactional",
]
