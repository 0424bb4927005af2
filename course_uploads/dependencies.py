import logging

from fastapi import Depends
from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from course_uploads.adapters.storage import StorageAdapter
from course_uploads.config import Config
from course_uploads.errors import Unauthenticated
from course_uploads.models.caller import Caller
from course_uploads.models.enums import CallerRole
from course_uploads.orm.session import get_async_session
from course_uploads.services.upload_session_service import UploadSessionService


logger = logging.getLogger(__name__)


def get_config(request: Request) -> Config:
    """Extract the application Config from the request."""
    config: Config = request.app.state.config
    return config


def get_storage(request: Request) -> StorageAdapter:
    """Extract the storage adapter built at startup."""
    storage: StorageAdapter = request.app.state.storage
    return storage


def get_caller(request: Request) -> Caller:
    """Caller identity parsed from gateway headers by the internal headers middleware."""
    user_id = getattr(request.state, "caller_id", "")
    role = getattr(request.state, "caller_role", "")
    if not user_id:
        raise Unauthenticated()
    try:
        caller_role = CallerRole(role)
    except ValueError as e:
        logger.warning(f"Rejecting caller {user_id} with unknown role {role!r}")
        raise Unauthenticated("Caller role is missing or unknown", {"role": role}) from e
    return Caller(user_id=user_id, role=caller_role)


def get_upload_service(
    db: AsyncSession = Depends(get_async_session),
    storage: StorageAdapter = Depends(get_storage),
    config: Config = Depends(get_config),
) -> UploadSessionService:
    return UploadSessionService(db, storage, config)
