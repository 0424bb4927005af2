"""JSON error responses for the upload API."""

import logging

from fastapi import Request
from fastapi.responses import JSONResponse

from course_uploads.errors import UploadError
from course_uploads.services.ray_id_service import ray_id_context


logger = logging.getLogger(__name__)


def upload_error_response(error: UploadError) -> JSONResponse:
    """Render an UploadError as ``{"error": {"code", "message", "details"}}``."""
    return JSONResponse(
        status_code=error.status_code,
        content={"error": error.to_dict()},
        headers={"X-Ray-ID": ray_id_context.get()},
    )


async def upload_error_handler(request: Request, exc: UploadError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.code}: {exc.message} {exc.details}")
    else:
        logger.warning(f"{request.method} {request.url.path} rejected: {exc.code}: {exc.message}")
    return upload_error_response(exc)
