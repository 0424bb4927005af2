"""Parse internal headers set by the gateway into request.state."""

import logging
from typing import Awaitable
from typing import Callable

from fastapi import Request
from fastapi import Response

from course_uploads.services.ray_id_service import bind_ray_id


logger = logging.getLogger(__name__)

RAY_ID_HEADER = "X-Ray-ID"
CALLER_ID_HEADER = "X-Caller-Id"
CALLER_ROLE_HEADER = "X-Caller-Role"


async def parse_internal_headers_middleware(
    request: Request,
    call_next: Callable[[Request], Awaitable[Response]],
) -> Response:
    """
    Parse the identity headers injected by the gateway into request.state.

    The gateway sets these headers after authenticating the request:
    - X-Ray-ID: Request tracing ID (generated here when absent or malformed)
    - X-Caller-Id: Authenticated user ID
    - X-Caller-Role: Role decided by the authorization service
    """
    ray_id = bind_ray_id(request.headers.get(RAY_ID_HEADER))
    request.state.ray_id = ray_id

    request.state.caller_id = request.headers.get(CALLER_ID_HEADER, "").strip()
    request.state.caller_role = request.headers.get(CALLER_ROLE_HEADER, "").strip().lower()

    logger.debug(
        f"{request.method} {request.url.path} caller={request.state.caller_id or 'NONE'} "
        f"role={request.state.caller_role or 'NONE'}"
    )

    response = await call_next(request)
    response.headers[RAY_ID_HEADER] = ray_id
    return response
