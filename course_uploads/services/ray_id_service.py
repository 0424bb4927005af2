import contextvars
import re
import uuid
from typing import Optional


ray_id_context: contextvars.ContextVar[str] = contextvars.ContextVar("ray_id", default="no-ray-id")

_RAY_ID_PATTERN = re.compile(r"^[0-9a-f]{16}$")


def generate_ray_id() -> str:
    """Generate a 16-character hex ray ID from UUID4.

    Returns:
        A 16-character lowercase hex string (first 64 bits of UUID4).
        Example: "a1b2c3d4e5f67890"
    """
    return uuid.uuid4().hex[:16]


def resolve_ray_id(incoming: Optional[str]) -> str:
    """Reuse the gateway's ray ID when it is well-formed, otherwise mint a new one."""
    if incoming:
        candidate = incoming.strip().lower()
        if _RAY_ID_PATTERN.match(candidate):
            return candidate
    return generate_ray_id()


def bind_ray_id(incoming: Optional[str]) -> str:
    """Resolve and store the ray ID for the current context (request or reaper cycle)."""
    ray_id = resolve_ray_id(incoming)
    ray_id_context.set(ray_id)
    return ray_id


upload_session_context: contextvars.ContextVar[str] = contextvars.ContextVar("upload_session", default="-")


def bind_upload_session(session_id: object) -> None:
    """Tag log records of the current context with the upload session being worked on."""
    upload_session_context.set(str(session_id))
