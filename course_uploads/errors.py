"""Error taxonomy for the upload coordinator.

Every error carries a machine-readable ``code``, the HTTP status the API layer
answers with, a human message and a ``details`` mapping with enough context
(part numbers, counts, session ids) for a client to correct itself.
"""

from typing import Any
from typing import Optional


class UploadError(Exception):
    """Base class for all coordinator errors."""

    code = "UploadError"
    status_code = 400
    default_message = "Upload request failed"

    def __init__(self, message: str = "", details: Optional[dict[str, Any]] = None):
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


class InvalidArgument(UploadError):
    code = "InvalidArgument"
    status_code = 400
    default_message = "Invalid upload parameters"


class Unauthenticated(UploadError):
    code = "Unauthenticated"
    status_code = 401
    default_message = "Caller identity is missing"


class Forbidden(UploadError):
    code = "Forbidden"
    status_code = 403
    default_message = "You can only manage uploads for your own courses"


class NotFound(UploadError):
    code = "NotFound"
    status_code = 404
    default_message = "Upload session not found"


class Conflict(UploadError):
    code = "Conflict"
    status_code = 409
    default_message = "An upload is already in progress for this course"


class AlreadyCompleted(UploadError):
    code = "AlreadyCompleted"
    status_code = 409
    default_message = "Upload session is already completed"


class SessionClosed(UploadError):
    code = "SessionClosed"
    status_code = 409
    default_message = "Upload session is no longer active"


class SessionExpired(UploadError):
    code = "SessionExpired"
    status_code = 410
    default_message = "Upload session has expired"


class IncompleteParts(UploadError):
    code = "IncompleteParts"
    status_code = 400
    default_message = "Uploaded parts do not cover the whole file"


class NonSequentialParts(IncompleteParts):
    code = "NonSequentialParts"
    default_message = "Uploaded parts must be numbered 1..totalParts without gaps or duplicates"


class StorageUnavailable(UploadError):
    code = "StorageUnavailable"
    status_code = 502
    default_message = "Object storage is unavailable"


class StorageFinalizationFailed(UploadError):
    code = "StorageFinalizationFailed"
    status_code = 502
    default_message = "Object storage rejected the multipart completion"


class StorageError(Exception):
    """Raised by storage adapters; carries the provider error code when known."""

    def __init__(self, operation: str, message: str, provider_code: str = ""):
        self.operation = operation
        self.provider_code = provider_code
        self.message = message
        super().__init__(f"{operation} failed: {message}")

    @property
    def is_missing_upload(self) -> bool:
        return self.provider_code in {"NoSuchUpload", "404"}
