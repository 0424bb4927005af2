from enum import Enum


class UploadStatus(str, Enum):
    """Upload session lifecycle.

    initiated -> uploading -> completed
    initiated/uploading -> aborted
    initiated -> failed
    """

    INITIATED = "initiated"
    UPLOADING = "uploading"
    COMPLETED = "completed"
    ABORTED = "aborted"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    def can_transition_to(self, target: "UploadStatus") -> bool:
        return target in _TRANSITIONS[self]


ACTIVE_STATUSES = frozenset({UploadStatus.INITIATED, UploadStatus.UPLOADING})
TERMINAL_STATUSES = frozenset({UploadStatus.COMPLETED, UploadStatus.ABORTED, UploadStatus.FAILED})

_TRANSITIONS: dict[UploadStatus, frozenset[UploadStatus]] = {
    UploadStatus.INITIATED: frozenset(
        {UploadStatus.UPLOADING, UploadStatus.COMPLETED, UploadStatus.ABORTED, UploadStatus.FAILED}
    ),
    UploadStatus.UPLOADING: frozenset({UploadStatus.COMPLETED, UploadStatus.ABORTED}),
    UploadStatus.COMPLETED: frozenset(),
    UploadStatus.ABORTED: frozenset(),
    UploadStatus.FAILED: frozenset(),
}


class CallerRole(str, Enum):
    """Role resolved by the authorization collaborator."""

    ADMIN = "admin"
    INSTRUCTOR = "instructor"
    STUDENT = "student"


class DurationSource(str, Enum):
    """Which signal produced a resolved video duration."""

    EXPLICIT = "explicit"
    PROVIDED = "provided"
    PREVIOUS = "previous"
    METADATA = "metadata"
    UNKNOWN = "unknown"
