from course_uploads.models.base import TimestampMixin
from course_uploads.models.caller import Caller
from course_uploads.models.course import CourseDB
from course_uploads.models.course import CourseVideoDB
from course_uploads.models.enums import ACTIVE_STATUSES
from course_uploads.models.enums import TERMINAL_STATUSES
from course_uploads.models.enums import CallerRole
from course_uploads.models.enums import DurationSource
from course_uploads.models.enums import UploadStatus
from course_uploads.models.upload_session import UploadSessionDB
from course_uploads.models.upload_session_part import UploadSessionPartDB


__all__ = [
    "ACTIVE_STATUSES",
    "TERMINAL_STATUSES",
    "Caller",
    "CallerRole",
    "CourseDB",
    "CourseVideoDB",
    "DurationSource",
    "TimestampMixin",
    "UploadSessionDB",
    "UploadSessionPartDB",
    "UploadStatus",
]
