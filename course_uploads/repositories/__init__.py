from .course_repository import CourseRepository
from .upload_session_part_repository import UploadSessionPartRepository
from .upload_session_repository import UploadSessionRepository


__all__ = [
    "CourseRepository",
    "UploadSessionPartRepository",
    "UploadSessionRepository",
]
