import itertools
from typing import Any
from typing import Mapping
from typing import Optional
from typing import Sequence

from course_uploads.adapters.storage import CompletedPart
from course_uploads.adapters.storage import InitiatedUpload
from course_uploads.adapters.storage import build_object_key
from course_uploads.adapters.storage import clean_metadata
from course_uploads.errors import StorageError


class InMemoryStorage:
    """StorageAdapter double that tracks multipart uploads and finished objects in dicts."""

    def __init__(self, bucket: str = "course-videos", region: str = "us-east-1") -> None:
        self.bucket = bucket
        self.region = region
        self.uploads: dict[str, dict[str, Any]] = {}
        self.objects: dict[str, dict[str, str]] = {}
        self.completed_parts: dict[str, list[CompletedPart]] = {}
        self.calls: list[tuple[str, Any]] = []
        self.failures: dict[str, StorageError] = {}
        self.head_failure: Optional[Exception] = None
        self._ids = itertools.count(1)

    def fail(self, operation: str, provider_code: str = "InternalError", message: str = "boom") -> None:
        self.failures[operation] = StorageError(operation, message, provider_code=provider_code)

    def calls_to(self, operation: str) -> list[Any]:
        return [args for name, args in self.calls if name == operation]

    def _check(self, operation: str) -> None:
        error = self.failures.get(operation)
        if error is not None:
            raise error

    async def initiate(
        self,
        *,
        name: str,
        folder: str,
        content_type: str,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> InitiatedUpload:
        self.calls.append(("initiate", {"name": name, "folder": folder, "content_type": content_type}))
        self._check("initiate")
        key = build_object_key(folder, name)
        upload_id = f"mpu-{next(self._ids)}"
        self.uploads[upload_id] = {"key": key, "content_type": content_type, "metadata": clean_metadata(metadata)}
        return InitiatedUpload(key=key, upload_id=upload_id)

    async def part_upload_url(self, key: str, upload_id: str, part_number: int, ttl: int) -> str:
        self.calls.append(("part_upload_url", (key, upload_id, part_number, ttl)))
        self._check("part_upload_url")
        return f"https://{self.bucket}.storage.test/{key}?uploadId={upload_id}&partNumber={part_number}&X-Expires={ttl}"

    async def complete(self, key: str, upload_id: str, ordered_parts: Sequence[CompletedPart]) -> None:
        self.calls.append(("complete", (key, upload_id, list(ordered_parts))))
        self._check("complete")
        upload = self.uploads.get(upload_id)
        if upload is None or upload["key"] != key:
            raise StorageError("complete", "The specified upload does not exist", provider_code="NoSuchUpload")
        del self.uploads[upload_id]
        self.objects[key] = dict(upload["metadata"])
        self.completed_parts[key] = list(ordered_parts)

    async def abort(self, key: str, upload_id: str) -> None:
        self.calls.append(("abort", (key, upload_id)))
        self._check("abort")
        if upload_id not in self.uploads:
            raise StorageError("abort", "The specified upload does not exist", provider_code="NoSuchUpload")
        del self.uploads[upload_id]

    def public_url(self, key: str) -> str:
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{key}"

    async def head_metadata(self, key: str) -> Optional[dict[str, str]]:
        self.calls.append(("head_metadata", key))
        if self.head_failure is not None:
            raise self.head_failure
        metadata = self.objects.get(key)
        return dict(metadata) if metadata is not None else None
