"""Lifecycle of resumable course-video uploads.

A session moves ``initiated -> uploading -> completed`` (or ``aborted``).
Bytes never pass through this service: clients PUT parts straight to object
storage with presigned URLs and report each part's receipt (ETag) back.
Only ``complete_upload`` asks storage to stitch the parts together.

Concurrency rules:

* one active session per (course, instructor) is guaranteed by a partial
  unique index, so racing ``initiate_upload`` calls lose with ``Conflict``
* part receipts are keyed upserts; recorders take a KEY SHARE lock on the
  session row so they run in parallel with each other but not with a
  completion or abort, which take FOR UPDATE
* completion is memoized through ``video_id``: a repeated or concurrent
  completion returns the same video without touching storage again
"""

from __future__ import annotations

import logging
import math
from datetime import datetime
from typing import Callable
from typing import Iterable
from typing import Optional
from typing import Sequence
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from course_uploads.adapters.storage import CompletedPart
from course_uploads.adapters.storage import InitiatedUpload
from course_uploads.adapters.storage import StorageAdapter
from course_uploads.config import Config
from course_uploads.errors import AlreadyCompleted
from course_uploads.errors import Conflict
from course_uploads.errors import Forbidden
from course_uploads.errors import IncompleteParts
from course_uploads.errors import InvalidArgument
from course_uploads.errors import NonSequentialParts
from course_uploads.errors import NotFound
from course_uploads.errors import SessionClosed
from course_uploads.errors import SessionExpired
from course_uploads.errors import StorageError
from course_uploads.errors import StorageFinalizationFailed
from course_uploads.errors import StorageUnavailable
from course_uploads.models.base import utcnow
from course_uploads.models.caller import Caller
from course_uploads.models.course import CourseVideoDB
from course_uploads.models.enums import CallerRole
from course_uploads.models.enums import UploadStatus
from course_uploads.models.upload_session import ACTIVE_SESSION_INDEX
from course_uploads.models.upload_session import UploadSessionDB
from course_uploads.orm.transaction import transactional
from course_uploads.repositories.course_repository import CourseRepository
from course_uploads.repositories.upload_session_part_repository import UploadSessionPartRepository
from course_uploads.repositories.upload_session_repository import LockMode
from course_uploads.repositories.upload_session_repository import UploadSessionRepository
from course_uploads.services.duration_resolver import MetadataProbe
from course_uploads.services.duration_resolver import resolve_duration_with_probe
from course_uploads.services.duration_resolver import to_seconds
from course_uploads.services.ray_id_service import bind_upload_session
from course_uploads.services.upload_types import AbortUploadResult
from course_uploads.services.upload_types import CompleteUploadResult
from course_uploads.services.upload_types import InitiateUploadRequest
from course_uploads.services.upload_types import InitiateUploadResult
from course_uploads.services.upload_types import PartReceipt
from course_uploads.services.upload_types import PartUploadUrl
from course_uploads.services.upload_types import PartUrlsResult
from course_uploads.services.upload_types import RecordPartResult
from course_uploads.services.upload_types import UploadedPart
from course_uploads.services.upload_types import UploadSessionView
from course_uploads.services.upload_types import VideoRef


logger = logging.getLogger(__name__)

UPLOADER_ROLES = frozenset({CallerRole.INSTRUCTOR, CallerRole.ADMIN})
DEFAULT_ABORT_REASON = "Upload aborted by user"


async def abort_storage_upload_quietly(storage: StorageAdapter, key: Optional[str], upload_id: Optional[str]) -> bool:
    """Best-effort release of a storage-side multipart upload. Returns False if it may still be open."""
    if not key or not upload_id:
        return True
    try:
        await storage.abort(key, upload_id)
        return True
    except StorageError as e:
        if e.is_missing_upload:
            return True
        logger.warning(f"Failed to abort storage upload key={key} upload_id={upload_id}: {e}")
        return False


def violates_active_session_index(error: IntegrityError) -> bool:
    """True when the insert lost the one-active-session-per-course race."""
    orig = error.orig
    # asyncpg keeps the constraint name on the driver exception chained under the DBAPI one
    driver_error = getattr(orig, "__cause__", None)
    constraint = getattr(orig, "constraint_name", None) or getattr(driver_error, "constraint_name", None)
    if constraint:
        return constraint == ACTIVE_SESSION_INDEX
    return ACTIVE_SESSION_INDEX in str(orig)


def validate_part_set(parts: Sequence[PartReceipt], total_parts: int) -> list[CompletedPart]:
    """Check that ``parts`` is exactly 1..total_parts and return it ordered by part number."""
    seen: set[int] = set()
    duplicates: set[int] = set()
    out_of_range: set[int] = set()
    for part in parts:
        if part.part_number in seen:
            duplicates.add(part.part_number)
        seen.add(part.part_number)
        if not 1 <= part.part_number <= total_parts:
            out_of_range.add(part.part_number)
        if not part.receipt_tag or not part.receipt_tag.strip():
            raise InvalidArgument(
                f"Part {part.part_number} has an empty receipt tag",
                {"part_number": part.part_number},
            )

    missing = sorted(set(range(1, total_parts + 1)) - seen)

    if duplicates or out_of_range:
        raise NonSequentialParts(
            "Parts must be numbered 1..totalParts exactly once",
            {
                "total_parts": total_parts,
                "duplicate_part_numbers": sorted(duplicates),
                "out_of_range_part_numbers": sorted(out_of_range),
                "missing_part_numbers": missing,
            },
        )

    if len(parts) != total_parts:
        raise IncompleteParts(
            f"Expected {total_parts} parts but received {len(parts)}",
            {
                "total_parts": total_parts,
                "received_parts": len(parts),
                "missing_part_numbers": missing,
            },
        )

    ordered = sorted(parts, key=lambda p: p.part_number)
    return [CompletedPart(part_number=p.part_number, receipt_tag=p.receipt_tag.strip()) for p in ordered]


class UploadSessionService:
    def __init__(
        self,
        db: AsyncSession,
        storage: StorageAdapter,
        config: Config,
        sessions: Optional[UploadSessionRepository] = None,
        parts: Optional[UploadSessionPartRepository] = None,
        courses: Optional[CourseRepository] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.db = db
        self.storage = storage
        self.config = config
        self.sessions = sessions or UploadSessionRepository(db)
        self.parts = parts or UploadSessionPartRepository(db)
        self.courses = courses or CourseRepository(db)
        self._clock = clock

    # initiate

    def _validate_initiate(self, request: InitiateUploadRequest) -> None:
        cfg = self.config
        problems: dict[str, str] = {}

        if not request.file_name or not request.file_name.strip():
            problems["file_name"] = "file name is required"
        if request.title is not None and not request.title.strip():
            problems["title"] = "title must not be blank"
        if request.mime_type not in cfg.allowed_video_mime_types:
            problems["mime_type"] = f"allowed types: {', '.join(cfg.allowed_video_mime_types)}"
        if request.file_size <= 0 or request.file_size > cfg.max_video_file_size:
            problems["file_size"] = f"must be between 1 and {cfg.max_video_file_size} bytes"
        if request.part_size < cfg.min_part_size or request.part_size > cfg.max_video_file_size:
            problems["part_size"] = f"must be between {cfg.min_part_size} and {cfg.max_video_file_size} bytes"
        if request.total_parts < 1 or request.total_parts > cfg.max_total_parts:
            problems["total_parts"] = f"must be between 1 and {cfg.max_total_parts}"
        elif "file_size" not in problems and "part_size" not in problems:
            expected = math.ceil(request.file_size / request.part_size)
            if request.total_parts != expected:
                problems["total_parts"] = f"expected {expected} parts for this file and part size"

        if request.provided_duration is not None and to_seconds(request.provided_duration) is None:
            problems["provided_duration"] = "must be positive"
        elif not request.auto_detect_duration and request.provided_duration is None:
            problems["provided_duration"] = "required when auto_detect_duration is false"

        if problems:
            raise InvalidArgument("Invalid upload parameters", {"fields": problems})

    async def _discard_expired(self, upload: UploadSessionDB) -> None:
        """Free the active slot held by an expired session that the reaper has not swept yet."""
        logger.info(f"Discarding expired upload session {upload.session_id} course={upload.course_id}")
        await abort_storage_upload_quietly(self.storage, upload.storage_key, upload.upload_id)
        await self.sessions.delete(upload)

    async def initiate_upload(
        self, course_id: UUID, caller: Caller, request: InitiateUploadRequest
    ) -> InitiateUploadResult:
        self._validate_initiate(request)

        if caller.role not in UPLOADER_ROLES:
            raise Forbidden("Only instructors and admins can upload course videos")

        course = await self.courses.get_by_id(course_id)
        if course is None:
            raise NotFound("Course not found", {"course_id": str(course_id)})
        if not caller.can_manage(course.instructor_id):
            raise Forbidden("You can only upload videos to your own courses", {"course_id": str(course_id)})

        now = self._clock()
        file_name = request.file_name.strip()
        title = (request.title or file_name.rsplit(".", 1)[0] or file_name).strip()
        provided = to_seconds(request.provided_duration)

        initiated: Optional[InitiatedUpload] = None
        try:
            async with transactional(self.db):
                existing = await self.sessions.get_active(course_id, caller.user_id)
                if existing is not None:
                    if not existing.is_expired(now):
                        raise Conflict(
                            "An upload is already in progress for this course",
                            {"session_id": str(existing.session_id), "course_id": str(course_id)},
                        )
                    await self._discard_expired(existing)

                upload = UploadSessionDB(
                    course_id=course_id,
                    instructor_id=caller.user_id,
                    initiator_role=caller.role.value,
                    title=title,
                    file_name=file_name,
                    file_size=request.file_size,
                    mime_type=request.mime_type,
                    part_size=request.part_size,
                    total_parts=request.total_parts,
                    auto_detect_duration=request.auto_detect_duration,
                    provided_duration=provided,
                    status=UploadStatus.INITIATED.value,
                    created_at=now,
                    expires_at=UploadSessionDB.expiry_from(now, self.config.session_ttl_seconds),
                )
                bind_upload_session(upload.session_id)
                try:
                    # Flushing claims the active slot before storage is touched
                    await self.sessions.create(upload)
                except IntegrityError as e:
                    if not violates_active_session_index(e):
                        raise
                    raise Conflict(
                        "An upload is already in progress for this course",
                        {"course_id": str(course_id)},
                    ) from e

                metadata = {
                    "course_id": str(course_id),
                    "instructor_id": caller.user_id,
                    "session_id": str(upload.session_id),
                    "title": title,
                    "duration": str(provided) if provided else None,
                }
                try:
                    initiated = await self.storage.initiate(
                        name=file_name,
                        folder=f"{self.config.upload_folder}/{course_id}",
                        content_type=request.mime_type,
                        metadata=metadata,
                    )
                except StorageError as e:
                    logger.error(f"Storage refused multipart initiate for course={course_id}: {e}")
                    raise StorageUnavailable(
                        "Failed to open the multipart upload",
                        {"provider_code": e.provider_code},
                    ) from e

                upload.upload_id = initiated.upload_id
                upload.storage_key = initiated.key
                await self.sessions.update(upload)
        except Exception:
            if initiated is not None:
                await abort_storage_upload_quietly(self.storage, initiated.key, initiated.upload_id)
            raise

        logger.info(
            f"Initiated upload session={upload.session_id} course={course_id} caller={caller.user_id} "
            f"size={request.file_size} parts={request.total_parts}"
        )
        return InitiateUploadResult(
            session_id=upload.session_id,
            upload_id=initiated.upload_id,
            storage_key=initiated.key,
            part_size=upload.part_size,
            total_parts=upload.total_parts,
            expires_at=upload.expires_at,
        )

    # shared guards

    async def _load_owned(
        self, session_id: UUID, caller: Caller, lock: Optional[LockMode] = None
    ) -> UploadSessionDB:
        bind_upload_session(session_id)
        upload = await self.sessions.get_by_id(session_id, lock=lock)
        if upload is None:
            raise NotFound("Upload session not found", {"session_id": str(session_id)})
        if not caller.can_manage(upload.instructor_id):
            raise Forbidden("You can only manage your own uploads", {"session_id": str(session_id)})
        return upload

    def _ensure_active(self, upload: UploadSessionDB) -> None:
        state = upload.state
        if state == UploadStatus.COMPLETED:
            raise AlreadyCompleted(details={"session_id": str(upload.session_id)})
        if state.is_terminal:
            raise SessionClosed(
                f"Upload session is {state.value}",
                {"session_id": str(upload.session_id), "status": state.value},
            )
        if upload.is_expired(self._clock()):
            raise SessionExpired(
                details={"session_id": str(upload.session_id), "expired_at": upload.expires_at.isoformat()}
            )

    def _ensure_in_range(self, upload: UploadSessionDB, part_numbers: Iterable[int]) -> None:
        bad = sorted({n for n in part_numbers if not upload.part_in_range(n)})
        if bad:
            raise InvalidArgument(
                f"Part numbers must be between 1 and {upload.total_parts}",
                {"total_parts": upload.total_parts, "invalid_part_numbers": bad},
            )

    def _transition(self, upload: UploadSessionDB, target: UploadStatus) -> None:
        if not upload.state.can_transition_to(target):
            raise SessionClosed(
                f"Cannot move upload session from {upload.state.value} to {target.value}",
                {"session_id": str(upload.session_id), "status": upload.state.value},
            )
        upload.status = target.value
        upload.touch()

    # part URLs / receipts

    async def get_part_upload_urls(
        self, session_id: UUID, caller: Caller, part_numbers: Sequence[int]
    ) -> PartUrlsResult:
        numbers = sorted(set(part_numbers))
        if not numbers:
            raise InvalidArgument("At least one part number is required")

        ttl = self.config.part_url_ttl_seconds
        async with transactional(self.db):
            upload = await self._load_owned(session_id, caller, lock="key_share")
            self._ensure_active(upload)
            self._ensure_in_range(upload, numbers)

            urls = []
            for number in numbers:
                try:
                    url = await self.storage.part_upload_url(upload.storage_key, upload.upload_id, number, ttl)
                except StorageError as e:
                    logger.error(f"Failed to presign part {number} for session={session_id}: {e}")
                    raise StorageUnavailable(
                        f"Failed to authorize part {number}",
                        {"part_number": number, "provider_code": e.provider_code},
                    ) from e
                urls.append(PartUploadUrl(part_number=number, url=url))

            await self.sessions.mark_uploading(upload)

        logger.debug(f"Issued {len(urls)} part URLs session={session_id}")
        return PartUrlsResult(session_id=upload.session_id, status=upload.state, expires_in=ttl, urls=urls)

    async def record_uploaded_part(
        self,
        session_id: UUID,
        caller: Caller,
        part_number: int,
        receipt_tag: str,
        part_size: Optional[int] = None,
    ) -> RecordPartResult:
        tag = (receipt_tag or "").strip()
        if not tag:
            raise InvalidArgument("Receipt tag is required", {"part_number": part_number})
        if part_size is not None and part_size <= 0:
            raise InvalidArgument("Part size must be positive", {"part_number": part_number})

        async with transactional(self.db):
            upload = await self._load_owned(session_id, caller, lock="key_share")
            self._ensure_active(upload)
            self._ensure_in_range(upload, [part_number])

            await self.parts.upsert(upload.session_id, part_number, tag, part_size)
            await self.sessions.mark_uploading(upload)
            recorded = await self.parts.list_for_session(upload.session_id)

        logger.debug(f"Recorded part {part_number} session={session_id} ({len(recorded)}/{upload.total_parts})")
        return RecordPartResult(
            session_id=upload.session_id,
            status=upload.state,
            parts=[UploadedPart.from_db(p) for p in recorded],
            remaining_parts=max(0, upload.total_parts - len(recorded)),
        )

    # complete

    async def _completed_result(self, upload: UploadSessionDB) -> CompleteUploadResult:
        video = await self.courses.get_video(upload.video_id) if upload.video_id else None
        if video is None:
            # The course module removed the video after completion
            raise AlreadyCompleted(
                "Upload session is already completed and its video no longer exists",
                {"session_id": str(upload.session_id)},
            )
        return CompleteUploadResult(
            session_id=upload.session_id,
            status=upload.state,
            video=VideoRef.from_db(video),
            completed_at=upload.completed_at,
            resolved_duration=upload.resolved_duration or 0,
        )

    def _metadata_probe(self, key: str) -> MetadataProbe:
        async def probe() -> Optional[dict[str, str]]:
            return await self.storage.head_metadata(key)

        return probe

    async def _object_exists(self, key: str) -> bool:
        try:
            return await self.storage.head_metadata(key) is not None
        except StorageError:
            return False

    async def complete_upload(
        self,
        session_id: UUID,
        caller: Caller,
        parts: Optional[Sequence[PartReceipt]] = None,
        duration: Optional[float] = None,
    ) -> CompleteUploadResult:
        if duration is not None and duration < 0:
            raise InvalidArgument("Duration must not be negative")

        async with transactional(self.db):
            upload = await self._load_owned(session_id, caller, lock="update")
            if upload.state == UploadStatus.COMPLETED:
                logger.info(f"Completion replayed for session={session_id}")
                return await self._completed_result(upload)
            self._ensure_active(upload)

            if parts is None:
                recorded = await self.parts.list_for_session(upload.session_id)
                candidate = [PartReceipt(p.part_number, p.receipt_tag, p.size_bytes) for p in recorded]
            else:
                candidate = list(parts)

            ordered = validate_part_set(candidate, upload.total_parts)
            if parts is not None:
                await self.parts.upsert_many(
                    upload.session_id, [(p.part_number, p.receipt_tag.strip(), p.size_bytes) for p in candidate]
                )

            try:
                await self.storage.complete(upload.storage_key, upload.upload_id, ordered)
            except StorageError as e:
                if e.is_missing_upload and await self._object_exists(upload.storage_key):
                    # A previous attempt finalized storage but failed before committing
                    logger.warning(f"Multipart upload already finalized in storage session={session_id}")
                else:
                    logger.error(f"Storage rejected completion for session={session_id}: {e}")
                    raise StorageFinalizationFailed(
                        "Object storage rejected the part list; re-upload the affected parts and retry",
                        {"session_id": str(session_id), "provider_code": e.provider_code, "reason": e.message},
                    ) from e

            probe = self._metadata_probe(upload.storage_key) if self.config.detect_duration_from_metadata else None
            resolved = await resolve_duration_with_probe(upload, duration, probe)

            try:
                video = await self.courses.append_video(
                    CourseVideoDB(
                        course_id=upload.course_id,
                        title=upload.title,
                        video_url=self.storage.public_url(upload.storage_key),
                        storage_key=upload.storage_key,
                        duration=resolved.seconds,
                        order=0,
                        uploaded_at=self._clock(),
                        file_size=upload.file_size,
                    )
                )
            except LookupError as e:
                raise NotFound("Course not found", {"course_id": str(upload.course_id)}) from e

            self._transition(upload, UploadStatus.COMPLETED)
            upload.completed_at = self._clock()
            upload.resolved_duration = resolved.seconds
            upload.video_id = video.video_id
            upload.error_message = None
            await self.sessions.update(upload)

        logger.info(
            f"Completed upload session={session_id} video={video.video_id} order={video.order} "
            f"duration={resolved.seconds}s ({resolved.source.value})"
        )
        return CompleteUploadResult(
            session_id=upload.session_id,
            status=upload.state,
            video=VideoRef.from_db(video),
            completed_at=upload.completed_at,
            resolved_duration=resolved.seconds,
        )

    # abort / read

    async def abort_upload(self, session_id: UUID, caller: Caller, reason: Optional[str] = None) -> AbortUploadResult:
        message = (reason or "").strip() or DEFAULT_ABORT_REASON

        async with transactional(self.db):
            upload = await self._load_owned(session_id, caller, lock="update")
            state = upload.state
            if state == UploadStatus.COMPLETED:
                raise AlreadyCompleted(details={"session_id": str(session_id)})
            if state.is_terminal:
                raise SessionClosed(
                    f"Upload session is {state.value}",
                    {"session_id": str(session_id), "status": state.value},
                )

            if upload.storage_key and upload.upload_id:
                try:
                    await self.storage.abort(upload.storage_key, upload.upload_id)
                except StorageError as e:
                    if not e.is_missing_upload:
                        logger.error(f"Storage refused abort for session={session_id}: {e}")
                        raise StorageUnavailable(
                            "Failed to abort the multipart upload",
                            {"session_id": str(session_id), "provider_code": e.provider_code},
                        ) from e

            self._transition(upload, UploadStatus.ABORTED)
            upload.error_message = message
            await self.sessions.update(upload)

        logger.info(f"Aborted upload session={session_id} by={caller.user_id}: {message}")
        return AbortUploadResult(session_id=upload.session_id, status=upload.state, reason=message)

    async def get_upload_session(self, session_id: UUID, caller: Caller) -> UploadSessionView:
        upload = await self._load_owned(session_id, caller)
        recorded = await self.parts.list_for_session(upload.session_id)
        return UploadSessionView.build(upload, recorded)
