"""Repository behaviour that depends on PostgreSQL itself: partial unique index, upserts, row locks."""

from datetime import datetime
from datetime import timedelta
from datetime import timezone
from uuid import uuid4

import pytest
from sqlalchemy.exc import IntegrityError

from course_uploads.models import CourseDB
from course_uploads.models import CourseVideoDB
from course_uploads.models import UploadSessionDB
from course_uploads.models import UploadStatus
from course_uploads.repositories import CourseRepository
from course_uploads.repositories import UploadSessionPartRepository
from course_uploads.repositories import UploadSessionRepository


pytestmark = pytest.mark.integration

NOW = datetime(2026, 3, 2, 9, 30, tzinfo=timezone.utc)


async def _course(db_session, instructor_id="inst-1"):
    course = CourseDB(instructor_id=instructor_id, title="Intro to Lighting")
    db_session.add(course)
    await db_session.flush()
    return course


def _upload(course, instructor_id="inst-1", status=UploadStatus.INITIATED, expires_at=None):
    return UploadSessionDB(
        course_id=course.course_id,
        instructor_id=instructor_id,
        initiator_role="instructor",
        title="Lesson",
        file_name="lesson.mp4",
        file_size=100 * 1024 * 1024,
        mime_type="video/mp4",
        part_size=5 * 1024 * 1024,
        total_parts=20,
        upload_id=f"upload-{uuid4()}",
        storage_key=f"course-videos/{course.course_id}/{uuid4()}.mp4",
        status=status.value,
        expires_at=expires_at or NOW + timedelta(hours=24),
    )


@pytest.mark.asyncio
async def test_second_active_session_for_same_course_and_instructor_is_rejected(db_session):
    course = await _course(db_session)
    repo = UploadSessionRepository(db_session)
    await repo.create(_upload(course))

    with pytest.raises(IntegrityError):
        async with db_session.begin_nested():
            db_session.add(_upload(course))
            await db_session.flush()


@pytest.mark.asyncio
async def test_terminal_sessions_do_not_block_a_new_active_one(db_session):
    course = await _course(db_session)
    repo = UploadSessionRepository(db_session)
    await repo.create(_upload(course, status=UploadStatus.ABORTED))
    await repo.create(_upload(course, status=UploadStatus.COMPLETED))

    active = await repo.create(_upload(course))

    found = await repo.get_active(course.course_id, "inst-1")
    assert found is not None
    assert found.session_id == active.session_id


@pytest.mark.asyncio
async def test_other_instructor_may_upload_to_same_course_concurrently(db_session):
    course = await _course(db_session)
    repo = UploadSessionRepository(db_session)
    await repo.create(_upload(course, instructor_id="inst-1"))
    await repo.create(_upload(course, instructor_id="admin-7"))

    assert await repo.get_active(course.course_id, "admin-7") is not None


@pytest.mark.asyncio
async def test_mark_uploading_only_moves_initiated_sessions(db_session):
    course = await _course(db_session)
    repo = UploadSessionRepository(db_session)
    upload = await repo.create(_upload(course))

    assert await repo.mark_uploading(upload) is True
    assert upload.state == UploadStatus.UPLOADING
    assert await repo.mark_uploading(upload) is False


@pytest.mark.asyncio
async def test_get_by_id_with_locks(db_session):
    course = await _course(db_session)
    repo = UploadSessionRepository(db_session)
    upload = await repo.create(_upload(course))

    for lock in (None, "key_share", "update"):
        loaded = await repo.get_by_id(upload.session_id, lock=lock)
        assert loaded is not None
        assert loaded.session_id == upload.session_id

    assert await repo.get_by_id(uuid4()) is None


@pytest.mark.asyncio
async def test_list_expired_returns_oldest_first_and_respects_limit(db_session):
    course = await _course(db_session)
    other_course = await _course(db_session)
    repo = UploadSessionRepository(db_session)
    newer = await repo.create(_upload(course, expires_at=NOW - timedelta(minutes=5)))
    older = await repo.create(_upload(other_course, expires_at=NOW - timedelta(hours=2)))
    fresh = await repo.create(_upload(course, instructor_id="admin-7", expires_at=NOW + timedelta(hours=1)))

    expired = await repo.list_expired(NOW, limit=1000)
    ids = [s.session_id for s in expired]

    assert fresh.session_id not in ids
    assert ids.index(older.session_id) < ids.index(newer.session_id)


@pytest.mark.asyncio
async def test_part_upsert_replaces_tag_and_keeps_known_size(db_session):
    course = await _course(db_session)
    upload = await UploadSessionRepository(db_session).create(_upload(course))
    parts = UploadSessionPartRepository(db_session)

    await parts.upsert(upload.session_id, 2, '"t2"', 5 * 1024 * 1024)
    await parts.upsert(upload.session_id, 1, '"t1"')
    await parts.upsert(upload.session_id, 2, '"t2-retry"')

    recorded = await parts.list_for_session(upload.session_id)
    assert [(p.part_number, p.receipt_tag, p.size_bytes) for p in recorded] == [
        (1, '"t1"', None),
        (2, '"t2-retry"', 5 * 1024 * 1024),
    ]
    assert len(await parts.list_for_session(upload.session_id)) == 2


@pytest.mark.asyncio
async def test_upsert_many_writes_all_parts_in_one_statement(db_session):
    course = await _course(db_session)
    upload = await UploadSessionRepository(db_session).create(_upload(course))
    parts = UploadSessionPartRepository(db_session)

    await parts.upsert_many(upload.session_id, [(n, f"t{n}", None) for n in range(1, 21)])
    await parts.upsert_many(upload.session_id, [])

    assert len(await parts.list_for_session(upload.session_id)) == 20


@pytest.mark.asyncio
async def test_deleting_a_session_removes_its_parts(db_session):
    course = await _course(db_session)
    sessions = UploadSessionRepository(db_session)
    upload = await sessions.create(_upload(course))
    parts = UploadSessionPartRepository(db_session)
    await parts.upsert(upload.session_id, 1, "t1")

    await sessions.delete(upload)

    assert len(await parts.list_for_session(upload.session_id)) == 0


@pytest.mark.asyncio
async def test_append_video_numbers_videos_per_course(db_session):
    course = await _course(db_session)
    other_course = await _course(db_session)
    courses = CourseRepository(db_session)

    def video(c, title):
        return CourseVideoDB(
            course_id=c.course_id,
            title=title,
            video_url=f"https://cdn.example.com/{title}.mp4",
            storage_key=f"course-videos/{c.course_id}/{title}.mp4",
            duration=60,
            order=0,
        )

    first = await courses.append_video(video(course, "one"))
    second = await courses.append_video(video(course, "two"))
    elsewhere = await courses.append_video(video(other_course, "other"))

    assert (first.order, second.order, elsewhere.order) == (1, 2, 1)
    assert await courses.count_videos(course.course_id) == 2
    assert (await courses.get_video(second.video_id)).title == "two"


@pytest.mark.asyncio
async def test_append_video_to_unknown_course_raises_lookup_error(db_session):
    courses = CourseRepository(db_session)
    orphan = CourseVideoDB(
        course_id=uuid4(),
        title="orphan",
        video_url="https://cdn.example.com/orphan.mp4",
        storage_key="course-videos/orphan.mp4",
        order=0,
    )

    with pytest.raises(LookupError):
        await courses.append_video(orphan)
