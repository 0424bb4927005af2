"""Pick the authoritative duration (whole seconds) of an uploaded clip.

Signals, first applicable wins:

1. an explicit duration supplied when completing the upload, if positive
2. the duration given at initiation when auto-detection was switched off
3. a duration resolved by an earlier completion of the same session
4. the ``duration`` entry of the stored object's metadata (auto-detect only)
5. ``0``, meaning unknown
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any
from typing import Awaitable
from typing import Callable
from typing import Mapping
from typing import Optional

from course_uploads.models.enums import DurationSource
from course_uploads.models.upload_session import UploadSessionDB


logger = logging.getLogger(__name__)

METADATA_DURATION_KEY = "duration"

MetadataProbe = Callable[[], Awaitable[Optional[Mapping[str, str]]]]


@dataclass(frozen=True)
class ResolvedDuration:
    seconds: int
    source: DurationSource


UNKNOWN = ResolvedDuration(0, DurationSource.UNKNOWN)


def to_seconds(value: Any) -> Optional[int]:
    """Round a positive number (or numeric string) to whole seconds; anything else is no signal."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number) or number <= 0:
        return None
    return max(1, int(round(number)))


def resolve_duration(
    session: UploadSessionDB,
    explicit: Optional[float] = None,
    metadata: Optional[Mapping[str, str]] = None,
) -> ResolvedDuration:
    seconds = to_seconds(explicit)
    if seconds is not None:
        return ResolvedDuration(seconds, DurationSource.EXPLICIT)

    if not session.auto_detect_duration:
        seconds = to_seconds(session.provided_duration)
        if seconds is not None:
            return ResolvedDuration(seconds, DurationSource.PROVIDED)

    seconds = to_seconds(session.resolved_duration)
    if seconds is not None:
        return ResolvedDuration(seconds, DurationSource.PREVIOUS)

    if session.auto_detect_duration and metadata:
        seconds = to_seconds(metadata.get(METADATA_DURATION_KEY))
        if seconds is not None:
            return ResolvedDuration(seconds, DurationSource.METADATA)

    return UNKNOWN


async def resolve_duration_with_probe(
    session: UploadSessionDB,
    explicit: Optional[float] = None,
    probe: Optional[MetadataProbe] = None,
) -> ResolvedDuration:
    """Like resolve_duration, but reads object metadata only when no stronger signal exists."""
    resolved = resolve_duration(session, explicit)
    if resolved.source != DurationSource.UNKNOWN or probe is None or not session.auto_detect_duration:
        return resolved

    try:
        metadata = await probe()
    except Exception as e:
        logger.warning(f"Failed to read object metadata for duration session={session.session_id}: {e}")
        return resolved

    return resolve_duration(session, explicit, metadata)
