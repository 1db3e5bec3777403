"""Lock state of the class sequence for one user.

Everything here is a pure function of its inputs: the ordered classes, which
classes have their video watched, which assessments are passed, the user's
class timers and the current time. Lock state is recomputed on every read and
is never stored.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Literal, Protocol

from src.shared.utils.validators import parse_int_id


INVALID_CLASS_REASON = "Class data is invalid"

VideoCompletionPolicy = Literal["any", "all"]


class TimerLike(Protocol):
    timer_active: bool
    timer_expires_at: datetime | None


@dataclass(slots=True, frozen=True)
class UnlockState:
    locked: bool
    reason: str = ""
    completed: bool = False
    time_remaining_ms: int | None = None


@dataclass(slots=True, frozen=True)
class _ClassEntry:
    id: int | None
    title: str
    assessment_ids: tuple[int, ...] | None

    @property
    def is_valid(self) -> bool:
        return self.id is not None and self.assessment_ids is not None


def _read_entry(item: Any) -> _ClassEntry:
    """Pull the fields the evaluator needs out of a class-like object or mapping."""

    def field(name: str) -> Any:
        if isinstance(item, Mapping):
            return item.get(name)
        return getattr(item, name, None)

    class_id = parse_int_id(field("id"))
    title = field("title")
    title = title if isinstance(title, str) and title else f"Class {class_id}" if class_id else "the previous class"

    raw_assessments = field("assessments")
    if raw_assessments is None:
        return _ClassEntry(class_id, title, ())
    if isinstance(raw_assessments, str | bytes) or not isinstance(raw_assessments, Iterable):
        return _ClassEntry(class_id, title, None)

    assessment_ids: list[int] = []
    for assessment in raw_assessments:
        raw_id = assessment.get("id") if isinstance(assessment, Mapping) else getattr(assessment, "id", None)
        assessment_id = parse_int_id(raw_id)
        if assessment_id is None:
            return _ClassEntry(class_id, title, None)
        assessment_ids.append(assessment_id)
    return _ClassEntry(class_id, title, tuple(assessment_ids))


def _is_completed(
    entry: _ClassEntry, video_watched: Mapping[int, bool], assessment_passed: Mapping[int, bool]
) -> bool:
    if not entry.is_valid or not video_watched.get(entry.id, False):  # type: ignore[arg-type]
        return False
    return all(assessment_passed.get(assessment_id, False) for assessment_id in entry.assessment_ids or ())


def remaining_ms(timer: TimerLike | None, now: datetime) -> int | None:
    """Milliseconds left on a running timer, or None if it is not holding anything back."""
    if timer is None or not timer.timer_active or timer.timer_expires_at is None:
        return None
    if now >= timer.timer_expires_at:
        return None
    return max(0, int((timer.timer_expires_at - now).total_seconds() * 1000))


def format_remaining(ms: int) -> str:
    """Render a countdown as "Unlocks in 1h 2m 3s", leaving out zero hours."""
    hours, rest = divmod(ms, 60 * 60 * 1000)
    minutes, rest = divmod(rest, 60 * 1000)
    seconds = rest // 1000
    if hours:
        return f"Unlocks in {hours}h {minutes}m {seconds}s"
    return f"Unlocks in {minutes}m {seconds}s"


def evaluate_unlocks(
    classes: Sequence[Any],
    video_watched: Mapping[int, bool],
    assessment_passed: Mapping[int, bool],
    class_timers: Mapping[int, TimerLike],
    now: datetime,
) -> dict[int, UnlockState]:
    """Compute the lock state of every class in `classes` (ordered by position).

    - The first class is always open.
    - A completed class (video watched, every assessment passed) is open.
    - A class behind an incomplete class is locked and names that class.
    - Otherwise a running timer on the class keeps it locked until expiry.

    Entries without a usable integer id or with unreadable assessments come back
    locked under the key they were given (or their position when the id is
    unusable) and do not affect the evaluation of the rest of the list.
    """
    entries = [_read_entry(item) for item in classes]
    completed = [_is_completed(entry, video_watched, assessment_passed) for entry in entries]
    states: dict[int, UnlockState] = {}

    for index, entry in enumerate(entries):
        key = entry.id if entry.id is not None else -(index + 1)

        if not entry.is_valid:
            states[key] = UnlockState(locked=True, reason=INVALID_CLASS_REASON)
            continue

        if index == 0 or completed[index]:
            states[key] = UnlockState(locked=False, completed=completed[index])
            continue

        if not completed[index - 1]:
            previous = entries[index - 1]
            states[key] = UnlockState(
                locked=True,
                reason=f"Complete {previous.title}: watch the video and score 100% on all assessments",
            )
            continue

        left = remaining_ms(class_timers.get(key), now)
        if left is not None:
            states[key] = UnlockState(locked=True, reason=format_remaining(left), time_remaining_ms=left)
            continue

        states[key] = UnlockState(locked=False)

    return states


def build_video_watched_map(
    classes: Sequence[Any], watched_video_ids: Iterable[int], policy: VideoCompletionPolicy = "any"
) -> dict[int, bool]:
    """Map class id -> whether its video requirement is met under `policy`.

    "any" accepts one watched video of the class, "all" needs every one of them.
    A class without videos never counts as watched.
    """
    watched = set(watched_video_ids)
    result: dict[int, bool] = {}
    for item in classes:
        class_id = parse_int_id(getattr(item, "id", None))
        if class_id is None:
            continue
        video_ids = {video.id for video in getattr(item, "videos", None) or ()}
        if not video_ids:
            result[class_id] = False
        elif policy == "all":
            result[class_id] = video_ids <= watched
        else:
            result[class_id] = bool(video_ids & watched)
    return result


def build_assessment_passed_map(passed_by_assessment: Iterable[tuple[int, bool]]) -> dict[int, bool]:
    """Collapse (assessment id, is_passed) pairs into a lookup."""
    return {assessment_id: bool(is_passed) for assessment_id, is_passed in passed_by_assessment}
