"""Lock state evaluation over the ordered class list."""

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from types import SimpleNamespace

import pytest

from src.progress.unlock import (
    INVALID_CLASS_REASON,
    build_assessment_passed_map,
    build_video_watched_map,
    evaluate_unlocks,
    format_remaining,
    remaining_ms,
)


NOW = datetime(2025, 3, 1, 9, 0, tzinfo=UTC)


@dataclass
class Timer:
    timer_active: bool
    timer_expires_at: datetime | None


@dataclass
class Item:
    id: int
    title: str
    assessments: list = field(default_factory=list)
    videos: list = field(default_factory=list)


def _classes(*assessment_ids: list[int]) -> list[Item]:
    return [
        Item(
            id=index + 1,
            title=f"Class {index + 1}",
            assessments=[SimpleNamespace(id=assessment_id) for assessment_id in ids],
            videos=[SimpleNamespace(id=100 + index)],
        )
        for index, ids in enumerate(assessment_ids)
    ]


def test_nothing_done_only_first_class_open():
    classes = _classes([11], [21], [31])

    states = evaluate_unlocks(classes, {}, {}, {}, NOW)

    assert states[1].locked is False
    assert states[1].completed is False
    assert states[2].locked is True
    assert "Complete Class 1" in states[2].reason
    assert states[3].locked is True
    assert "Complete Class 2" in states[3].reason


@pytest.mark.parametrize(
    ("watched", "passed", "timers"),
    [
        ({}, {}, {}),
        ({1: True}, {11: False}, {1: Timer(True, NOW + timedelta(hours=5))}),
        ({1: False}, {11: True}, {}),
    ],
)
def test_first_class_is_always_open(watched, passed, timers):
    classes = _classes([11], [21])

    assert evaluate_unlocks(classes, watched, passed, timers, NOW)[1].locked is False


def test_watched_class_without_assessments_is_completed_but_timer_still_gates_next():
    classes = _classes([], [21])
    timers = {2: Timer(True, NOW + timedelta(hours=24))}

    states = evaluate_unlocks(classes, {1: True}, {}, timers, NOW)

    assert states[1].completed is True
    assert states[2].locked is True
    assert states[2].reason == "Unlocks in 24h 0m 0s"
    assert states[2].time_remaining_ms == 24 * 60 * 60 * 1000


def test_running_timer_locks_until_expiry():
    classes = _classes([11], [21])
    timers = {2: Timer(True, NOW + timedelta(seconds=10))}

    before = evaluate_unlocks(classes, {1: True}, {11: True}, timers, NOW)
    after = evaluate_unlocks(classes, {1: True}, {11: True}, timers, NOW + timedelta(seconds=11))

    assert before[2].locked is True
    assert "0m 10s" in before[2].reason
    assert before[2].time_remaining_ms == 10_000
    assert after[2].locked is False
    assert after[2].reason == ""


def test_inactive_timer_does_not_lock():
    classes = _classes([11], [21])
    timers = {2: Timer(False, NOW + timedelta(hours=1))}

    states = evaluate_unlocks(classes, {1: True}, {11: True}, timers, NOW)

    assert states[2].locked is False


def test_failed_assessment_keeps_next_class_locked():
    classes = _classes([11, 12], [21])

    states = evaluate_unlocks(classes, {1: True}, {11: True, 12: False}, {}, NOW)

    assert states[1].completed is False
    assert states[2].locked is True


def test_completed_class_stays_open_behind_incomplete_predecessor():
    classes = _classes([11], [21], [31])
    watched = {3: True}
    passed = {31: True}
    timers = {3: Timer(True, NOW + timedelta(hours=1))}

    states = evaluate_unlocks(classes, watched, passed, timers, NOW)

    assert states[2].locked is True
    assert states[3].locked is False
    assert states[3].completed is True


def test_completion_survives_later_progress():
    classes = _classes([11], [21], [31])
    watched = {1: True}
    passed = {11: True}

    first = evaluate_unlocks(classes, watched, passed, {}, NOW)
    watched[2] = True
    passed[21] = False
    second = evaluate_unlocks(classes, watched, passed, {}, NOW + timedelta(days=3))

    assert first[1].completed is True
    assert second[1].completed is True


def test_malformed_entry_is_locked_without_affecting_others():
    classes = [
        Item(id=1, title="Class 1", assessments=[SimpleNamespace(id=11)]),
        {"id": "x", "title": "Broken"},
        {"id": 3, "title": "Class 3", "assessments": 42},
        Item(id=4, title="Class 4", assessments=[SimpleNamespace(id=None)]),
        Item(id=5, title="Class 5", assessments=[]),
    ]

    states = evaluate_unlocks(classes, {1: True, 5: True}, {11: True}, {}, NOW)

    assert states[1].locked is False
    assert states[-2] == states[3] == states[4]
    assert states[3].locked is True
    assert states[3].reason == INVALID_CLASS_REASON
    assert states[5].completed is True
    assert states[5].locked is False


def test_empty_class_list():
    assert evaluate_unlocks([], {}, {}, {}, NOW) == {}


@pytest.mark.parametrize(
    ("ms", "expected"),
    [
        (10_000, "Unlocks in 0m 10s"),
        (10_999, "Unlocks in 0m 10s"),
        (61_000, "Unlocks in 1m 1s"),
        (3_723_000, "Unlocks in 1h 2m 3s"),
    ],
)
def test_format_remaining(ms, expected):
    assert format_remaining(ms) == expected


def test_remaining_ms_of_stopped_or_expired_timer_is_none():
    assert remaining_ms(None, NOW) is None
    assert remaining_ms(Timer(True, None), NOW) is None
    assert remaining_ms(Timer(True, NOW), NOW) is None
    assert remaining_ms(Timer(True, NOW + timedelta(seconds=2)), NOW) == 2000


def test_video_policy_any_and_all():
    classes = [
        Item(id=1, title="Class 1", videos=[SimpleNamespace(id=100), SimpleNamespace(id=101)]),
        Item(id=2, title="Class 2", videos=[]),
    ]

    assert build_video_watched_map(classes, {100}, "any") == {1: True, 2: False}
    assert build_video_watched_map(classes, {100}, "all") == {1: False, 2: False}
    assert build_video_watched_map(classes, {100, 101}, "all")[1] is True


def test_assessment_passed_map():
    assert build_assessment_passed_map([(11, True), (12, False)]) == {11: True, 12: False}
