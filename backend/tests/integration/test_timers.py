"""Class timer lifecycle: set, extend, stop, inspect and clean up."""

from datetime import timedelta

import pytest

from src.exceptions import ResourceNotFoundError, ValidationError
from src.progress.timers import TimerView


@pytest.fixture
def timers(controller):
    return controller.timer_service


@pytest.mark.asyncio
async def test_set_timer_creates_then_overwrites(timers, curriculum, clock, user_id):
    class_id = curriculum.class_ids[1]

    created = await timers.set_timer(user_id, class_id, expires_at=clock.now() + timedelta(hours=1))
    replaced = await timers.set_timer(user_id, class_id, expires_at=clock.now() + timedelta(minutes=5))

    assert created.id == replaced.id
    assert replaced.timer_expires_at == clock.now() + timedelta(minutes=5)
    views = await timers.list_timers(user_id)
    assert [(view.class_id, view.time_remaining_ms) for view in views] == [(class_id, 300_000)]


@pytest.mark.asyncio
async def test_set_timer_for_unknown_class(timers, curriculum, clock, user_id):
    with pytest.raises(ResourceNotFoundError):
        await timers.set_timer(user_id, 9999, expires_at=clock.now())


@pytest.mark.asyncio
async def test_active_timer_needs_expiry(timers, curriculum, user_id):
    with pytest.raises(ValidationError):
        await timers.set_timer(user_id, curriculum.class_ids[1], expires_at=None)

    inactive = await timers.set_timer(user_id, curriculum.class_ids[1], expires_at=None, active=False)
    assert inactive.timer_active is False


@pytest.mark.asyncio
async def test_extend_adds_to_current_expiry(timers, curriculum, clock, user_id):
    class_id = curriculum.class_ids[1]
    expires_at = clock.now() + timedelta(hours=1)
    await timers.set_timer(user_id, class_id, expires_at=expires_at)

    extended = await timers.extend_timer(user_id, class_id, additional_seconds=600)

    assert extended.timer_expires_at == expires_at + timedelta(seconds=600)
    assert extended.timer_active is True


@pytest.mark.asyncio
async def test_extend_expired_timer_counts_from_now(timers, curriculum, clock, user_id):
    class_id = curriculum.class_ids[1]
    await timers.set_timer(user_id, class_id, expires_at=clock.now() + timedelta(minutes=1))
    clock.advance(hours=1)

    extended = await timers.extend_timer(user_id, class_id, additional_seconds=60)

    assert extended.timer_expires_at == clock.now() + timedelta(seconds=60)


@pytest.mark.asyncio
async def test_new_duration_restarts_and_reactivates(timers, curriculum, clock, user_id):
    class_id = curriculum.class_ids[1]
    await timers.set_timer(user_id, class_id, expires_at=clock.now() + timedelta(hours=5))
    await timers.deactivate(user_id, class_id)

    restarted = await timers.extend_timer(user_id, class_id, new_duration_seconds=120)

    assert restarted.timer_active is True
    assert restarted.timer_expires_at == clock.now() + timedelta(seconds=120)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "kwargs",
    [{}, {"additional_seconds": 0}, {"new_duration_seconds": -5}, {"additional_seconds": True}],
)
async def test_extend_rejects_bad_durations(timers, curriculum, clock, user_id, kwargs):
    class_id = curriculum.class_ids[1]
    await timers.set_timer(user_id, class_id, expires_at=clock.now() + timedelta(hours=1))

    with pytest.raises(ValidationError):
        await timers.extend_timer(user_id, class_id, **kwargs)


@pytest.mark.asyncio
async def test_extend_missing_timer(timers, curriculum, user_id):
    with pytest.raises(ResourceNotFoundError):
        await timers.extend_timer(user_id, curriculum.class_ids[1], additional_seconds=60)


@pytest.mark.asyncio
async def test_deactivate_clears_expiry(timers, curriculum, clock, user_id):
    class_id = curriculum.class_ids[1]
    await timers.set_timer(user_id, class_id, expires_at=clock.now() + timedelta(hours=1))

    stopped = await timers.deactivate(user_id, class_id)

    assert stopped.timer_active is False
    assert stopped.timer_expires_at is None
    assert (await timers.status(user_id)).total_active == 0


@pytest.mark.asyncio
async def test_deactivate_missing_timer(timers, curriculum, user_id):
    with pytest.raises(ResourceNotFoundError):
        await timers.deactivate(user_id, curriculum.class_ids[1])


@pytest.mark.asyncio
async def test_status_splits_running_and_expired(timers, curriculum, clock, user_id):
    running_id, expired_id = curriculum.class_ids[1], curriculum.class_ids[2]
    await timers.set_timer(user_id, running_id, expires_at=clock.now() + timedelta(hours=1))
    await timers.set_timer(user_id, expired_id, expires_at=clock.now() + timedelta(minutes=1))
    clock.advance(minutes=2)

    status = await timers.status(user_id)

    assert [view.class_id for view in status.active] == [running_id]
    assert [view.class_id for view in status.expired] == [expired_id]
    assert (status.total_active, status.total_expired, status.cleaned_up) == (1, 1, 0)
    assert status.expired[0].timer_active is False
    assert status.expired[0].is_expired is True


@pytest.mark.asyncio
async def test_status_cleanup_deactivates_but_keeps_expiry(timers, curriculum, clock, user_id):
    class_id = curriculum.class_ids[1]
    expires_at = clock.now() + timedelta(minutes=1)
    await timers.set_timer(user_id, class_id, expires_at=expires_at)
    clock.advance(minutes=2)

    status = await timers.status(user_id, cleanup=True)

    assert status.cleaned_up == 1
    stored = await timers.timers.get(user_id, class_id)
    assert stored.timer_active is False
    assert stored.timer_expires_at == expires_at
    assert (await timers.status(user_id)).total_expired == 0


@pytest.mark.asyncio
async def test_list_timers_filters_by_class(timers, curriculum, clock, user_id):
    await timers.set_timer(user_id, curriculum.class_ids[1], expires_at=clock.now() + timedelta(hours=1))
    await timers.set_timer(user_id, curriculum.class_ids[2], expires_at=clock.now() + timedelta(hours=2))

    views = await timers.list_timers(user_id, curriculum.class_ids[2])

    assert [view.class_id for view in views] == [curriculum.class_ids[2]]


@pytest.mark.asyncio
async def test_timer_view_of_expired_timer(timers, curriculum, clock, user_id):
    timer = await timers.set_timer(user_id, curriculum.class_ids[1], expires_at=clock.now() + timedelta(seconds=5))

    view = TimerView.of(timer, clock.now() + timedelta(seconds=6))

    assert view.timer_active is False
    assert view.is_expired is True
    assert view.time_remaining_ms == 0
