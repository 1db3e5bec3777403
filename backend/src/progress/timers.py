"""Class unlock timer lifecycle.

A timer moves through absent -> active -> expired -> inactive. Expiry is never
written by anyone: it is a property of the stored expiry and the clock.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from uuid import UUID

from src.exceptions import ResourceNotFoundError, ValidationError
from src.progress.models import ClassTimer
from src.progress.protocols import ClassRepository, ClassTimerRepository, Clock


logger = logging.getLogger(__name__)


@dataclass(slots=True)
class TimerView:
    """A timer as seen at one instant."""

    class_id: int
    timer_active: bool
    timer_expires_at: datetime | None
    time_remaining_ms: int
    is_expired: bool

    @classmethod
    def of(cls, timer: ClassTimer, now: datetime) -> "TimerView":
        expired = timer.is_expired(now)
        return cls(
            class_id=timer.class_id,
            # An expired timer no longer holds anything back, whatever its flag says
            timer_active=bool(timer.timer_active and not expired),
            timer_expires_at=timer.timer_expires_at,
            time_remaining_ms=timer.time_remaining_ms(now) or 0,
            is_expired=expired,
        )


@dataclass(slots=True)
class TimerStatus:
    active: list[TimerView] = field(default_factory=list)
    expired: list[TimerView] = field(default_factory=list)
    cleaned_up: int = 0

    @property
    def total_active(self) -> int:
        return len(self.active)

    @property
    def total_expired(self) -> int:
        return len(self.expired)


def _positive_seconds(name: str, value: int | None) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        msg = f"{name} must be a positive number of seconds"
        raise ValidationError(msg)
    return value


class TimerService:
    """Create, extend, stop and inspect per (user, class) unlock timers."""

    def __init__(
        self,
        classes: ClassRepository,
        timers: ClassTimerRepository,
        clock: Clock,
        unlock_seconds: int,
    ) -> None:
        self.classes = classes
        self.timers = timers
        self.clock = clock
        self.unlock_seconds = unlock_seconds

    async def arm_next_class(self, user_id: UUID, class_id: int, now: datetime | None = None) -> ClassTimer | None:
        """Start the countdown on the class after `class_id`.

        Returns None when `class_id` is the final class of the sequence.
        """
        now = now or self.clock.now()
        ordered = await self.classes.list_ordered()
        position = next((index for index, item in enumerate(ordered) if item.id == class_id), None)
        if position is None:
            raise ResourceNotFoundError("Class", class_id)
        if position + 1 >= len(ordered):
            logger.info(f"Class {class_id} is the final class; no timer armed for user {user_id}")
            return None

        next_class = ordered[position + 1]
        expires_at = now + timedelta(seconds=self.unlock_seconds)
        timer = await self.timers.upsert(user_id, next_class.id, expires_at=expires_at, active=True)
        logger.info(f"Armed timer for class {next_class.id} (user {user_id}) expiring at {expires_at.isoformat()}")
        return timer

    async def set_timer(
        self, user_id: UUID, class_id: int, *, expires_at: datetime | None, active: bool = True
    ) -> ClassTimer:
        """Create or overwrite the timer of a class."""
        if await self.classes.get(class_id) is None:
            raise ResourceNotFoundError("Class", class_id)
        if active and expires_at is None:
            msg = "An active timer needs an expiry time"
            raise ValidationError(msg)
        timer = await self.timers.upsert(user_id, class_id, expires_at=expires_at, active=active)
        logger.info(f"Set timer for class {class_id} (user {user_id}): active={active} expires_at={expires_at}")
        return timer

    async def extend_timer(
        self,
        user_id: UUID,
        class_id: int,
        *,
        additional_seconds: int | None = None,
        new_duration_seconds: int | None = None,
    ) -> ClassTimer:
        """Push a timer's expiry out and make it active again.

        `new_duration_seconds` restarts the countdown from now; otherwise
        `additional_seconds` is added to the later of the current expiry and now.
        """
        new_duration_seconds = _positive_seconds("new_duration_seconds", new_duration_seconds)
        additional_seconds = _positive_seconds("additional_seconds", additional_seconds)
        if new_duration_seconds is None and additional_seconds is None:
            msg = "Either additional_seconds or new_duration_seconds is required"
            raise ValidationError(msg)

        timer = await self.timers.get(user_id, class_id)
        if timer is None:
            raise ResourceNotFoundError("ClassTimer", class_id)

        now = self.clock.now()
        if new_duration_seconds is not None:
            expires_at = now + timedelta(seconds=new_duration_seconds)
        else:
            base = max(timer.timer_expires_at or now, now)
            expires_at = base + timedelta(seconds=additional_seconds or 0)

        timer = await self.timers.upsert(user_id, class_id, expires_at=expires_at, active=True)
        logger.info(f"Extended timer for class {class_id} (user {user_id}) to {expires_at.isoformat()}")
        return timer

    async def deactivate(self, user_id: UUID, class_id: int) -> ClassTimer:
        """Stop a timer and forget its expiry."""
        timer = await self.timers.get(user_id, class_id)
        if timer is None:
            raise ResourceNotFoundError("ClassTimer", class_id)
        timer = await self.timers.deactivate(timer, clear_expiry=True)
        logger.info(f"Deactivated timer for class {class_id} (user {user_id})")
        return timer

    async def list_timers(
        self, user_id: UUID, class_id: int | None = None, now: datetime | None = None
    ) -> list[TimerView]:
        now = now or self.clock.now()
        timers = await self.timers.list_for_user(user_id, class_id)
        return [TimerView.of(timer, now) for timer in timers]

    async def status(self, user_id: UUID, *, cleanup: bool = False, now: datetime | None = None) -> TimerStatus:
        """Split the user's active timers into running and expired.

        With `cleanup`, expired timers are flipped inactive. Their expiry is kept.
        """
        now = now or self.clock.now()
        result = TimerStatus()
        for timer in await self.timers.list_active(user_id):
            view = TimerView.of(timer, now)
            if not view.is_expired:
                result.active.append(view)
                continue
            result.expired.append(view)
            if cleanup:
                await self.timers.deactivate(timer, clear_expiry=False)
                result.cleaned_up += 1

        if result.cleaned_up:
            logger.info(f"Cleaned up {result.cleaned_up} expired timer(s) for user {user_id}")
        return result
