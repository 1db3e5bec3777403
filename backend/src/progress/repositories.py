"""SQLAlchemy implementations of the progress store protocols.

Every at-most-one-row invariant is enforced by a unique constraint and a dialect
`INSERT .. ON CONFLICT`, never by find-then-create.
"""

from collections.abc import Sequence
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import select, update

from src.classes.models import ClassVideo
from src.database.repository import SessionRepository
from src.exceptions import TransientStoreError
from src.progress.models import AssessmentSubmission, ClassAssignmentSubmission, ClassTimer, UserVideoProgress


class SqlAlchemyVideoProgressRepository(SessionRepository):
    """VideoProgressRepository backed by the user_video_progress table."""

    async def _get(self, user_id: UUID, video_id: int) -> UserVideoProgress | None:
        result = await self.session.execute(
            select(UserVideoProgress)
            .where(UserVideoProgress.user_id == user_id, UserVideoProgress.video_id == video_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def find_watched(
        self, user_id: UUID, *, class_id: int | None = None, video_id: int | None = None
    ) -> UserVideoProgress | None:
        records = await self.list_watched(user_id, class_id=class_id, video_id=video_id)
        return records[0] if records else None

    async def record_watched(
        self, user_id: UUID, video_id: int, watched_at: datetime
    ) -> tuple[UserVideoProgress, bool]:
        stmt = (
            self._insert(UserVideoProgress)
            .values(user_id=user_id, video_id=video_id, watched_at=watched_at)
            .on_conflict_do_nothing(index_elements=["user_id", "video_id"])
        )
        result = await self._execute_write(stmt, "record video progress")
        created = result.rowcount == 1

        if not created:
            # A pre-existing row without a timestamp gets one; a set timestamp is never overwritten
            fill = (
                update(UserVideoProgress)
                .where(
                    UserVideoProgress.user_id == user_id,
                    UserVideoProgress.video_id == video_id,
                    UserVideoProgress.watched_at.is_(None),
                )
                .values(watched_at=watched_at)
                .execution_options(synchronize_session=False)
            )
            filled = await self._execute_write(fill, "record video progress")
            created = filled.rowcount == 1

        await self._commit("record video progress")
        record = await self._get(user_id, video_id)
        if record is None:
            raise TransientStoreError("record video progress")
        return record, created

    async def list_watched(
        self, user_id: UUID, *, class_id: int | None = None, video_id: int | None = None
    ) -> Sequence[UserVideoProgress]:
        stmt = (
            select(UserVideoProgress)
            .join(ClassVideo, ClassVideo.id == UserVideoProgress.video_id)
            .where(UserVideoProgress.user_id == user_id, UserVideoProgress.watched_at.is_not(None))
            .order_by(ClassVideo.class_id, ClassVideo.order)
        )
        if class_id is not None:
            stmt = stmt.where(ClassVideo.class_id == class_id)
        if video_id is not None:
            stmt = stmt.where(UserVideoProgress.video_id == video_id)
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def list_watched_video_ids(self, user_id: UUID) -> set[int]:
        result = await self.session.execute(
            select(UserVideoProgress.video_id).where(
                UserVideoProgress.user_id == user_id,
                UserVideoProgress.watched_at.is_not(None),
            )
        )
        return set(result.scalars().all())


class SqlAlchemyClassTimerRepository(SessionRepository):
    """ClassTimerRepository backed by the class_timers table."""

    async def get(self, user_id: UUID, class_id: int) -> ClassTimer | None:
        result = await self.session.execute(
            select(ClassTimer)
            .where(ClassTimer.user_id == user_id, ClassTimer.class_id == class_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def upsert(
        self, user_id: UUID, class_id: int, *, expires_at: datetime | None, active: bool
    ) -> ClassTimer:
        stmt = self._insert(ClassTimer).values(
            user_id=user_id,
            class_id=class_id,
            timer_active=active,
            timer_expires_at=expires_at,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["user_id", "class_id"],
            set_={
                "timer_active": stmt.excluded.timer_active,
                "timer_expires_at": stmt.excluded.timer_expires_at,
                "updated_at": stmt.excluded.updated_at,
            },
        )
        await self._execute_write(stmt, "update class timer")
        await self._commit("update class timer")

        timer = await self.get(user_id, class_id)
        if timer is None:
            raise TransientStoreError("update class timer")
        return timer

    async def list_for_user(self, user_id: UUID, class_id: int | None = None) -> Sequence[ClassTimer]:
        stmt = select(ClassTimer).where(ClassTimer.user_id == user_id).order_by(ClassTimer.class_id)
        if class_id is not None:
            stmt = stmt.where(ClassTimer.class_id == class_id)
        result = await self.session.execute(stmt.execution_options(populate_existing=True))
        return result.scalars().all()

    async def list_active(self, user_id: UUID) -> Sequence[ClassTimer]:
        result = await self.session.execute(
            select(ClassTimer)
            .where(ClassTimer.user_id == user_id, ClassTimer.timer_active.is_(True))
            .order_by(ClassTimer.class_id)
            .execution_options(populate_existing=True)
        )
        return result.scalars().all()

    async def list_expired(self, now: datetime) -> Sequence[ClassTimer]:
        result = await self.session.execute(
            select(ClassTimer)
            .where(
                ClassTimer.timer_active.is_(True),
                ClassTimer.timer_expires_at.is_not(None),
                ClassTimer.timer_expires_at <= now,
            )
            .order_by(ClassTimer.user_id, ClassTimer.class_id)
            .execution_options(populate_existing=True)
        )
        return result.scalars().all()

    async def deactivate(self, timer: ClassTimer, *, clear_expiry: bool) -> ClassTimer:
        timer.timer_active = False
        if clear_expiry:
            timer.timer_expires_at = None
        await self._commit("deactivate class timer")
        return timer


class SqlAlchemyAssessmentSubmissionRepository(SessionRepository):
    """AssessmentSubmissionRepository backed by the assessment_submissions table."""

    async def find(self, user_id: UUID, assessment_id: int) -> AssessmentSubmission | None:
        result = await self.session.execute(
            select(AssessmentSubmission)
            .where(
                AssessmentSubmission.user_id == user_id,
                AssessmentSubmission.assessment_id == assessment_id,
            )
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def create_if_absent(
        self, user_id: UUID, assessment_id: int, values: dict[str, Any]
    ) -> AssessmentSubmission | None:
        stmt = (
            self._insert(AssessmentSubmission)
            .values(user_id=user_id, assessment_id=assessment_id, attempt_count=1, **values)
            .on_conflict_do_nothing(index_elements=["user_id", "assessment_id"])
        )
        result = await self._execute_write(stmt, "create assessment submission")
        await self._commit("create assessment submission")
        if result.rowcount != 1:
            return None
        return await self.find(user_id, assessment_id)

    async def update_retake(self, submission_id: int, values: dict[str, Any]) -> AssessmentSubmission | None:
        stmt = (
            update(AssessmentSubmission)
            .where(
                AssessmentSubmission.id == submission_id,
                AssessmentSubmission.is_passed.is_(False),
            )
            .values(attempt_count=AssessmentSubmission.attempt_count + 1, **values)
            .execution_options(synchronize_session=False)
        )
        result = await self._execute_write(stmt, "update assessment submission")
        await self._commit("update assessment submission")
        if result.rowcount != 1:
            return None

        refreshed = await self.session.execute(
            select(AssessmentSubmission)
            .where(AssessmentSubmission.id == submission_id)
            .execution_options(populate_existing=True)
        )
        return refreshed.scalar_one()

    async def list_for_user(self, user_id: UUID) -> Sequence[AssessmentSubmission]:
        result = await self.session.execute(
            select(AssessmentSubmission)
            .where(AssessmentSubmission.user_id == user_id)
            .order_by(AssessmentSubmission.completed_at.desc())
        )
        return result.scalars().all()


class SqlAlchemyAssignmentSubmissionRepository(SessionRepository):
    """AssignmentSubmissionRepository backed by the class_assignment_submissions table."""

    async def create(
        self,
        user_id: UUID,
        class_id: int,
        resource_id: int,
        *,
        content: str,
        text: str,
        submitted_at: datetime,
    ) -> ClassAssignmentSubmission:
        submission = ClassAssignmentSubmission(
            user_id=user_id,
            class_id=class_id,
            resource_id=resource_id,
            content=content,
            text=text,
            submitted_at=submitted_at,
            reviewed=False,
        )
        self.session.add(submission)
        await self._commit("create assignment submission")
        await self.session.refresh(submission)
        return submission

    async def list_for_user(
        self, user_id: UUID, *, class_id: int | None = None
    ) -> Sequence[ClassAssignmentSubmission]:
        stmt = select(ClassAssignmentSubmission).where(ClassAssignmentSubmission.user_id == user_id)
        if class_id is not None:
            stmt = stmt.where(ClassAssignmentSubmission.class_id == class_id)
        result = await self.session.execute(
            stmt.order_by(ClassAssignmentSubmission.submitted_at.desc(), ClassAssignmentSubmission.id.desc())
        )
        return result.scalars().all()
