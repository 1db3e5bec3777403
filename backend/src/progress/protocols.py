"""Progress store protocols.

This module defines the contracts the progression controller depends on, so the
stores can be backed by the database in production and swapped out in tests.
"""

from collections.abc import Sequence
from datetime import datetime
from typing import Any, Protocol
from uuid import UUID

from src.classes.models import Assessment, Class, ClassResource, ClassVideo
from src.exams.models import Exam, ExamSubmission
from src.progress.models import AssessmentSubmission, ClassAssignmentSubmission, ClassTimer, UserVideoProgress


class Clock(Protocol):
    """Source of the current time for every time-dependent decision."""

    def now(self) -> datetime:
        """Return the current time as an aware UTC datetime."""
        ...


class ClassRepository(Protocol):
    """Read access to the ordered curriculum."""

    async def list_ordered(self) -> Sequence[Class]:
        """Return classes by ascending order with videos, assessments and questions loaded."""
        ...

    async def get(self, class_id: int) -> Class | None:
        """Return one class or None."""
        ...

    async def get_video(self, video_id: int) -> ClassVideo | None:
        """Return one video or None."""
        ...

    async def get_assessment(self, assessment_id: int) -> Assessment | None:
        """Return one assessment with questions or None."""
        ...

    async def get_resource(self, resource_id: int) -> ClassResource | None:
        """Return one resource or None."""
        ...


class VideoProgressRepository(Protocol):
    """Per (user, video) watched records."""

    async def find_watched(
        self, user_id: UUID, *, class_id: int | None = None, video_id: int | None = None
    ) -> UserVideoProgress | None:
        """Return a watched record of the class or video, or None."""
        ...

    async def record_watched(
        self, user_id: UUID, video_id: int, watched_at: datetime
    ) -> tuple[UserVideoProgress, bool]:
        """Create the watched record if absent; return (record, created). Never overwrites."""
        ...

    async def list_watched(
        self, user_id: UUID, *, class_id: int | None = None, video_id: int | None = None
    ) -> Sequence[UserVideoProgress]:
        """Return watched records, optionally filtered by class or video."""
        ...

    async def list_watched_video_ids(self, user_id: UUID) -> set[int]:
        """Return ids of every video the user has watched."""
        ...


class ClassTimerRepository(Protocol):
    """Per (user, class) unlock timers."""

    async def get(self, user_id: UUID, class_id: int) -> ClassTimer | None:
        """Return the timer for a class, or None."""
        ...

    async def upsert(
        self, user_id: UUID, class_id: int, *, expires_at: datetime | None, active: bool
    ) -> ClassTimer:
        """Create or overwrite the timer for a class."""
        ...

    async def list_for_user(self, user_id: UUID, class_id: int | None = None) -> Sequence[ClassTimer]:
        """Return all timers for a user, optionally one class."""
        ...

    async def list_active(self, user_id: UUID) -> Sequence[ClassTimer]:
        """Return timers flagged active for a user."""
        ...

    async def list_expired(self, now: datetime) -> Sequence[ClassTimer]:
        """Return active timers of every user whose expiry has passed."""
        ...

    async def deactivate(self, timer: ClassTimer, *, clear_expiry: bool) -> ClassTimer:
        """Flip a timer inactive, optionally clearing its expiry."""
        ...


class AssessmentSubmissionRepository(Protocol):
    """Per (user, assessment) submission rows."""

    async def find(self, user_id: UUID, assessment_id: int) -> AssessmentSubmission | None:
        """Return the submission or None."""
        ...

    async def create_if_absent(
        self, user_id: UUID, assessment_id: int, values: dict[str, Any]
    ) -> AssessmentSubmission | None:
        """Insert the first submission; return None if a row already exists."""
        ...

    async def update_retake(self, submission_id: int, values: dict[str, Any]) -> AssessmentSubmission | None:
        """Apply a retake to a not-yet-passed row; return None if it has been passed meanwhile."""
        ...

    async def list_for_user(self, user_id: UUID) -> Sequence[AssessmentSubmission]:
        """Return every submission of a user."""
        ...


class AssignmentSubmissionRepository(Protocol):
    """Append-only written assignment submissions."""

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
        """Append an unreviewed submission."""
        ...

    async def list_for_user(
        self, user_id: UUID, *, class_id: int | None = None
    ) -> Sequence[ClassAssignmentSubmission]:
        """Return a user's submissions, newest first."""
        ...


class ExamRepository(Protocol):
    """Final examination and its append-only submissions."""

    async def get_current(self) -> Exam | None:
        """Return the examination with questions, or None."""
        ...

    async def create_submission(
        self,
        user_id: UUID,
        exam_id: int,
        *,
        score: int,
        correct_answers: int,
        total_questions: int,
        submitted_at: datetime,
    ) -> ExamSubmission:
        """Append a submission record."""
        ...

    async def list_submissions(self, user_id: UUID, exam_id: int) -> Sequence[ExamSubmission]:
        """Return every attempt of a user at an exam, newest first."""
        ...
