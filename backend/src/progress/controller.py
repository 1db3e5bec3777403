"""Progression controller: turns learner events into store mutations.

Events handled here are "video ended", "assessment submitted", "timer expired"
and "examination submitted". Every step awaits the previous one and the
controller never retries; a store failure surfaces to the caller.
"""

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import UUID

from src.classes.models import Assessment, Class, ClassVideo
from src.exams.models import Exam, ExamSubmission
from src.exceptions import ConflictError, ResourceNotFoundError, TransientStoreError, ValidationError
from src.progress.models import AssessmentSubmission, ClassAssignmentSubmission, ClassTimer, UserVideoProgress
from src.progress.protocols import (
    AssessmentSubmissionRepository,
    AssignmentSubmissionRepository,
    ClassRepository,
    ClassTimerRepository,
    Clock,
    ExamRepository,
    VideoProgressRepository,
)
from src.progress.scoring import find_invalid_answers, percent, score_answers, zero_score
from src.progress.timers import TimerService
from src.progress.unlock import (
    VideoCompletionPolicy,
    build_assessment_passed_map,
    build_video_watched_map,
    evaluate_unlocks,
)


logger = logging.getLogger(__name__)

PASSED_MESSAGE = "Perfect score! Assessment completed."
FIRST_FAILURE_MESSAGE = "You need 100% to complete this assessment. You can retake it."
RETAKE_FAILURE_MESSAGE = "You can retake this assessment to achieve 100%."
NO_ATTEMPTS_MESSAGE = "No attempts made yet."
ALREADY_PASSED_MESSAGE = "Assessment already completed with a perfect score"
ASSIGNMENT_SUBMITTED_MESSAGE = "Assignment submitted successfully"
MAX_ASSIGNMENT_TEXT_LENGTH = 10_000


def result_message(is_passed: bool, attempt_count: int) -> str:
    if is_passed:
        return PASSED_MESSAGE
    if attempt_count <= 1:
        return FIRST_FAILURE_MESSAGE
    return RETAKE_FAILURE_MESSAGE


@dataclass(slots=True)
class VideoEndedResult:
    record: UserVideoProgress
    class_id: int
    already_watched: bool
    next_class_timer: ClassTimer | None = None
    is_final_class: bool = False


@dataclass(slots=True)
class SubmissionOutcome:
    assessment_id: int
    score: int
    correct_answers: int
    total_questions: int
    is_passed: bool
    attempt_count: int
    message: str
    detailed_results: list[dict[str, Any]] = field(default_factory=list)
    completed_at: datetime | None = None

    @property
    def can_retake(self) -> bool:
        return not self.is_passed


@dataclass(slots=True)
class AssessmentResult:
    """Stored result of one assessment for one user; zeros when never attempted."""

    assessment_id: int
    score: int
    is_passed: bool
    attempt_count: int
    message: str
    answers: dict[str, Any] = field(default_factory=dict)
    detailed_results: list[dict[str, Any]] = field(default_factory=list)
    completed_at: datetime | None = None

    @property
    def can_retake(self) -> bool:
        return not self.is_passed


@dataclass(slots=True)
class AssessmentSummary:
    assessment_id: int
    title: str
    is_passed: bool
    score: int | None
    attempt_count: int
    completed_at: datetime | None


@dataclass(slots=True)
class ClassAssessmentResults:
    class_id: int
    title: str
    assessments: list[AssessmentSummary] = field(default_factory=list)


@dataclass(slots=True)
class ClassProgress:
    class_id: int
    title: str
    order: int
    video_watched: bool
    completed: bool
    locked: bool
    reason: str
    time_remaining_ms: int | None
    assessments: list[AssessmentSummary] = field(default_factory=list)


@dataclass(slots=True)
class ProgressOverview:
    classes: list[ClassProgress] = field(default_factory=list)

    @property
    def total_classes(self) -> int:
        return len(self.classes)

    @property
    def completed_classes(self) -> int:
        return sum(1 for item in self.classes if item.completed)

    @property
    def completion_percentage(self) -> int:
        if not self.classes:
            return 0
        return percent(self.completed_classes, self.total_classes)


@dataclass(slots=True)
class AutoCompletion:
    class_id: int
    assessment_id: int
    title: str

    @property
    def notification(self) -> str:
        return f"Assessment {self.title} auto-completed with 0% due to timer expiration."


@dataclass(slots=True)
class AutoCompleteReport:
    completed: list[AutoCompletion] = field(default_factory=list)
    failures: list[dict[str, Any]] = field(default_factory=list)
    expired_class_ids: list[int] = field(default_factory=list)

    @property
    def notifications(self) -> list[str]:
        return [item.notification for item in self.completed]


@dataclass(slots=True)
class ExamOutcome:
    exam_id: int
    submission_id: int
    score: int
    correct_answers: int
    total_questions: int
    submitted_at: datetime


def _stored_answers(answers: Mapping[Any, Any]) -> dict[str, Any]:
    return {str(question_id): option for question_id, option in answers.items()}


def _summaries(
    assessments: Sequence[Assessment], submissions: Mapping[int, AssessmentSubmission]
) -> list[AssessmentSummary]:
    summaries = []
    for assessment in assessments:
        submission = submissions.get(assessment.id)
        summaries.append(
            AssessmentSummary(
                assessment_id=assessment.id,
                title=assessment.title,
                is_passed=bool(submission and submission.is_passed),
                score=submission.score if submission else None,
                attempt_count=submission.attempt_count if submission else 0,
                completed_at=submission.completed_at if submission else None,
            )
        )
    return summaries


class ProgressionController:
    """Orchestrates the class progression of one user at a time."""

    def __init__(
        self,
        *,
        classes: ClassRepository,
        videos: VideoProgressRepository,
        timers: ClassTimerRepository,
        submissions: AssessmentSubmissionRepository,
        assignments: AssignmentSubmissionRepository,
        exams: ExamRepository,
        clock: Clock,
        unlock_seconds: int,
        video_policy: VideoCompletionPolicy = "any",
        enforce_video_before_assessment: bool = True,
    ) -> None:
        self.classes = classes
        self.videos = videos
        self.timers = timers
        self.submissions = submissions
        self.assignments = assignments
        self.exams = exams
        self.clock = clock
        self.video_policy = video_policy
        self.enforce_video_before_assessment = enforce_video_before_assessment
        self.timer_service = TimerService(classes, timers, clock, unlock_seconds)

    # Video events

    async def video_ended(self, user_id: UUID, class_id: int, video_id: int | None = None) -> VideoEndedResult:
        """Record a finished video and arm the next class's countdown.

        Repeated calls keep the first watched timestamp and leave timers alone.
        Without `video_id` the class's first video is used.
        """
        class_ = await self.classes.get(class_id)
        if class_ is None:
            raise ResourceNotFoundError("Class", class_id)
        video = await self._resolve_video(class_, video_id)

        now = self.clock.now()
        record, created = await self.videos.record_watched(user_id, video.id, now)

        ordered = await self.classes.list_ordered()
        is_final = bool(ordered) and ordered[-1].id == class_id

        if not created:
            logger.info(f"Video {video.id} already watched by user {user_id}; keeping {record.watched_at}")
            return VideoEndedResult(record=record, class_id=class_id, already_watched=True, is_final_class=is_final)

        logger.info(f"Recorded video {video.id} of class {class_id} as watched for user {user_id}")
        timer = None if is_final else await self.timer_service.arm_next_class(user_id, class_id, now)
        return VideoEndedResult(
            record=record,
            class_id=class_id,
            already_watched=False,
            next_class_timer=timer,
            is_final_class=is_final,
        )

    async def _resolve_video(self, class_: Class, video_id: int | None) -> ClassVideo:
        if video_id is None:
            if not class_.videos:
                raise ResourceNotFoundError("Video for class", class_.id)
            return class_.videos[0]
        video = await self.classes.get_video(video_id)
        if video is None or video.class_id != class_.id:
            raise ResourceNotFoundError("Video", video_id)
        return video

    async def list_watched(
        self, user_id: UUID, *, class_id: int | None = None, video_id: int | None = None
    ) -> Sequence[UserVideoProgress]:
        return await self.videos.list_watched(user_id, class_id=class_id, video_id=video_id)

    # Assessment events

    async def submit_assessment(self, user_id: UUID, class_id: int, answers: Mapping[Any, Any]) -> SubmissionOutcome:
        """Submit answers for the class's first assessment."""
        class_ = await self.classes.get(class_id)
        if class_ is None:
            raise ResourceNotFoundError("Class", class_id)
        if not class_.assessments:
            raise ResourceNotFoundError("Assessment for class", class_id)
        return await self._submit(user_id, class_, class_.assessments[0], answers)

    async def submit_assessment_by_id(
        self, user_id: UUID, assessment_id: int, answers: Mapping[Any, Any]
    ) -> SubmissionOutcome:
        assessment = await self.classes.get_assessment(assessment_id)
        if assessment is None:
            raise ResourceNotFoundError("Assessment", assessment_id)
        class_ = await self.classes.get(assessment.class_id)
        if class_ is None:
            raise ResourceNotFoundError("Class", assessment.class_id)
        return await self._submit(user_id, class_, assessment, answers)

    async def _submit(
        self, user_id: UUID, class_: Class, assessment: Assessment, answers: Mapping[Any, Any]
    ) -> SubmissionOutcome:
        if not assessment.questions:
            msg = f"Assessment {assessment.id} has no questions"
            raise ValidationError(msg)
        # A passed row is terminal; report it before any other precondition
        existing = await self.submissions.find(user_id, assessment.id)
        if existing is not None and existing.is_passed:
            logger.warning(f"Rejected resubmission of passed assessment {assessment.id} (user {user_id})")
            raise ConflictError(ALREADY_PASSED_MESSAGE, existing.to_result())

        if self.enforce_video_before_assessment:
            await self._require_video_watched(user_id, class_)

        result = score_answers(assessment.questions, answers)
        values = {
            "score": result.score_percent,
            "is_passed": result.is_passed,
            "answers": _stored_answers(answers),
            "detailed_results": result.detailed_results(),
            "completed_at": self.clock.now(),
        }

        if existing is None:
            created = await self.submissions.create_if_absent(user_id, assessment.id, values)
            if created is not None:
                logger.info(
                    f"Created submission for assessment {assessment.id} (user {user_id}): score={created.score}"
                )
                return self._outcome(created, result.correct_count, result.total_count)
            # Lost the race against a concurrent first submission
            existing = await self.submissions.find(user_id, assessment.id)
            if existing is None:
                raise TransientStoreError("create assessment submission")

        if existing.is_passed:
            logger.warning(f"Rejected resubmission of passed assessment {assessment.id} (user {user_id})")
            raise ConflictError(ALREADY_PASSED_MESSAGE, existing.to_result())

        updated = await self.submissions.update_retake(existing.id, values)
        if updated is None:
            current = await self.submissions.find(user_id, assessment.id)
            logger.warning(f"Assessment {assessment.id} was passed concurrently (user {user_id})")
            raise ConflictError(ALREADY_PASSED_MESSAGE, current.to_result() if current else existing.to_result())

        logger.info(
            f"Retake {updated.attempt_count} of assessment {assessment.id} (user {user_id}): score={updated.score}"
        )
        return self._outcome(updated, result.correct_count, result.total_count)

    async def _require_video_watched(self, user_id: UUID, class_: Class) -> None:
        if self.video_policy == "any":
            watched = await self.videos.find_watched(user_id, class_id=class_.id) is not None
        else:
            watched_ids = await self.videos.list_watched_video_ids(user_id)
            watched = build_video_watched_map([class_], watched_ids, self.video_policy).get(class_.id, False)
        if not watched:
            msg = f"Watch the video of class {class_.title} before submitting its assessment"
            raise ValidationError(msg)

    @staticmethod
    def _outcome(submission: AssessmentSubmission, correct: int, total: int) -> SubmissionOutcome:
        return SubmissionOutcome(
            assessment_id=submission.assessment_id,
            score=submission.score,
            correct_answers=correct,
            total_questions=total,
            is_passed=submission.is_passed,
            attempt_count=submission.attempt_count,
            message=result_message(submission.is_passed, submission.attempt_count),
            detailed_results=list(submission.detailed_results or []),
            completed_at=submission.completed_at,
        )

    async def get_assessment_result(self, user_id: UUID, assessment_id: int) -> AssessmentResult:
        if await self.classes.get_assessment(assessment_id) is None:
            raise ResourceNotFoundError("Assessment", assessment_id)

        submission = await self.submissions.find(user_id, assessment_id)
        if submission is None:
            return AssessmentResult(
                assessment_id=assessment_id,
                score=0,
                is_passed=False,
                attempt_count=0,
                message=NO_ATTEMPTS_MESSAGE,
            )
        return AssessmentResult(
            assessment_id=assessment_id,
            score=submission.score,
            is_passed=submission.is_passed,
            attempt_count=submission.attempt_count,
            message=result_message(submission.is_passed, submission.attempt_count),
            answers=dict(submission.answers or {}),
            detailed_results=list(submission.detailed_results or []),
            completed_at=submission.completed_at,
        )

    async def list_assessment_results(self, user_id: UUID) -> list[ClassAssessmentResults]:
        ordered = await self.classes.list_ordered()
        submissions = {item.assessment_id: item for item in await self.submissions.list_for_user(user_id)}
        return [
            ClassAssessmentResults(
                class_id=class_.id,
                title=class_.title,
                assessments=_summaries(class_.assessments, submissions),
            )
            for class_ in ordered
        ]

    # Timer expiry

    async def auto_complete_expired(
        self, user_id: UUID, class_id: int | None = None, now: datetime | None = None
    ) -> AutoCompleteReport:
        """Record a 0% attempt on every untouched assessment of classes whose timer ran out.

        A real submission always wins: only assessments without any row are filled.
        A failure on one class is logged and reported; the other classes still run.
        """
        now = now or self.clock.now()
        report = AutoCompleteReport()
        # Plain ids: a failed write rolls back the session and expires loaded timers
        expired = [
            timer.class_id
            for timer in await self.timers.list_active(user_id)
            if timer.is_expired(now) and (class_id is None or timer.class_id == class_id)
        ]
        for expired_class_id in expired:
            report.expired_class_ids.append(expired_class_id)
            await self._auto_complete_class(user_id, expired_class_id, now, report)
        return report

    async def sweep_expired_timers(self, now: datetime | None = None) -> AutoCompleteReport:
        """Auto-complete and retire every expired active timer across all users."""
        now = now or self.clock.now()
        report = AutoCompleteReport()
        expired = [(timer.user_id, timer.class_id) for timer in await self.timers.list_expired(now)]
        for user_id, class_id in expired:
            report.expired_class_ids.append(class_id)
            if not await self._auto_complete_class(user_id, class_id, now, report):
                continue
            try:
                timer = await self.timers.get(user_id, class_id)
                if timer is not None:
                    await self.timers.deactivate(timer, clear_expiry=False)
            except TransientStoreError as e:
                logger.exception(f"Could not retire expired timer of class {class_id} (user {user_id})")
                report.failures.append({"class_id": class_id, "error": e.message})
        return report

    async def _auto_complete_class(
        self, user_id: UUID, class_id: int, now: datetime, report: AutoCompleteReport
    ) -> bool:
        try:
            class_ = await self.classes.get(class_id)
            if class_ is None:
                raise ResourceNotFoundError("Class", class_id)
            for assessment in class_.assessments:
                zero = zero_score(assessment.questions)
                created = await self.submissions.create_if_absent(
                    user_id,
                    assessment.id,
                    {
                        "score": 0,
                        "is_passed": False,
                        "answers": {},
                        "detailed_results": zero.detailed_results(),
                        "completed_at": now,
                    },
                )
                if created is None:
                    continue
                logger.info(f"Auto-completed assessment {assessment.id} with 0% for user {user_id}")
                report.completed.append(
                    AutoCompletion(class_id=class_id, assessment_id=assessment.id, title=assessment.title)
                )
        except (ResourceNotFoundError, TransientStoreError) as e:
            logger.exception(f"Auto-completion failed for class {class_id} (user {user_id})")
            report.failures.append({"class_id": class_id, "error": e.message})
            return False
        return True

    # Written assignments

    async def submit_assignment(
        self, user_id: UUID, class_id: int, resource_id: int, *, content: str, text: str
    ) -> ClassAssignmentSubmission:
        """Append a written answer to an ESSAY resource of the class.

        Every call appends a new unreviewed row; there is no pass state and no
        effect on unlocking.
        """
        if await self.classes.get(class_id) is None:
            raise ResourceNotFoundError("Class", class_id)

        resource = await self.classes.get_resource(resource_id)
        if (
            resource is None
            or resource.class_id != class_id
            or resource.type != "ESSAY"
            or not resource.requires_upload
        ):
            msg = "Invalid or non-uploadable resource"
            raise ValidationError(msg)
        if not content.strip() or not text.strip():
            msg = "Assignment content and text cannot be empty"
            raise ValidationError(msg)
        if len(text) > MAX_ASSIGNMENT_TEXT_LENGTH:
            msg = f"Text submission exceeds maximum length of {MAX_ASSIGNMENT_TEXT_LENGTH:,} characters"
            raise ValidationError(msg)

        submission = await self.assignments.create(
            user_id,
            class_id,
            resource_id,
            content=content,
            text=text,
            submitted_at=self.clock.now(),
        )
        logger.info(f"Recorded assignment for resource {resource_id} of class {class_id} (user {user_id})")
        return submission

    async def list_assignments(
        self, user_id: UUID, class_id: int | None = None
    ) -> Sequence[ClassAssignmentSubmission]:
        return await self.assignments.list_for_user(user_id, class_id=class_id)

    # Examination

    async def get_exam(self) -> Exam:
        exam = await self.exams.get_current()
        if exam is None:
            raise ResourceNotFoundError("Exam", "current")
        return exam

    async def submit_examination(self, user_id: UUID, answers: Mapping[Any, Any]) -> ExamOutcome:
        """Score and append an examination attempt. No pass mark, no attempt limit."""
        if not answers:
            msg = "Answers cannot be empty"
            raise ValidationError(msg)

        exam = await self.get_exam()
        if not exam.questions:
            msg = f"Exam {exam.id} has no questions"
            raise ValidationError(msg)

        invalid = find_invalid_answers(exam.questions, answers)
        if invalid:
            msg = f"Invalid answers for questions: {', '.join(str(question_id) for question_id in invalid)}"
            raise ValidationError(msg)

        result = score_answers(exam.questions, answers)
        submission = await self.exams.create_submission(
            user_id,
            exam.id,
            score=result.score_percent,
            correct_answers=result.correct_count,
            total_questions=result.total_count,
            submitted_at=self.clock.now(),
        )
        logger.info(f"Recorded exam {exam.id} attempt for user {user_id}: score={result.score_percent}")
        return ExamOutcome(
            exam_id=exam.id,
            submission_id=submission.id,
            score=submission.score,
            correct_answers=submission.correct_answers,
            total_questions=submission.total_questions,
            submitted_at=submission.submitted_at,
        )

    async def list_exam_submissions(self, user_id: UUID) -> Sequence[ExamSubmission]:
        exam = await self.get_exam()
        return await self.exams.list_submissions(user_id, exam.id)

    # Read model

    async def get_progress_overview(self, user_id: UUID, now: datetime | None = None) -> ProgressOverview:
        """Ordered classes with their progress and freshly evaluated lock state."""
        now = now or self.clock.now()
        ordered = await self.classes.list_ordered()
        watched_ids = await self.videos.list_watched_video_ids(user_id)
        submissions = {item.assessment_id: item for item in await self.submissions.list_for_user(user_id)}
        timers = {timer.class_id: timer for timer in await self.timers.list_for_user(user_id)}

        video_watched = build_video_watched_map(ordered, watched_ids, self.video_policy)
        passed = build_assessment_passed_map((item.assessment_id, item.is_passed) for item in submissions.values())
        states = evaluate_unlocks(ordered, video_watched, passed, timers, now)

        overview = ProgressOverview()
        for class_ in ordered:
            state = states[class_.id]
            overview.classes.append(
                ClassProgress(
                    class_id=class_.id,
                    title=class_.title,
                    order=class_.order,
                    video_watched=video_watched.get(class_.id, False),
                    completed=state.completed,
                    locked=state.locked,
                    reason=state.reason,
                    time_remaining_ms=state.time_remaining_ms,
                    assessments=_summaries(class_.assessments, submissions),
                )
            )
        return overview

