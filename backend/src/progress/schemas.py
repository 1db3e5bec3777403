"""Schemas for the progress API."""

from datetime import UTC, datetime
from typing import Any

from pydantic import Field, StrictInt, field_validator, model_validator

from src.shared.schemas import CamelModel


# Question id -> selected option index. Keys arrive as JSON strings and are coerced.
AnswerMap = dict[int, StrictInt]


class VideoWatchedRequest(CamelModel):
    """Schema for a finished video."""

    class_id: int = Field(..., gt=0)
    video_id: int | None = Field(None, gt=0, description="Defaults to the class's first video")


class AssessmentSubmitRequest(CamelModel):
    """Schema for submitting the first assessment of a class."""

    class_id: int = Field(..., gt=0)
    answers: AnswerMap


class AnswersRequest(CamelModel):
    answers: AnswerMap


class ClassTimerSetRequest(CamelModel):
    """Schema for creating or overwriting a class timer."""

    class_id: int = Field(..., gt=0)
    timer_expires_at: datetime | None = None
    timer_active: bool = True

    @field_validator("timer_expires_at")
    @classmethod
    def assume_utc(cls, value: datetime | None) -> datetime | None:
        """Treat naive timestamps as UTC."""
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value


class ClassTimerExtendRequest(CamelModel):
    """Either restart the countdown or add time to it."""

    additional_seconds: int | None = Field(None, gt=0)
    new_duration_seconds: int | None = Field(None, gt=0)

    @model_validator(mode="after")
    def require_one(self) -> "ClassTimerExtendRequest":
        if self.additional_seconds is None and self.new_duration_seconds is None:
            msg = "Either additionalSeconds or newDurationSeconds is required"
            raise ValueError(msg)
        return self


class AutoCompleteRequest(CamelModel):
    class_id: int | None = Field(None, gt=0)


class VideoProgressResponse(CamelModel):
    id: int
    video_id: int
    watched_at: datetime | None
    created_at: datetime


class ClassTimerResponse(CamelModel):
    class_id: int
    timer_active: bool
    timer_expires_at: datetime | None
    time_remaining_ms: int
    is_expired: bool


class VideoWatchedResponse(CamelModel):
    class_id: int
    progress: VideoProgressResponse
    already_watched: bool
    is_final_class: bool
    next_class_timer: ClassTimerResponse | None = None


class SubmissionResponse(CamelModel):
    """Result of an assessment submission."""

    assessment_id: int
    score: int
    correct_answers: int
    total_questions: int
    is_passed: bool
    can_retake: bool
    attempt_count: int
    message: str
    detailed_results: list[dict[str, Any]] = Field(default_factory=list)
    completed_at: datetime | None = None


class AssessmentResultResponse(CamelModel):
    """Stored result of one assessment; zeros when never attempted."""

    assessment_id: int
    score: int
    is_passed: bool
    can_retake: bool
    attempt_count: int
    message: str
    answers: dict[str, Any] = Field(default_factory=dict)
    detailed_results: list[dict[str, Any]] = Field(default_factory=list)
    completed_at: datetime | None = None


class AssessmentSummaryResponse(CamelModel):
    assessment_id: int
    title: str
    is_passed: bool
    score: int | None
    attempt_count: int
    completed_at: datetime | None


class ClassAssessmentResultsResponse(CamelModel):
    class_id: int
    title: str
    assessments: list[AssessmentSummaryResponse]


class ClassProgressResponse(CamelModel):
    """One class in the progress overview, with its lock state."""

    class_id: int
    title: str
    order: int
    video_watched: bool
    completed: bool
    locked: bool
    reason: str
    time_remaining_ms: int | None
    assessments: list[AssessmentSummaryResponse]


class ProgressOverviewResponse(CamelModel):
    classes: list[ClassProgressResponse]
    total_classes: int
    completed_classes: int
    completion_percentage: int


class TimerStatusResponse(CamelModel):
    active_timers: list[ClassTimerResponse]
    expired_timers: list[ClassTimerResponse]
    total_active: int
    total_expired: int
    cleaned_up: int


class AutoCompletionResponse(CamelModel):
    class_id: int
    assessment_id: int
    title: str
    notification: str


class AutoCompleteResponse(CamelModel):
    completed: list[AutoCompletionResponse]
    notifications: list[str]
    failures: list[dict[str, Any]]
    expired_class_ids: list[int]


class AssignmentSubmitRequest(CamelModel):
    """Schema for a written answer to an ESSAY resource."""

    class_id: int = Field(..., gt=0)
    resource_id: int = Field(..., gt=0)
    content: str = Field(..., min_length=1, description="Short title or summary of the submission")
    text: str = Field(..., min_length=1, description="The written answer")


class AssignmentSubmissionResponse(CamelModel):
    id: int
    class_id: int
    resource_id: int
    content: str
    text: str
    submitted_at: datetime
    reviewed: bool
    remarks: str | None = None


class AssignmentSubmitResponse(CamelModel):
    submission_id: int
    resource_id: int
    message: str
    submitted_at: datetime
