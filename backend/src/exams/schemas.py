"""Schemas for the examination API."""

from datetime import datetime
from typing import Any

from pydantic import Field

from src.shared.schemas import CamelModel


class ExamQuestionResponse(CamelModel):
    """Exam question as shown to the learner, without the correct answer."""

    id: int
    text: str
    options: list[str]


class ExamResponse(CamelModel):
    id: int
    title: str
    questions: list[ExamQuestionResponse]


class ExamSubmitRequest(CamelModel):
    """Question id -> selected option index.

    Values are checked against each question by the controller so that a bad
    answer is reported with its question id.
    """

    answers: dict[int, Any] = Field(default_factory=dict)


class ExamResultResponse(CamelModel):
    exam_id: int
    submission_id: int
    score: int
    correct_answers: int
    total_questions: int
    submitted_at: datetime


class ExamSubmissionResponse(CamelModel):
    id: int
    exam_id: int
    score: int
    correct_answers: int
    total_questions: int
    submitted_at: datetime
