"""Deterministic scoring of multiple-choice answer maps.

Correctness is decided by option text: the option at the selected index must
equal the question's stored correct answer. Malformed answers are scored as
incorrect and never raise.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

from src.exceptions import ValidationError


PASSING_SCORE = 100


class ScorableQuestion(Protocol):
    id: int
    options: Sequence[str]
    correct_answer: str


@dataclass(slots=True, frozen=True)
class QuestionResult:
    question_id: int
    selected_index: int | None
    correct_answer: str
    is_correct: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "questionId": self.question_id,
            "userAnswer": self.selected_index,
            "correctAnswer": self.correct_answer,
            "isCorrect": self.is_correct,
        }


@dataclass(slots=True, frozen=True)
class ScoreResult:
    score_percent: int
    correct_count: int
    total_count: int
    per_question: list[QuestionResult] = field(default_factory=list)

    @property
    def is_passed(self) -> bool:
        return self.score_percent == PASSING_SCORE

    def detailed_results(self) -> list[dict[str, Any]]:
        return [result.to_dict() for result in self.per_question]


def _lookup_answer(answers: Mapping[Any, Any], question_id: int) -> Any:
    # Clients send question ids as JSON object keys, i.e. strings
    if question_id in answers:
        return answers[question_id]
    return answers.get(str(question_id))


def _as_index(value: Any) -> int | None:
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value


def _options_of(question: ScorableQuestion) -> Sequence[str]:
    options = question.options
    return options if isinstance(options, (list, tuple)) else ()


def _option_at(options: Sequence[str], index: int | None) -> str | None:
    if index is None or index < 0 or index >= len(options):
        return None
    return options[index]


def percent(correct: int, total: int) -> int:
    """Round correct/total to a whole percentage, halves rounding up."""
    if total <= 0:
        msg = "Cannot score an assessment without questions"
        raise ValidationError(msg)
    return (correct * 200 + total) // (2 * total)


def score_answers(questions: Sequence[ScorableQuestion], answers: Mapping[Any, Any] | None) -> ScoreResult:
    """Score an answer map of question id -> selected option index.

    Raises ValidationError only when there are no questions to score.
    """
    answers = answers or {}
    per_question: list[QuestionResult] = []
    correct = 0

    for question in questions:
        selected = _as_index(_lookup_answer(answers, question.id))
        is_correct = _option_at(_options_of(question), selected) == question.correct_answer
        if is_correct:
            correct += 1
        per_question.append(
            QuestionResult(
                question_id=question.id,
                selected_index=selected,
                correct_answer=question.correct_answer,
                is_correct=is_correct,
            )
        )

    return ScoreResult(
        score_percent=percent(correct, len(per_question)),
        correct_count=correct,
        total_count=len(per_question),
        per_question=per_question,
    )


def find_invalid_answers(questions: Sequence[ScorableQuestion], answers: Mapping[Any, Any]) -> list[int]:
    """Return ids of questions whose answer is present but not a valid option index."""
    invalid: list[int] = []
    for question in questions:
        raw = _lookup_answer(answers, question.id)
        if raw is None:
            continue
        if _option_at(_options_of(question), _as_index(raw)) is None:
            invalid.append(question.id)
    return invalid


def zero_score(questions: Sequence[ScorableQuestion]) -> ScoreResult:
    """Failing result recorded when an assessment is auto-completed unanswered."""
    return ScoreResult(
        score_percent=0,
        correct_count=0,
        total_count=len(questions),
        per_question=[
            QuestionResult(
                question_id=question.id,
                selected_index=None,
                correct_answer=question.correct_answer,
                is_correct=False,
            )
            for question in questions
        ],
    )
