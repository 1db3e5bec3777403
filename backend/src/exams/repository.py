"""Examination store."""

from datetime import datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import selectinload

from src.database.repository import SessionRepository
from src.exams.models import Exam, ExamSubmission


class SqlAlchemyExamRepository(SessionRepository):
    """ExamRepository backed by an AsyncSession."""

    async def get_current(self) -> Exam | None:
        """Return the examination (lowest id) with its questions."""
        result = await self.session.execute(
            select(Exam).options(selectinload(Exam.questions)).order_by(Exam.id).limit(1)
        )
        return result.scalar_one_or_none()

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
        submission = ExamSubmission(
            user_id=user_id,
            exam_id=exam_id,
            score=score,
            correct_answers=correct_answers,
            total_questions=total_questions,
            submitted_at=submitted_at,
        )
        self.session.add(submission)
        await self._commit("record exam submission")
        await self.session.refresh(submission)
        return submission

    async def list_submissions(self, user_id: UUID, exam_id: int) -> list[ExamSubmission]:
        """Every attempt of a user at an exam, newest first."""
        result = await self.session.execute(
            select(ExamSubmission)
            .where(ExamSubmission.user_id == user_id, ExamSubmission.exam_id == exam_id)
            .order_by(ExamSubmission.submitted_at.desc(), ExamSubmission.id.desc())
        )
        return list(result.scalars().all())
