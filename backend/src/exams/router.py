"""Final examination API endpoints."""

import logging

from fastapi import APIRouter, Depends

from src.auth import CurrentAuth
from src.exams.schemas import ExamResponse, ExamResultResponse, ExamSubmissionResponse, ExamSubmitRequest
from src.middleware.security import submission_route_limit
from src.progress.dependencies import Controller


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/exam", tags=["exam"])


@router.get("")
async def get_exam(controller: Controller) -> ExamResponse:
    """Get the examination without its correct answers."""
    exam = await controller.get_exam()
    return ExamResponse.model_validate(exam)


@router.post("/submit", dependencies=[Depends(submission_route_limit)])
async def submit_exam(request: ExamSubmitRequest, auth: CurrentAuth, controller: Controller) -> ExamResultResponse:
    """Score and record an examination attempt."""
    outcome = await controller.submit_examination(auth.user_id, request.answers)
    return ExamResultResponse.model_validate(outcome)


@router.get("/submissions")
async def list_exam_submissions(auth: CurrentAuth, controller: Controller) -> list[ExamSubmissionResponse]:
    """Every examination attempt of the current user, newest first."""
    submissions = await controller.list_exam_submissions(auth.user_id)
    return [ExamSubmissionResponse.model_validate(submission) for submission in submissions]
