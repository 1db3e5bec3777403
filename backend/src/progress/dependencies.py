"""FastAPI dependencies wiring the progression controller to the request session."""

from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from src.auth import CurrentAuth
from src.classes.repository import SqlAlchemyClassRepository
from src.config.settings import get_settings
from src.exams.repository import SqlAlchemyExamRepository
from src.progress.clock import system_clock
from src.progress.controller import ProgressionController
from src.progress.protocols import Clock
from src.progress.repositories import (
    SqlAlchemyAssessmentSubmissionRepository,
    SqlAlchemyAssignmentSubmissionRepository,
    SqlAlchemyClassTimerRepository,
    SqlAlchemyVideoProgressRepository,
)


def build_controller(session: AsyncSession, clock: Clock) -> ProgressionController:
    """Assemble a controller over SQLAlchemy stores sharing one session."""
    settings = get_settings()
    return ProgressionController(
        classes=SqlAlchemyClassRepository(session),
        videos=SqlAlchemyVideoProgressRepository(session),
        timers=SqlAlchemyClassTimerRepository(session),
        submissions=SqlAlchemyAssessmentSubmissionRepository(session),
        assignments=SqlAlchemyAssignmentSubmissionRepository(session),
        exams=SqlAlchemyExamRepository(session),
        clock=clock,
        unlock_seconds=settings.CLASS_UNLOCK_TIMER_SECONDS,
        video_policy=settings.VIDEO_COMPLETION_POLICY,
        enforce_video_before_assessment=settings.ENFORCE_VIDEO_BEFORE_ASSESSMENT,
    )


def get_clock() -> Clock:
    """Clock used for every time-dependent decision; overridden in tests."""
    return system_clock


def get_progression_controller(
    auth: CurrentAuth,
    clock: Annotated[Clock, Depends(get_clock)],
) -> ProgressionController:
    return build_controller(auth.session, clock)


Controller = Annotated[ProgressionController, Depends(get_progression_controller)]
