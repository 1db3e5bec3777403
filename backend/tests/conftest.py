"""Shared fixtures: in-memory SQLite stores, a frozen clock, a seeded curriculum and an API client."""

import os


# Settings are read once and cached; pin the test environment before any src import
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["ENVIRONMENT"] = "test"
os.environ["AUTH_PROVIDER"] = "none"
os.environ["TIMER_SWEEP_INTERVAL_SECONDS"] = "0"

from collections.abc import AsyncGenerator, Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from src.auth.config import DEFAULT_USER_ID
from src.classes.models import Assessment, Class, ClassResource, ClassVideo, Question
from src.classes.repository import SqlAlchemyClassRepository
from src.database.base import Base
from src.exams.models import Exam, ExamQuestion
from src.exams.repository import SqlAlchemyExamRepository
from src.progress.controller import ProgressionController
from src.progress.repositories import (
    SqlAlchemyAssessmentSubmissionRepository,
    SqlAlchemyAssignmentSubmissionRepository,
    SqlAlchemyClassTimerRepository,
    SqlAlchemyVideoProgressRepository,
)


UNLOCK_SECONDS = 24 * 60 * 60
START = datetime(2025, 3, 1, 9, 0, tzinfo=UTC)


class FrozenClock:
    """Clock that only moves when told to."""

    def __init__(self, now: datetime = START) -> None:
        self.current = now

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs: float) -> datetime:
        self.current += timedelta(**kwargs)
        return self.current


@dataclass
class Curriculum:
    """Ids of the seeded three-class sequence."""

    class_ids: list[int]
    video_ids: list[int]
    assessment_ids: list[int]
    question_ids: dict[int, list[int]]
    extra_video_id: int
    exam_id: int
    exam_question_ids: list[int]
    reading_resource_id: int
    essay_resource_id: int


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def user_id():
    return DEFAULT_USER_ID


@pytest_asyncio.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """One in-memory database per test, shared by every session of that test."""
    test_engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_maker: async_sessionmaker[AsyncSession]) -> AsyncGenerator[AsyncSession, None]:
    async with session_maker() as session:
        yield session


@pytest_asyncio.fixture
async def curriculum(db_session: AsyncSession) -> Curriculum:
    """Three classes in order.

    - Class 1: two videos, a reading and an essay resource, one assessment of two questions.
    - Class 2: one video, one assessment of one question.
    - Class 3: one video, no assessment.
    Plus a two-question final exam.
    """
    first = Class(title="Class 1", description="Foundations", order=1)
    first.videos = [
        ClassVideo(title="Intro", url="https://videos.example/1.mp4", order=1),
        ClassVideo(title="Deep dive", url="https://videos.example/1b.mp4", order=2),
    ]
    first.resources = [
        ClassResource(title="Reading", type="TEXT", content="Chapter one", order=1),
        ClassResource(title="Reflection", type="ESSAY", content="What did you learn?", requires_upload=True, order=2),
    ]
    first.assessments = [
        Assessment(
            title="Foundations check",
            questions=[
                Question(text="Pick B", options=["A", "B", "C"], correct_answer="B"),
                Question(text="Pick X", options=["X", "Y"], correct_answer="X"),
            ],
        )
    ]

    second = Class(title="Class 2", description="Practice", order=2)
    second.videos = [ClassVideo(title="Practice", url="https://videos.example/2.mp4", order=1)]
    second.assessments = [
        Assessment(
            title="Practice check",
            questions=[Question(text="Pick yes", options=["no", "yes"], correct_answer="yes")],
        )
    ]

    third = Class(title="Class 3", description="Wrap-up", order=3)
    third.videos = [ClassVideo(title="Wrap-up", url="https://videos.example/3.mp4", order=1)]

    exam = Exam(
        title="Final examination",
        questions=[
            ExamQuestion(text="2 + 2", options=["3", "4"], correct_answer="4"),
            ExamQuestion(text="Capital of France", options=["Paris", "Rome", "Oslo"], correct_answer="Paris"),
        ],
    )

    db_session.add_all([first, second, third, exam])
    await db_session.commit()

    classes = [first, second, third]
    return Curriculum(
        class_ids=[item.id for item in classes],
        video_ids=[item.videos[0].id for item in classes],
        assessment_ids=[first.assessments[0].id, second.assessments[0].id],
        question_ids={
            first.assessments[0].id: [question.id for question in first.assessments[0].questions],
            second.assessments[0].id: [question.id for question in second.assessments[0].questions],
        },
        extra_video_id=first.videos[1].id,
        exam_id=exam.id,
        exam_question_ids=[question.id for question in exam.questions],
        reading_resource_id=first.resources[0].id,
        essay_resource_id=first.resources[1].id,
    )


def _build_controller(
    session: AsyncSession,
    clock: FrozenClock,
    *,
    video_policy: str = "any",
    enforce_video_before_assessment: bool = True,
) -> ProgressionController:
    return ProgressionController(
        classes=SqlAlchemyClassRepository(session),
        videos=SqlAlchemyVideoProgressRepository(session),
        timers=SqlAlchemyClassTimerRepository(session),
        submissions=SqlAlchemyAssessmentSubmissionRepository(session),
        assignments=SqlAlchemyAssignmentSubmissionRepository(session),
        exams=SqlAlchemyExamRepository(session),
        clock=clock,
        unlock_seconds=UNLOCK_SECONDS,
        video_policy=video_policy,  # type: ignore[arg-type]
        enforce_video_before_assessment=enforce_video_before_assessment,
    )


@pytest.fixture
def controller(db_session: AsyncSession, clock: FrozenClock) -> ProgressionController:
    return _build_controller(db_session, clock)


@pytest.fixture
def controller_factory(db_session: AsyncSession, clock: FrozenClock) -> Callable[..., ProgressionController]:
    """Controllers over the test session with non-default progression settings."""

    def _factory(**kwargs: Any) -> ProgressionController:
        return _build_controller(db_session, clock, **kwargs)

    return _factory


@pytest_asyncio.fixture
async def client_factory(
    session_maker: async_sessionmaker[AsyncSession], clock: FrozenClock
) -> AsyncGenerator[Callable[[], Awaitable[AsyncClient]], None]:
    """Build API clients bound to the test database and frozen clock."""
    from src.database.session import get_db_session
    from src.main import app
    from src.middleware.security import limiter
    from src.progress.dependencies import get_clock

    async def _get_db_session() -> AsyncGenerator[AsyncSession, None]:
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_db_session] = _get_db_session
    app.dependency_overrides[get_clock] = lambda: clock
    limiter.enabled = False

    clients: list[AsyncClient] = []

    async def _factory() -> AsyncClient:
        client = AsyncClient(transport=ASGITransport(app=app), base_url="http://test")
        clients.append(client)
        return client

    yield _factory

    for client in clients:
        await client.aclose()
    app.dependency_overrides.clear()
    limiter.enabled = True
