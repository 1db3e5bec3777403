"""Database models for per-user class progression state."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Integer, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from src.database.base import Base
from src.database.types import JSONType, UTCDateTime, utcnow


class UserVideoProgress(Base):
    """A user's watched record for one class video."""

    __tablename__ = "user_video_progress"
    __table_args__ = (
        UniqueConstraint("user_id", "video_id", name="uq_user_video_progress"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    video_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("class_videos.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    watched_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utcnow)

    def __repr__(self) -> str:
        """Return string representation of the progress."""
        return f"<UserVideoProgress(user_id={self.user_id}, video_id={self.video_id}, watched_at={self.watched_at})>"


class ClassTimer(Base):
    """Countdown that must elapse before a class opens for a user."""

    __tablename__ = "class_timers"
    __table_args__ = (
        UniqueConstraint("user_id", "class_id", name="uq_user_class_timer"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    class_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("classes.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    timer_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    timer_expires_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utcnow, onupdate=utcnow)

    def is_expired(self, now: datetime) -> bool:
        """Return True once the stored expiry has passed (regardless of the active flag)."""
        return self.timer_expires_at is not None and self.timer_expires_at <= now

    def time_remaining_ms(self, now: datetime) -> int | None:
        """Milliseconds until expiry, floored at zero; None without an expiry."""
        if self.timer_expires_at is None:
            return None
        return max(0, int((self.timer_expires_at - now).total_seconds() * 1000))


class AssessmentSubmission(Base):
    """The single, in-place updated submission of a user for one assessment."""

    __tablename__ = "assessment_submissions"
    __table_args__ = (
        UniqueConstraint("user_id", "assessment_id", name="uq_user_assessment_submission"),
        CheckConstraint("score >= 0 AND score <= 100", name="ck_submission_score_range"),
        CheckConstraint("is_passed = (score = 100)", name="ck_submission_pass_matches_score"),
        CheckConstraint("attempt_count >= 1", name="ck_submission_attempt_count"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    assessment_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("assessments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_passed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    attempt_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    # question id (as string key) -> selected option index
    answers: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    detailed_results: Mapped[list[dict[str, Any]]] = mapped_column(JSONType, nullable=False, default=list)
    completed_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utcnow)

    def to_result(self) -> dict[str, Any]:
        """Serialisable summary attached to conflict errors."""
        return {
            "id": self.id,
            "score": self.score,
            "isPassed": self.is_passed,
            "attemptCount": self.attempt_count,
            "completedAt": self.completed_at.isoformat() if self.completed_at else None,
        }


class ClassAssignmentSubmission(Base):
    """A written answer to an ESSAY resource. Append-only; review happens elsewhere."""

    __tablename__ = "class_assignment_submissions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    class_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("classes.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    resource_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("class_resources.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    submitted_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utcnow)
    reviewed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    remarks: Mapped[str | None] = mapped_column(Text, nullable=True)
