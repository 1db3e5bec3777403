"""SQLAlchemy models for the gated class curriculum."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from src.database.base import Base
from src.database.types import JSONType, UTCDateTime, utcnow


class Class(Base):
    """One unit of curriculum; `order` defines the unlock sequence."""

    __tablename__ = "classes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    order: Mapped[int] = mapped_column(Integer, nullable=False, unique=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utcnow, onupdate=utcnow)

    videos: Mapped[list[ClassVideo]] = relationship(
        "ClassVideo",
        back_populates="class_",
        cascade="all, delete-orphan",
        order_by="ClassVideo.order",
    )
    assessments: Mapped[list[Assessment]] = relationship(
        "Assessment",
        back_populates="class_",
        cascade="all, delete-orphan",
        order_by="Assessment.id",
    )
    resources: Mapped[list[ClassResource]] = relationship(
        "ClassResource",
        back_populates="class_",
        cascade="all, delete-orphan",
        order_by="ClassResource.order",
    )


class ClassVideo(Base):
    """Video belonging to a class, played back in `order`."""

    __tablename__ = "class_videos"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    class_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("classes.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    url: Mapped[str] = mapped_column(String(500), nullable=False)
    poster_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    order: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    class_: Mapped[Class] = relationship("Class", back_populates="videos")


class ClassResource(Base):
    """Supplementary study material attached to a class."""

    __tablename__ = "class_resources"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    class_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("classes.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    type: Mapped[str] = mapped_column(String(50), nullable=False, default="TEXT")  # TEXT, LINK, PDF, ESSAY
    content: Mapped[str | None] = mapped_column(Text, nullable=True)
    resource_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    # Only ESSAY resources flagged here accept a written assignment
    requires_upload: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    order: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utcnow, onupdate=utcnow)

    class_: Mapped[Class] = relationship("Class", back_populates="resources")


class Assessment(Base):
    """Multiple-choice assessment gating a class; passes only at 100%."""

    __tablename__ = "assessments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    class_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("classes.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)

    class_: Mapped[Class] = relationship("Class", back_populates="assessments")
    questions: Mapped[list[Question]] = relationship(
        "Question",
        back_populates="assessment",
        cascade="all, delete-orphan",
        order_by="Question.id",
    )


class Question(Base):
    """Assessment question; the correct answer is stored as option text, not index."""

    __tablename__ = "assessment_questions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    assessment_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("assessments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    text: Mapped[str] = mapped_column(Text, nullable=False)
    options: Mapped[list[str]] = mapped_column(JSONType, nullable=False, default=list)
    correct_answer: Mapped[str] = mapped_column(Text, nullable=False)

    assessment: Mapped[Assessment] = relationship("Assessment", back_populates="questions")

    @validates("options")
    def validate_options(self, _key: str, options: list[str]) -> list[str]:
        """Options must be an ordered list of strings."""
        if not isinstance(options, list) or not all(isinstance(option, str) for option in options):
            msg = "Question options must be a list of strings"
            raise ValueError(msg)
        return options
