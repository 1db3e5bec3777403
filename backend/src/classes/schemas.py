"""Pydantic schemas for the classes API."""

from datetime import datetime

from pydantic import Field

from src.shared.schemas import CamelModel


class VideoResponse(CamelModel):
    """Schema for a class video."""

    id: int = Field(..., description="Video ID")
    title: str = Field(..., description="Video title")
    url: str = Field(..., description="Playback URL")
    poster_url: str | None = Field(None, description="Poster image URL")
    order: int = Field(..., description="Playback order within the class")


class QuestionResponse(CamelModel):
    """Schema for an assessment question (correct answer withheld)."""

    id: int = Field(..., description="Question ID")
    text: str = Field(..., description="Question text")
    options: list[str] = Field(default_factory=list, description="Ordered answer options")


class AssessmentResponse(CamelModel):
    """Schema for a class assessment."""

    id: int = Field(..., description="Assessment ID")
    title: str = Field(..., description="Assessment title")
    questions: list[QuestionResponse] = Field(default_factory=list, description="Questions in order")


class ResourceResponse(CamelModel):
    """Schema for supplementary class material."""

    id: int
    title: str
    type: str
    content: str | None = None
    resource_url: str | None = None
    requires_upload: bool = False
    order: int
    created_at: datetime | None = None
    updated_at: datetime | None = None


class ClassResponse(CamelModel):
    """Schema for a class with its nested content."""

    id: int = Field(..., description="Class ID")
    title: str = Field(..., description="Class title")
    description: str | None = Field(None, description="Class description")
    order: int = Field(..., description="Position in the unlock sequence")
    videos: list[VideoResponse] = Field(default_factory=list)
    assessments: list[AssessmentResponse] = Field(default_factory=list)
    resources: list[ResourceResponse] = Field(default_factory=list)
