"""Curriculum module: ordered classes with videos, assessments and resources."""

from src.classes.models import Assessment, Class, ClassResource, ClassVideo, Question


__all__ = [
    "Assessment",
    "Class",
    "ClassResource",
    "ClassVideo",
    "Question",
]
