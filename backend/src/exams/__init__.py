"""Final examination module."""

from src.exams.models import Exam, ExamQuestion, ExamSubmission


__all__ = [
    "Exam",
    "ExamQuestion",
    "ExamSubmission",
]
