"""Class progression: video watches, unlock timers, assessment and assignment submissions, lock state."""

from src.progress.models import AssessmentSubmission, ClassAssignmentSubmission, ClassTimer, UserVideoProgress


__all__ = [
    "AssessmentSubmission",
    "ClassAssignmentSubmission",
    "ClassTimer",
    "UserVideoProgress",
]
