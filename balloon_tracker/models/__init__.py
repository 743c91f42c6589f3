"""Domain models package."""

from .contest import ContestTarget, extract_contest_id
from .submission import BalloonStatus, Base, SubmissionCandidate, SubmissionORM, SubmissionRecord

__all__ = [
    "BalloonStatus",
    "Base",
    "ContestTarget",
    "SubmissionCandidate",
    "SubmissionORM",
    "SubmissionRecord",
    "extract_contest_id",
]
