"""
Pydantic Data Transfer Objects (DTOs) for the balloon tracker API.

These models are used for API request/response validation.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class SubmissionDTO(BaseModel):
    """
    DTO for a ledger entry.

    Mirrors SubmissionORM and is used for API responses.
    """
    id: int
    contest_id: str
    team_name: str
    problem_code: str
    time: str
    balloon_status: str
    submission_time: datetime
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class CycleSummaryDTO(BaseModel):
    """One fetch, parse and reconcile pass."""
    contest_id: str
    started_at: datetime
    duration_sec: float
    candidates: int
    new_count: int
    existing_count: int
    failed_count: int
    fetch_error: Optional[str] = None
    error: Optional[str] = None

    model_config = {"from_attributes": True}


class RefreshResponse(BaseModel):
    """Response of a manual refresh request."""
    triggered: bool
    summary: Optional[CycleSummaryDTO] = None


class ContestSummaryResponse(BaseModel):
    """Balloon counts and scraping state for the active contest."""
    contest_url: str
    contest_id: str
    poller_state: str
    waiting_count: int
    delivered_count: int
    total_count: int
    last_cycle: Optional[CycleSummaryDTO] = None


class ChangeContestRequest(BaseModel):
    """Request body for switching the tracked contest."""
    contest_url: str = Field(..., min_length=1, description="CoderOJ contest URL, e.g. https://www.coderoj.com/c/MCQBt7n")


class ContestResponse(BaseModel):
    """The contest currently tracked."""
    contest_url: str
    contest_id: str
    standings_url: str


class ResetResponse(BaseModel):
    """Number of ledger entries deleted by a reset."""
    contest_id: str
    deleted: int
