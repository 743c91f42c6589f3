"""
Balloon tracking API endpoints.

Lists the balloons of the active contest, toggles their delivery status and
controls the poller (manual refresh, contest switch, reset).
"""

import asyncio
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException

from balloon_tracker.api.dependencies import get_ledger, get_poller
from balloon_tracker.collector.poller import CycleSummary, StandingsPoller
from balloon_tracker.errors import InvalidContestUrlError, LedgerError, RecordNotFoundError
from balloon_tracker.models.dtos import (
    ChangeContestRequest,
    ContestResponse,
    ContestSummaryResponse,
    CycleSummaryDTO,
    RefreshResponse,
    ResetResponse,
    SubmissionDTO,
)
from balloon_tracker.models.submission import BalloonStatus
from balloon_tracker.storage.base_ledger import LedgerProtocol

router = APIRouter()
logger = logging.getLogger(__name__)


def _summary_dto(summary: Optional[CycleSummary]) -> Optional[CycleSummaryDTO]:
    return CycleSummaryDTO.model_validate(summary) if summary is not None else None


@router.get("/submissions", response_model=List[SubmissionDTO])
async def list_submissions(
    poller: StandingsPoller = Depends(get_poller),
    ledger: LedgerProtocol = Depends(get_ledger),
):
    """
    List the balloons of the active contest.

    Waiting balloons come first, then delivered ones; within each group the
    most recently detected submission comes first.
    """
    try:
        records = await asyncio.to_thread(ledger.list_for_contest, poller.contest.contest_id)
    except LedgerError as e:
        logger.error(f"Error fetching submissions: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch submissions")
    return [SubmissionDTO.model_validate(r) for r in records]


@router.get("/summary", response_model=ContestSummaryResponse)
async def contest_summary(
    poller: StandingsPoller = Depends(get_poller),
    ledger: LedgerProtocol = Depends(get_ledger),
):
    """Balloon counts and poller state for the active contest."""
    contest = poller.contest
    try:
        counts = await asyncio.to_thread(ledger.count_by_status, contest.contest_id)
    except LedgerError as e:
        logger.error(f"Error counting submissions: {e}")
        raise HTTPException(status_code=500, detail="Failed to count submissions")

    waiting = counts.get(BalloonStatus.WAITING.value, 0)
    delivered = counts.get(BalloonStatus.DELIVERED.value, 0)
    return ContestSummaryResponse(
        contest_url=contest.url,
        contest_id=contest.contest_id,
        poller_state=poller.state.value,
        waiting_count=waiting,
        delivered_count=delivered,
        total_count=waiting + delivered,
        last_cycle=_summary_dto(poller.last_summary),
    )


async def _set_status(
    submission_id: int,
    status: BalloonStatus,
    poller: StandingsPoller,
    ledger: LedgerProtocol,
) -> SubmissionDTO:
    try:
        record = await asyncio.to_thread(ledger.update_status, submission_id, poller.contest.contest_id, status)
    except RecordNotFoundError:
        raise HTTPException(status_code=404, detail="Submission not found")
    except LedgerError as e:
        logger.error(f"Error updating submission {submission_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to update submission")

    logger.info(f"Submission {submission_id} marked {status.value}")
    return SubmissionDTO.model_validate(record)


@router.post("/submissions/{submission_id}/deliver", response_model=SubmissionDTO)
async def deliver(
    submission_id: int,
    poller: StandingsPoller = Depends(get_poller),
    ledger: LedgerProtocol = Depends(get_ledger),
):
    """Mark a balloon as delivered."""
    return await _set_status(submission_id, BalloonStatus.DELIVERED, poller, ledger)


@router.post("/submissions/{submission_id}/undeliver", response_model=SubmissionDTO)
async def undeliver(
    submission_id: int,
    poller: StandingsPoller = Depends(get_poller),
    ledger: LedgerProtocol = Depends(get_ledger),
):
    """Put a delivered balloon back into the waiting queue."""
    return await _set_status(submission_id, BalloonStatus.WAITING, poller, ledger)


@router.post("/refresh", response_model=RefreshResponse)
async def refresh(poller: StandingsPoller = Depends(get_poller)):
    """
    Scrape the standings page now.

    Dropped when a cycle is already running; ``triggered`` is then false.
    """
    summary = await poller.trigger_now()
    return RefreshResponse(triggered=summary is not None, summary=_summary_dto(summary))


@router.get("/contest", response_model=ContestResponse)
async def current_contest(poller: StandingsPoller = Depends(get_poller)):
    contest = poller.contest
    return ContestResponse(contest_url=contest.url, contest_id=contest.contest_id, standings_url=contest.standings_url)


@router.post("/contest", response_model=ContestResponse)
async def change_contest(
    request: ChangeContestRequest,
    poller: StandingsPoller = Depends(get_poller),
):
    """
    Switch scraping to another contest.

    Records previously stored under the new contest id are cleared first.
    """
    try:
        contest = await poller.switch_contest(request.contest_url)
    except InvalidContestUrlError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except LedgerError as e:
        logger.error(f"Error changing contest: {e}")
        raise HTTPException(status_code=500, detail="Failed to change contest")

    return ContestResponse(contest_url=contest.url, contest_id=contest.contest_id, standings_url=contest.standings_url)


@router.post("/reset", response_model=ResetResponse)
async def reset(poller: StandingsPoller = Depends(get_poller)):
    """Delete every balloon of the active contest."""
    try:
        deleted = await poller.reset_contest()
    except LedgerError as e:
        logger.error(f"Error resetting contest: {e}")
        raise HTTPException(status_code=500, detail="Failed to reset contest")

    return ResetResponse(contest_id=poller.contest.contest_id, deleted=deleted)
