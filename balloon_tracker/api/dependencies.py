"""FastAPI dependencies resolving the components built in the app lifespan."""

from fastapi import HTTPException, Request

from balloon_tracker.collector.poller import StandingsPoller
from balloon_tracker.storage.base_ledger import LedgerProtocol


def get_poller(request: Request) -> StandingsPoller:
    poller = getattr(request.app.state, "poller", None)
    if poller is None:
        raise HTTPException(status_code=503, detail="Poller is not initialized")
    return poller


def get_ledger(request: Request) -> LedgerProtocol:
    ledger = getattr(request.app.state, "ledger", None)
    if ledger is None:
        raise HTTPException(status_code=503, detail="Database is not available")
    return ledger
