"""Exception types raised by the balloon tracker."""

from typing import Optional


class BalloonTrackerError(Exception):
    """Base class for all balloon tracker errors."""

    pass


class FetchError(BalloonTrackerError):
    """Standings page could not be fetched (network, timeout or HTTP status)."""

    def __init__(self, url: str, reason: str, status: Optional[int] = None):
        self.url = url
        self.reason = reason
        self.status = status
        super().__init__(f"Failed to fetch {url}: {reason}")


class LedgerError(BalloonTrackerError):
    """Storage failure in the submission ledger."""

    pass


class RecordNotFoundError(BalloonTrackerError):
    """A submission id did not resolve to a record of the active contest."""

    def __init__(self, record_id: int, contest_id: str):
        self.record_id = record_id
        self.contest_id = contest_id
        super().__init__(f"Submission {record_id} not found in contest {contest_id}")


class InvalidContestUrlError(ValueError):
    """Contest URL is not a CoderOJ contest URL."""

    pass
