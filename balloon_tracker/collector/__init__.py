"""Fetching, reconciling and scheduling of standings cycles."""

from .error_handler import ConsecutiveErrorTracker, with_exponential_backoff
from .fetcher import StandingsFetcher
from .poller import CycleSummary, PollerState, StandingsPoller, build_poller
from .reconciler import ReconciliationResult, SubmissionReconciler

__all__ = [
    "ConsecutiveErrorTracker",
    "CycleSummary",
    "PollerState",
    "ReconciliationResult",
    "StandingsFetcher",
    "StandingsPoller",
    "SubmissionReconciler",
    "build_poller",
    "with_exponential_backoff",
]
