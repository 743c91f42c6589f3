"""Prometheus metrics for monitoring the balloon tracker."""

import logging
import time
from typing import Optional

from prometheus_client import Counter, Gauge, Histogram, start_http_server

logger = logging.getLogger(__name__)

CYCLES = Counter(
    "balloon_tracker_cycles_total",
    "Number of fetch/parse/reconcile cycles run",
    ["outcome"],
)

CYCLES_SKIPPED = Counter(
    "balloon_tracker_cycles_skipped_total",
    "Number of ticks or manual triggers dropped because a cycle was running",
    ["trigger"],
)

RECORDS = Counter(
    "balloon_tracker_records_total",
    "Candidates reconciled into the ledger",
    ["result"],
)

FETCH_ERRORS = Counter(
    "balloon_tracker_fetch_errors_total",
    "Number of standings page fetch errors",
    ["error_type"],
)

CONSECUTIVE_FAILURES = Gauge(
    "balloon_tracker_consecutive_failed_cycles",
    "Number of consecutive cycles that failed to fetch or reconcile",
)

LAST_SUCCESS_AGE = Gauge(
    "balloon_tracker_last_success_age_seconds",
    "Seconds since the last successful cycle",
)

FETCH_DURATION = Histogram(
    "balloon_tracker_fetch_duration_seconds",
    "Duration of standings page requests in seconds",
    buckets=[0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0],
)

CYCLE_DURATION = Histogram(
    "balloon_tracker_cycle_duration_seconds",
    "Duration of a full cycle in seconds",
    buckets=[0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0],
)


class PrometheusExporter:
    """Prometheus metrics exporter for the balloon tracker."""

    def __init__(self, port: int = 8000):
        """
        Initialize the Prometheus exporter.

        Args:
            port: Port to expose metrics on
        """
        self.port = port
        self.server_started = False

    def start_server(self) -> None:
        """Start the Prometheus metrics server."""
        if not self.server_started:
            try:
                start_http_server(self.port)
                self.server_started = True
                logger.info(f"Started Prometheus metrics server on port {self.port}")
            except Exception as e:
                logger.error(f"Failed to start Prometheus metrics server: {str(e)}")

    def record_cycle(self, outcome: str) -> None:
        """
        Record a completed cycle.

        Args:
            outcome: 'success', 'fetch_error', 'empty' or 'error'
        """
        CYCLES.labels(outcome=outcome).inc()

    def record_cycle_skipped(self, trigger: str) -> None:
        """
        Record a dropped tick or trigger.

        Args:
            trigger: 'tick' or 'manual'
        """
        CYCLES_SKIPPED.labels(trigger=trigger).inc()

    def record_records(self, new: int, existing: int, failed: int) -> None:
        """Record reconciliation counts of one batch."""
        if new:
            RECORDS.labels(result="new").inc(new)
        if existing:
            RECORDS.labels(result="existing").inc(existing)
        if failed:
            RECORDS.labels(result="failed").inc(failed)

    def record_fetch_error(self, error_type: str) -> None:
        """
        Record a fetch error.

        Args:
            error_type: Type of error (e.g., '5xx', '404', 'timeout', 'connection')
        """
        FETCH_ERRORS.labels(error_type=error_type).inc()

    def set_consecutive_failures(self, count: int) -> None:
        CONSECUTIVE_FAILURES.set(count)

    def set_last_success_age(self, age_seconds: float) -> None:
        LAST_SUCCESS_AGE.set(age_seconds)

    def observe_cycle_duration(self, duration_seconds: float) -> None:
        CYCLE_DURATION.observe(duration_seconds)

    def time_fetch(self) -> "RequestTimer":
        """
        Create a context manager for timing standings requests.

        Returns:
            RequestTimer context manager
        """
        return RequestTimer()


class RequestTimer:
    """Context manager for timing standings requests."""

    def __init__(self):
        self.start_time: Optional[float] = None

    def __enter__(self) -> "RequestTimer":
        self.start_time = time.time()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self.start_time is not None:
            FETCH_DURATION.observe(time.time() - self.start_time)
