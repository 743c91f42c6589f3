"""Periodic polling of a contest's standings page into the ledger."""

import asyncio
import enum
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, Optional

from balloon_tracker.collector.error_handler import ConsecutiveErrorTracker
from balloon_tracker.collector.fetcher import StandingsFetcher
from balloon_tracker.collector.reconciler import SubmissionReconciler
from balloon_tracker.config import Config
from balloon_tracker.errors import FetchError, LedgerError
from balloon_tracker.models.contest import ContestTarget
from balloon_tracker.parsers.standings_parser import StandingsParser
from balloon_tracker.storage.base_ledger import LedgerProtocol

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SEC = 30.0


class PollerState(str, enum.Enum):
    IDLE = "idle"
    RUNNING = "running"


@dataclass
class CycleSummary:
    """Outcome of one fetch, parse and reconcile pass."""
    contest_id: str
    started_at: datetime
    duration_sec: float = 0.0
    candidates: int = 0
    new_count: int = 0
    existing_count: int = 0
    failed_count: int = 0
    fetch_error: Optional[str] = None
    error: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.fetch_error is not None or self.error is not None

    @property
    def outcome(self) -> str:
        if self.fetch_error is not None:
            return "fetch_error"
        if self.error is not None:
            return "error"
        if self.candidates == 0:
            return "empty"
        return "success"


class StandingsPoller:
    """
    Single-instance scheduler for standings cycles.

    One asyncio lock gates every cycle. Scheduled ticks and manual triggers
    are dropped when a cycle holds it; contest switches and resets wait for
    it. Each cycle runs in its own task, so cancelling the schedule never
    interrupts a cycle in flight.
    """

    def __init__(
        self,
        fetcher: StandingsFetcher,
        parser: StandingsParser,
        reconciler: SubmissionReconciler,
        ledger: LedgerProtocol,
        contest: ContestTarget,
        interval_sec: float = DEFAULT_INTERVAL_SEC,
        error_tracker: Optional[ConsecutiveErrorTracker] = None,
        prometheus_exporter=None,
    ):
        """
        Initialize the poller.

        Args:
            fetcher: Standings page fetcher
            parser: Standings page parser
            reconciler: Reconciler writing candidates to the ledger
            ledger: Submission ledger, used for contest switches and resets
            contest: Contest to scrape initially
            interval_sec: Seconds between scheduled ticks
            error_tracker: Tracker for consecutive failed cycles
            prometheus_exporter: Optional Prometheus exporter for metrics
        """
        self.fetcher = fetcher
        self.parser = parser
        self.reconciler = reconciler
        self.ledger = ledger
        self.interval_sec = interval_sec
        self.error_tracker = error_tracker or ConsecutiveErrorTracker(5, prometheus_exporter)
        self.prometheus_exporter = prometheus_exporter

        self._contest = contest
        self._lock = asyncio.Lock()
        # Holders and waiters of the lock; ticks and triggers only start when it is 0
        self._pending = 0
        self._schedule_task: Optional[asyncio.Task] = None
        self._cycle_task: Optional[asyncio.Task] = None
        self.last_summary: Optional[CycleSummary] = None
        self.last_success_at: Optional[float] = None
        self.stats: Dict[str, int] = {
            "cycles_run": 0,
            "cycles_failed": 0,
            "cycles_skipped": 0,
            "total_new": 0,
            "total_existing": 0,
            "total_failed": 0,
        }

    @property
    def contest(self) -> ContestTarget:
        return self._contest

    @property
    def state(self) -> PollerState:
        return PollerState.RUNNING if self._lock.locked() else PollerState.IDLE

    @property
    def scheduled(self) -> bool:
        return self._schedule_task is not None and not self._schedule_task.done()

    def start(self, interval_sec: Optional[float] = None) -> None:
        """
        Start scraping on a schedule, replacing any existing schedule.

        The first cycle runs immediately. Must be called from a running event loop.
        """
        if interval_sec is not None:
            if interval_sec <= 0:
                raise ValueError("interval_sec must be greater than 0")
            self.interval_sec = interval_sec

        if self.scheduled:
            self._schedule_task.cancel()

        logger.info(f"Starting scraping for contest {self._contest} every {self.interval_sec}s")
        self._schedule_task = asyncio.create_task(self._schedule(self.interval_sec))

    async def stop(self) -> None:
        """Cancel future ticks. A cycle already in flight runs to completion."""
        task, self._schedule_task = self._schedule_task, None
        if task is None or task.done():
            return

        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Scraping stopped")

    async def shutdown(self) -> None:
        """Stop the schedule and wait for the in-flight cycle, if any."""
        await self.stop()
        if self._cycle_task is not None and not self._cycle_task.done():
            logger.info("Waiting for in-flight cycle to finish")
            await asyncio.shield(self._cycle_task)

    async def trigger_now(self) -> Optional[CycleSummary]:
        """
        Run a cycle immediately unless one is already running.

        Returns:
            The cycle summary, or None if the trigger was dropped
        """
        task = await self._begin_cycle("manual")
        if task is None:
            return None
        return await asyncio.shield(task)

    async def run_once(self) -> CycleSummary:
        """Run a cycle, waiting for any in-flight cycle to finish first."""
        async with self._exclusive():
            return await self._run_cycle()

    async def switch_contest(self, contest_url: str) -> ContestTarget:
        """
        Point the poller at another contest and restart the schedule.

        Records stored under the new contest id by an earlier run are deleted;
        records of every other contest are left untouched. If the delete fails
        the poller keeps its previous contest and its schedule is restarted.

        Raises:
            InvalidContestUrlError: If the URL is not a CoderOJ contest URL
            LedgerError: If the stale records could not be deleted
        """
        target = ContestTarget.from_url(contest_url, strict=True)

        await self.stop()
        try:
            async with self._exclusive():
                deleted = await asyncio.to_thread(self.ledger.delete_all_for_contest, target.contest_id)
                previous, self._contest = self._contest, target
                self.last_summary = None
            logger.info(
                f"Switched contest from {previous.contest_id} to {target.contest_id}, "
                f"cleared {deleted} stale records"
            )
        except LedgerError as e:
            logger.error(f"Could not switch to contest {target.contest_id}, staying on {self._contest.contest_id}: {e}")
            raise
        finally:
            self.start()
        return target

    async def reset_contest(self) -> int:
        """
        Delete every record of the active contest.

        Returns:
            Number of records deleted
        """
        async with self._exclusive():
            contest_id = self._contest.contest_id
            deleted = await asyncio.to_thread(self.ledger.delete_all_for_contest, contest_id)
        logger.info(f"Reset contest {contest_id}: deleted {deleted} records")
        return deleted

    def get_metrics(self) -> Dict[str, Any]:
        """
        Get poller metrics.

        Returns:
            Dictionary with cycle counters and the current state
        """
        last_success_age = time.time() - self.last_success_at if self.last_success_at else None
        if self.prometheus_exporter and last_success_age is not None:
            self.prometheus_exporter.set_last_success_age(last_success_age)

        return {
            **self.stats,
            "contest_id": self._contest.contest_id,
            "state": self.state.value,
            "scheduled": self.scheduled,
            "interval_sec": self.interval_sec,
            "consecutive_failures": self.error_tracker.consecutive_errors,
            "last_success_age_sec": last_success_age,
        }

    async def _schedule(self, interval_sec: float) -> None:
        try:
            while True:
                await self._begin_cycle("tick")
                await asyncio.sleep(interval_sec)
        except asyncio.CancelledError:
            logger.debug("Poller schedule cancelled")
            raise

    @asynccontextmanager
    async def _exclusive(self) -> AsyncIterator[None]:
        self._pending += 1
        try:
            async with self._lock:
                yield
        finally:
            self._pending -= 1

    async def _begin_cycle(self, trigger: str) -> Optional[asyncio.Task]:
        if self._pending or self._lock.locked():
            self.stats["cycles_skipped"] += 1
            if self.prometheus_exporter:
                self.prometheus_exporter.record_cycle_skipped(trigger)
            logger.info(f"Cycle already running or pending, dropping {trigger} trigger")
            return None

        # Nobody holds or waits for the lock, so this acquire does not yield
        self._pending += 1
        await self._lock.acquire()
        self._cycle_task = asyncio.create_task(self._locked_cycle())
        return self._cycle_task

    async def _locked_cycle(self) -> CycleSummary:
        try:
            return await self._run_cycle()
        finally:
            self._lock.release()
            self._pending -= 1

    async def _run_cycle(self) -> CycleSummary:
        contest = self._contest
        cycle_start = time.time()
        summary = CycleSummary(contest_id=contest.contest_id, started_at=datetime.now(timezone.utc))

        try:
            markup = await self.fetcher.fetch(contest.standings_url)
            candidates = self.parser.parse(markup)
            summary.candidates = len(candidates)

            if not candidates:
                logger.warning("No submissions found. The scraper might need adjustment.")
            else:
                result = await asyncio.to_thread(self.reconciler.reconcile, candidates, contest.contest_id)
                summary.new_count = result.new_count
                summary.existing_count = result.existing_count
                summary.failed_count = result.failed_count

        except FetchError as e:
            summary.fetch_error = str(e)
            logger.error(f"Error scraping contest {contest.contest_id}: {e}")
        except Exception as e:
            summary.error = str(e) or type(e).__name__
            logger.exception(f"Unexpected error in cycle for contest {contest.contest_id}")

        summary.duration_sec = time.time() - cycle_start
        self._record(summary)
        return summary

    def _record(self, summary: CycleSummary) -> None:
        self.last_summary = summary
        self.stats["cycles_run"] += 1
        self.stats["total_new"] += summary.new_count
        self.stats["total_existing"] += summary.existing_count
        self.stats["total_failed"] += summary.failed_count

        if summary.failed:
            self.stats["cycles_failed"] += 1
            self.error_tracker.record_error()
            if self.error_tracker.threshold_reached():
                logger.critical(
                    f"{self.error_tracker.consecutive_errors} consecutive cycles failed "
                    f"for contest {summary.contest_id}; polling continues"
                )
        else:
            self.error_tracker.record_success()
            self.last_success_at = time.time()

        if self.prometheus_exporter:
            self.prometheus_exporter.record_cycle(summary.outcome)
            self.prometheus_exporter.observe_cycle_duration(summary.duration_sec)
            if not summary.failed:
                self.prometheus_exporter.set_last_success_age(0.0)

        logger.info(
            f"Cycle for {summary.contest_id} finished in {summary.duration_sec:.2f}s ({summary.outcome})"
        )


def build_poller(
    config: Config,
    ledger: LedgerProtocol,
    fetcher: Optional[StandingsFetcher] = None,
    prometheus_exporter=None,
) -> StandingsPoller:
    """Wire a poller for the configured contest."""
    return StandingsPoller(
        fetcher=fetcher or StandingsFetcher(config.fetch, prometheus_exporter),
        parser=StandingsParser(),
        reconciler=SubmissionReconciler(ledger, prometheus_exporter),
        ledger=ledger,
        contest=ContestTarget.from_url(config.contest_url),
        interval_sec=config.poll_interval_sec,
        error_tracker=ConsecutiveErrorTracker(config.failure_threshold, prometheus_exporter),
        prometheus_exporter=prometheus_exporter,
    )
