"""Tests for the standings poller."""

import asyncio
import logging
import time
from typing import List, Optional
from unittest.mock import MagicMock, patch

import pytest

from balloon_tracker.collector.error_handler import ConsecutiveErrorTracker
from balloon_tracker.collector.poller import PollerState, StandingsPoller
from balloon_tracker.collector.reconciler import SubmissionReconciler
from balloon_tracker.errors import FetchError, InvalidContestUrlError, LedgerError
from balloon_tracker.models.contest import ContestTarget
from balloon_tracker.parsers.standings_parser import StandingsParser
from tests.conftest import make_record

CONTEST_A = "https://www.coderoj.com/c/AAA111"
CONTEST_B = "https://www.coderoj.com/c/BBB222"


class FakeFetcher:
    """Returns fixed markup; optionally blocks until ``gate`` is set."""

    def __init__(self, markup: str = "", error: Optional[Exception] = None):
        self.markup = markup
        self.error = error
        self.gate: Optional[asyncio.Event] = None
        self.calls: List[str] = []

    async def fetch(self, url: str) -> str:
        self.calls.append(url)
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.markup


async def wait_for(predicate, timeout: float = 2.0) -> None:
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.005)


def make_poller(ledger, fetcher, contest_url=CONTEST_A, threshold=5, exporter=None) -> StandingsPoller:
    return StandingsPoller(
        fetcher=fetcher,
        parser=StandingsParser(),
        reconciler=SubmissionReconciler(ledger),
        ledger=ledger,
        contest=ContestTarget.from_url(contest_url),
        interval_sec=30.0,
        error_tracker=ConsecutiveErrorTracker(threshold),
        prometheus_exporter=exporter,
    )


@pytest.fixture
def fetcher(standings_html):
    return FakeFetcher(standings_html)


class TestRunCycle:
    @pytest.mark.asyncio
    async def test_successful_cycle(self, ledger, fetcher):
        poller = make_poller(ledger, fetcher)

        summary = await poller.run_once()

        assert summary.outcome == "success"
        assert summary.contest_id == "AAA111"
        assert (summary.candidates, summary.new_count, summary.existing_count) == (4, 4, 0)
        assert fetcher.calls == [CONTEST_A + "/standings"]
        assert len(ledger.list_for_contest("AAA111")) == 4
        assert poller.last_summary is summary
        assert poller.state == PollerState.IDLE

    @pytest.mark.asyncio
    async def test_second_cycle_finds_existing(self, ledger, fetcher):
        poller = make_poller(ledger, fetcher)

        await poller.run_once()
        summary = await poller.run_once()

        assert (summary.new_count, summary.existing_count) == (0, 4)

    @pytest.mark.asyncio
    async def test_fetch_error_leaves_ledger_untouched(self, ledger):
        fetcher = FakeFetcher(error=FetchError(CONTEST_A, "HTTP 503 Service Unavailable", status=503))
        poller = make_poller(ledger, fetcher)

        summary = await poller.run_once()

        assert summary.outcome == "fetch_error"
        assert "503" in summary.fetch_error
        assert ledger.list_for_contest("AAA111") == []
        assert poller.error_tracker.consecutive_errors == 1
        assert poller.get_metrics()["cycles_failed"] == 1

    @pytest.mark.asyncio
    async def test_empty_page_logs_warning(self, ledger, caplog):
        poller = make_poller(ledger, FakeFetcher("<html><body>No table</body></html>"))

        with caplog.at_level(logging.WARNING):
            summary = await poller.run_once()

        assert summary.outcome == "empty"
        assert summary.failed is False
        assert "No submissions found" in caplog.text

    @pytest.mark.asyncio
    async def test_unexpected_error_is_contained(self, ledger, fetcher):
        poller = make_poller(ledger, fetcher)
        poller.parser = MagicMock()
        poller.parser.parse.side_effect = RuntimeError("boom")

        summary = await poller.run_once()

        assert summary.outcome == "error"
        assert summary.error == "boom"
        assert poller.state == PollerState.IDLE

    @pytest.mark.asyncio
    async def test_failure_threshold_logs_critical(self, ledger, caplog):
        poller = make_poller(ledger, FakeFetcher(error=FetchError(CONTEST_A, "timed out after 10.0s")), threshold=2)

        with caplog.at_level(logging.WARNING):
            await poller.run_once()
            await poller.run_once()

        assert any(r.levelno == logging.CRITICAL for r in caplog.records)

    @pytest.mark.asyncio
    async def test_success_resets_failure_count(self, ledger, standings_html):
        fetcher = FakeFetcher(error=FetchError(CONTEST_A, "connection refused"))
        poller = make_poller(ledger, fetcher)
        await poller.run_once()

        fetcher.error = None
        fetcher.markup = standings_html
        await poller.run_once()

        assert poller.error_tracker.consecutive_errors == 0
        assert poller.get_metrics()["last_success_age_sec"] is not None

    @pytest.mark.asyncio
    async def test_slow_ledger_does_not_block_event_loop(self, ledger, fetcher):
        poller = make_poller(ledger, fetcher)
        reconcile = poller.reconciler.reconcile

        def slow_reconcile(candidates, contest_id):
            time.sleep(0.2)
            return reconcile(candidates, contest_id)

        poller.reconciler.reconcile = slow_reconcile
        beats = 0

        async def heartbeat():
            nonlocal beats
            while True:
                await asyncio.sleep(0.01)
                beats += 1

        beat_task = asyncio.create_task(heartbeat())
        summary = await poller.run_once()
        beat_task.cancel()

        assert summary.new_count == 4
        assert beats >= 5

    @pytest.mark.asyncio
    async def test_metrics_are_exported(self, ledger, fetcher):
        exporter = MagicMock()
        poller = make_poller(ledger, fetcher, exporter=exporter)

        await poller.run_once()

        exporter.record_cycle.assert_called_once_with("success")
        exporter.observe_cycle_duration.assert_called_once()


class TestOverlapGuard:
    @pytest.mark.asyncio
    async def test_trigger_while_running_is_dropped(self, ledger, fetcher):
        fetcher.gate = asyncio.Event()
        poller = make_poller(ledger, fetcher)

        first = asyncio.create_task(poller.trigger_now())
        await wait_for(lambda: len(fetcher.calls) == 1)

        assert poller.state == PollerState.RUNNING
        assert await poller.trigger_now() is None

        fetcher.gate.set()
        summary = await first

        assert summary.new_count == 4
        assert len(fetcher.calls) == 1
        assert poller.get_metrics()["cycles_skipped"] == 1
        assert poller.state == PollerState.IDLE

    @pytest.mark.asyncio
    async def test_trigger_when_idle_runs_cycle(self, ledger, fetcher):
        poller = make_poller(ledger, fetcher)

        summary = await poller.trigger_now()

        assert summary is not None
        assert summary.outcome == "success"

    @pytest.mark.asyncio
    async def test_trigger_dropped_while_reset_is_queued(self, ledger, fetcher):
        poller = make_poller(ledger, fetcher)

        await poller._lock.acquire()
        resetting = asyncio.create_task(poller.reset_contest())
        await asyncio.sleep(0)
        poller._lock.release()

        # The reset has been woken but has not taken the lock yet
        assert await poller.trigger_now() is None
        assert await resetting == 0
        assert fetcher.calls == []
        assert poller.get_metrics()["cycles_skipped"] == 1
        assert poller.state == PollerState.IDLE


class TestSchedule:
    @pytest.mark.asyncio
    async def test_ticks_repeat_until_stopped(self, ledger, fetcher):
        poller = make_poller(ledger, fetcher)

        poller.start(interval_sec=0.01)
        await wait_for(lambda: len(fetcher.calls) >= 3)
        await poller.shutdown()
        calls = len(fetcher.calls)
        await asyncio.sleep(0.05)

        assert poller.scheduled is False
        assert len(fetcher.calls) == calls

    @pytest.mark.asyncio
    async def test_tick_during_running_cycle_is_dropped(self, ledger, fetcher):
        fetcher.gate = asyncio.Event()
        poller = make_poller(ledger, fetcher)

        poller.start(interval_sec=0.01)
        await asyncio.sleep(0.1)

        assert len(fetcher.calls) == 1
        assert poller.get_metrics()["cycles_skipped"] >= 1

        fetcher.gate.set()
        await poller.shutdown()
        assert poller.last_summary.outcome == "success"

    @pytest.mark.asyncio
    async def test_stop_does_not_interrupt_running_cycle(self, ledger, fetcher):
        fetcher.gate = asyncio.Event()
        poller = make_poller(ledger, fetcher)

        poller.start()
        await wait_for(lambda: len(fetcher.calls) == 1)
        await poller.stop()
        fetcher.gate.set()
        await poller.shutdown()

        assert poller.last_summary is not None
        assert poller.last_summary.outcome == "success"
        assert len(ledger.list_for_contest("AAA111")) == 4

    @pytest.mark.asyncio
    async def test_start_rejects_non_positive_interval(self, ledger, fetcher):
        poller = make_poller(ledger, fetcher)

        with pytest.raises(ValueError):
            poller.start(interval_sec=0)


class TestContestControl:
    @pytest.mark.asyncio
    async def test_switch_contest_keeps_other_contest_records(self, ledger, fetcher):
        ledger.insert_if_absent(make_record(contest_id="AAA111", team_name="Kept"))
        ledger.insert_if_absent(make_record(contest_id="BBB222", team_name="Stale"))
        poller = make_poller(ledger, fetcher)

        target = await poller.switch_contest(CONTEST_B)
        await wait_for(lambda: poller.last_summary is not None)
        await poller.shutdown()

        assert target.contest_id == "BBB222"
        assert poller.contest.contest_id == "BBB222"
        assert ledger.find_by_key("AAA111", "Kept", "A") is not None
        assert ledger.find_by_key("BBB222", "Stale", "A") is None
        assert fetcher.calls[-1] == CONTEST_B + "/standings"

    @pytest.mark.asyncio
    async def test_switch_contest_rejects_invalid_url(self, ledger, fetcher):
        poller = make_poller(ledger, fetcher)

        with pytest.raises(InvalidContestUrlError):
            await poller.switch_contest("https://example.com/contest/1")

        assert poller.contest.contest_id == "AAA111"
        assert poller.scheduled is False

    @pytest.mark.asyncio
    async def test_failed_switch_keeps_previous_contest_scheduled(self, ledger, fetcher):
        poller = make_poller(ledger, fetcher)
        poller.start()
        await wait_for(lambda: poller.last_summary is not None)

        with patch.object(ledger, "delete_all_for_contest", side_effect=LedgerError("db down")):
            with pytest.raises(LedgerError):
                await poller.switch_contest(CONTEST_B)

        assert poller.contest.contest_id == "AAA111"
        assert poller.scheduled is True
        await poller.shutdown()
        assert CONTEST_B + "/standings" not in fetcher.calls

    @pytest.mark.asyncio
    async def test_switch_waits_for_running_cycle(self, ledger, fetcher):
        fetcher.gate = asyncio.Event()
        poller = make_poller(ledger, fetcher)

        running = asyncio.create_task(poller.trigger_now())
        await wait_for(lambda: len(fetcher.calls) == 1)
        switching = asyncio.create_task(poller.switch_contest(CONTEST_B))
        await asyncio.sleep(0.01)

        assert not switching.done()
        assert poller.contest.contest_id == "AAA111"

        fetcher.gate.set()
        summary = await running
        await switching
        await poller.shutdown()

        assert summary.contest_id == "AAA111"
        assert len(ledger.list_for_contest("AAA111")) == 4

    @pytest.mark.asyncio
    async def test_reset_contest_deletes_active_contest_only(self, ledger, fetcher):
        ledger.insert_if_absent(make_record(contest_id="AAA111", problem_code="A"))
        ledger.insert_if_absent(make_record(contest_id="AAA111", problem_code="B"))
        ledger.insert_if_absent(make_record(contest_id="BBB222"))
        poller = make_poller(ledger, fetcher)

        deleted = await poller.reset_contest()

        assert deleted == 2
        assert ledger.list_for_contest("AAA111") == []
        assert len(ledger.list_for_contest("BBB222")) == 1
