"""Reconciliation of scraped candidates into the submission ledger."""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, List

from balloon_tracker.errors import LedgerError
from balloon_tracker.models.submission import BalloonStatus, SubmissionCandidate, SubmissionRecord
from balloon_tracker.storage.base_ledger import LedgerProtocol

logger = logging.getLogger(__name__)


@dataclass
class ReconciliationResult:
    """Counts from merging one batch of candidates into the ledger."""
    new_count: int = 0
    existing_count: int = 0
    failed_count: int = 0
    errors: List[str] = field(default_factory=list)


class SubmissionReconciler:
    """
    Merges candidates into the ledger with first-acceptance-wins semantics.

    The first detection of a (contest, team, problem) triple creates a
    waiting balloon; later detections leave the stored record untouched.
    Holds no state between calls.
    """

    def __init__(self, ledger: LedgerProtocol, prometheus_exporter=None):
        self.ledger = ledger
        self.prometheus_exporter = prometheus_exporter

    def reconcile(self, candidates: Iterable[SubmissionCandidate], contest_id: str) -> ReconciliationResult:
        """
        Insert unseen candidates for ``contest_id``, in input order.

        A ledger failure on one candidate is logged and counted; the remaining
        candidates are still processed.

        Args:
            candidates: Accepted submissions scraped from the standings page
            contest_id: Contest scope the records belong to

        Returns:
            ReconciliationResult with new, existing and failed counts
        """
        result = ReconciliationResult()

        for candidate in candidates:
            team_name = candidate.team_name.strip()
            problem_code = candidate.problem_code.strip().upper()
            try:
                existing = self.ledger.find_by_key(contest_id, team_name, problem_code)
                if existing is not None:
                    result.existing_count += 1
                    continue

                inserted = self.ledger.insert_if_absent(self._to_record(contest_id, team_name, problem_code, candidate.time))
                if inserted:
                    result.new_count += 1
                    logger.info(f"New: {team_name} - Problem {problem_code}")
                else:
                    # Lost the race to an identical insert
                    result.existing_count += 1

            except LedgerError as e:
                result.failed_count += 1
                result.errors.append(str(e))
                logger.error(f"Error inserting submission {team_name} - Problem {problem_code}: {e}")

        logger.info(
            f"Update complete: {result.new_count} new, {result.existing_count} existing"
            + (f", {result.failed_count} failed" if result.failed_count else "")
        )

        if self.prometheus_exporter:
            self.prometheus_exporter.record_records(result.new_count, result.existing_count, result.failed_count)

        return result

    @staticmethod
    def _to_record(contest_id: str, team_name: str, problem_code: str, time: str) -> SubmissionRecord:
        return SubmissionRecord(
            contest_id=contest_id,
            team_name=team_name,
            problem_code=problem_code,
            time=time,
            balloon_status=BalloonStatus.WAITING.value,
            submission_time=datetime.now(timezone.utc),
        )
