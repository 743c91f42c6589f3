"""Defines the Ledger protocol for submission storage backends."""

from typing import Dict, List, Optional, Protocol

from balloon_tracker.models.submission import BalloonStatus, SubmissionORM, SubmissionRecord


class LedgerProtocol(Protocol):
    """
    A protocol that defines the keyed-record interface of the submission ledger.

    The natural key of a record is (contest_id, team_name, problem_code).
    """

    def find_by_key(self, contest_id: str, team_name: str, problem_code: str) -> Optional[SubmissionORM]:
        """Look up a record by its natural key."""
        ...

    def insert_if_absent(self, record: SubmissionRecord) -> bool:
        """
        Insert a record unless one with the same natural key exists.

        Returns:
            True if the record was inserted, False if the key was already taken.
        """
        ...

    def update_status(self, record_id: int, contest_id: str, status: BalloonStatus) -> SubmissionORM:
        """Overwrite the balloon status of a record scoped to ``contest_id``."""
        ...

    def delete_all_for_contest(self, contest_id: str) -> int:
        """Delete every record of a contest and return how many were removed."""
        ...

    def list_for_contest(self, contest_id: str) -> List[SubmissionORM]:
        """List records of a contest, waiting first, newest first."""
        ...

    def count_by_status(self, contest_id: str) -> Dict[str, int]:
        """Count records of a contest per balloon status."""
        ...
