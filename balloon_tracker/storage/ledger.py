"""
SQLAlchemy-based submission ledger.

Each operation runs in its own session and commits on its own; the ledger
never spans several records in one transaction.
"""

import logging
from typing import Dict, List, Optional

from sqlalchemy import case, delete, func, insert, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from balloon_tracker.errors import LedgerError, RecordNotFoundError
from balloon_tracker.models.submission import BalloonStatus, SubmissionORM, SubmissionRecord
from balloon_tracker.storage.database import session_scope

logger = logging.getLogger(__name__)

NATURAL_KEY_COLUMNS = ["contest_id", "team_name", "problem_code"]


class SQLAlchemyLedger:
    """Ledger of balloon submissions stored through the SQLAlchemy ORM."""

    def __init__(self, session_factory: sessionmaker):
        """
        Initialize the ledger.

        Args:
            session_factory: Session factory returned by ``init_db``.
        """
        self.session_factory = session_factory

    def find_by_key(self, contest_id: str, team_name: str, problem_code: str) -> Optional[SubmissionORM]:
        """Look up a record by (contest_id, team_name, problem_code)."""
        try:
            with session_scope(self.session_factory) as db:
                stmt = select(SubmissionORM).where(
                    SubmissionORM.contest_id == contest_id,
                    SubmissionORM.team_name == team_name,
                    SubmissionORM.problem_code == problem_code,
                )
                return db.execute(stmt).scalar_one_or_none()
        except SQLAlchemyError as e:
            raise LedgerError(f"Lookup failed for {team_name}/{problem_code} in {contest_id}: {e}") from e

    def insert_if_absent(self, record: SubmissionRecord) -> bool:
        """
        Insert a record unless its natural key is already taken.

        Uses the dialect's ``INSERT ... ON CONFLICT DO NOTHING`` so a concurrent
        identical insert is reported as "not inserted" instead of an error.

        Returns:
            True if a row was inserted, False on a key conflict.
        """
        values = dict(record)
        try:
            with session_scope(self.session_factory) as db:
                stmt = self._insert_ignoring_conflicts(db, values)
                if stmt is None:
                    return self._insert_catching_integrity_error(db, values)

                result = db.execute(stmt)
                db.commit()
                inserted = result.rowcount == 1
                if not inserted:
                    logger.debug(
                        f"Insert skipped, key exists: {values['contest_id']}/{values['team_name']}/{values['problem_code']}"
                    )
                return inserted
        except SQLAlchemyError as e:
            raise LedgerError(
                f"Insert failed for {values.get('team_name')}/{values.get('problem_code')}: {e}"
            ) from e

    def _insert_ignoring_conflicts(self, db: Session, values: dict):
        dialect = db.get_bind().dialect.name
        if dialect == "sqlite":
            stmt = sqlite.insert(SubmissionORM).values(values)
        elif dialect == "postgresql":
            stmt = postgresql.insert(SubmissionORM).values(values)
        else:
            return None
        return stmt.on_conflict_do_nothing(index_elements=NATURAL_KEY_COLUMNS)

    def _insert_catching_integrity_error(self, db: Session, values: dict) -> bool:
        """Fallback for dialects without ON CONFLICT support."""
        try:
            db.execute(insert(SubmissionORM).values(values))
            db.commit()
            return True
        except IntegrityError:
            db.rollback()
            return False

    def update_status(self, record_id: int, contest_id: str, status: BalloonStatus) -> SubmissionORM:
        """
        Overwrite the balloon status of a record.

        Raises:
            RecordNotFoundError: If the id does not belong to ``contest_id``.
        """
        status = BalloonStatus(status)
        try:
            with session_scope(self.session_factory) as db:
                stmt = select(SubmissionORM).where(
                    SubmissionORM.id == record_id,
                    SubmissionORM.contest_id == contest_id,
                )
                submission = db.execute(stmt).scalar_one_or_none()
                if submission is None:
                    raise RecordNotFoundError(record_id, contest_id)

                submission.balloon_status = status.value
                db.commit()
                db.refresh(submission)
                return submission
        except SQLAlchemyError as e:
            raise LedgerError(f"Status update failed for submission {record_id}: {e}") from e

    def delete_all_for_contest(self, contest_id: str) -> int:
        """Delete every record of a contest."""
        try:
            with session_scope(self.session_factory) as db:
                result = db.execute(delete(SubmissionORM).where(SubmissionORM.contest_id == contest_id))
                db.commit()
                logger.info(f"Deleted {result.rowcount} submissions for contest {contest_id}")
                return result.rowcount
        except SQLAlchemyError as e:
            raise LedgerError(f"Delete failed for contest {contest_id}: {e}") from e

    def list_for_contest(self, contest_id: str) -> List[SubmissionORM]:
        """List records of a contest: waiting before delivered, newest first."""
        waiting_first = case(
            (SubmissionORM.balloon_status == BalloonStatus.WAITING.value, 0),
            else_=1,
        )
        try:
            with session_scope(self.session_factory) as db:
                stmt = (
                    select(SubmissionORM)
                    .where(SubmissionORM.contest_id == contest_id)
                    .order_by(waiting_first, SubmissionORM.submission_time.desc(), SubmissionORM.id.desc())
                )
                return list(db.execute(stmt).scalars().all())
        except SQLAlchemyError as e:
            raise LedgerError(f"Listing failed for contest {contest_id}: {e}") from e

    def count_by_status(self, contest_id: str) -> Dict[str, int]:
        """Count records of a contest per balloon status."""
        counts = {status.value: 0 for status in BalloonStatus}
        try:
            with session_scope(self.session_factory) as db:
                stmt = (
                    select(SubmissionORM.balloon_status, func.count())
                    .where(SubmissionORM.contest_id == contest_id)
                    .group_by(SubmissionORM.balloon_status)
                )
                for status, count in db.execute(stmt).all():
                    counts[status] = count
        except SQLAlchemyError as e:
            raise LedgerError(f"Counting failed for contest {contest_id}: {e}") from e
        return counts
