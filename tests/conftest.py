"""Shared fixtures for the balloon tracker tests."""

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from balloon_tracker.config import DatabaseConfig
from balloon_tracker.models.submission import BalloonStatus, SubmissionRecord
from balloon_tracker.storage.database import init_db
from balloon_tracker.storage.ledger import SQLAlchemyLedger

FIXTURES_DIR = Path(__file__).parent / "fixtures"


def load_fixture(name: str) -> str:
    return (FIXTURES_DIR / name).read_text(encoding="utf-8")


def make_record(
    contest_id: str = "4dBXruM",
    team_name: str = "Alpha Coders",
    problem_code: str = "A",
    time: str = "12",
    status: BalloonStatus = BalloonStatus.WAITING,
    minutes_ago: int = 0,
) -> SubmissionRecord:
    return SubmissionRecord(
        contest_id=contest_id,
        team_name=team_name,
        problem_code=problem_code,
        time=time,
        balloon_status=status.value,
        submission_time=datetime.now(timezone.utc) - timedelta(minutes=minutes_ago),
    )


@pytest.fixture
def session_factory():
    """Session factory bound to a fresh in-memory SQLite database."""
    factory = init_db(DatabaseConfig(url="sqlite://"))
    assert factory is not None
    yield factory
    factory.kw["bind"].dispose()


@pytest.fixture
def ledger(session_factory):
    return SQLAlchemyLedger(session_factory)


@pytest.fixture
def standings_html():
    return load_fixture("coderoj_standings.html")
