"""Data models for ledger submission records and parsed candidates."""

import enum
from dataclasses import dataclass
from datetime import datetime
from typing import TypedDict

from sqlalchemy import BigInteger, Index, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.sql.sqltypes import TIMESTAMP


class Base(DeclarativeBase):
    pass


class BalloonStatus(str, enum.Enum):
    """Delivery state of a balloon."""

    WAITING = "waiting"
    DELIVERED = "delivered"


class SubmissionORM(Base):
    """
    SQLAlchemy ORM model for a ledger entry: one balloon per team, problem and contest.

    Schema:
      id               BIGSERIAL PRIMARY KEY,
      contest_id       TEXT NOT NULL,
      team_name        TEXT NOT NULL,
      problem_code     TEXT NOT NULL,
      time             TEXT NOT NULL,  -- minutes from contest start, or 'N/A'
      balloon_status   VARCHAR(16) NOT NULL DEFAULT 'waiting',
      submission_time  TIMESTAMPTZ NOT NULL,  -- ingestion time
      created_at       TIMESTAMPTZ NOT NULL DEFAULT now(),
      updated_at       TIMESTAMPTZ NOT NULL DEFAULT now()
    Unique Constraint: (contest_id, team_name, problem_code)
    """
    __tablename__ = "submissions"

    # SQLite only autoincrements INTEGER PRIMARY KEY columns
    id: Mapped[int] = mapped_column(BigInteger().with_variant(Integer(), "sqlite"), primary_key=True, autoincrement=True)
    contest_id: Mapped[str] = mapped_column(Text, nullable=False, index=True, comment="Contest scope derived from the contest URL")
    team_name: Mapped[str] = mapped_column(Text, nullable=False)
    problem_code: Mapped[str] = mapped_column(Text, nullable=False)
    time: Mapped[str] = mapped_column(Text, nullable=False, comment="Minutes from contest start at acceptance, or 'N/A'")
    balloon_status: Mapped[str] = mapped_column(String(16), nullable=False, default=BalloonStatus.WAITING.value, server_default=BalloonStatus.WAITING.value)
    submission_time: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False, comment="When the record was first ingested")
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint("contest_id", "team_name", "problem_code", name="uq_submissions_contest_team_problem"),
        Index("ix_submissions_contest_status_time", "contest_id", "balloon_status", "submission_time"),
    )

    def __repr__(self) -> str:
        return (
            f"<SubmissionORM(id={self.id}, contest_id='{self.contest_id}', team_name='{self.team_name}', "
            f"problem_code='{self.problem_code}', balloon_status='{self.balloon_status}')>"
        )


class SubmissionRecord(TypedDict):
    """Values for a new ledger row, as handed to ``insert_if_absent``."""
    contest_id: str
    team_name: str
    problem_code: str
    time: str  # minutes from contest start, e.g. "42", or "N/A"
    balloon_status: str
    submission_time: datetime  # ingestion time (UTC)


@dataclass(frozen=True)
class SubmissionCandidate:
    """An accepted (team, problem) pair scraped from the standings table."""

    team_name: str
    problem_code: str
    time: str
