"""
SQLAlchemy engine and session utilities for the submission ledger.

Schema is created from the ORM metadata; there is a single table.
"""

import logging
import os
from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy import create_engine, make_url, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from balloon_tracker.config import DatabaseConfig
from balloon_tracker.models.submission import Base

logger = logging.getLogger(__name__)


def create_db_engine(db_config: DatabaseConfig) -> Engine:
    """
    Create an engine for the configured database.

    SQLite connections are shared across threads (the API server and the
    poller run on different threads); in-memory SQLite uses a single static
    connection so every session sees the same database.
    """
    url = db_config.sqlalchemy_url

    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        else:
            database = make_url(url).database
            if database and os.path.dirname(database):
                os.makedirs(os.path.dirname(database), exist_ok=True)
        return create_engine(url, echo=db_config.echo, **kwargs)

    return create_engine(
        url,
        echo=db_config.echo,
        pool_size=10,
        max_overflow=20,
        pool_timeout=30,
        pool_recycle=1800,
        pool_pre_ping=True,
    )


def init_db(db_config: DatabaseConfig) -> Optional[sessionmaker]:
    """
    Initialize the database connection and create the schema.

    Args:
        db_config: Database configuration object.

    Returns:
        A session factory bound to the engine, or None if initialization failed.
    """
    try:
        engine = create_db_engine(db_config)
        Base.metadata.create_all(engine)

        session_factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)

        logger.info("Testing database connection...")
        with session_scope(session_factory) as db:
            db.execute(text("SELECT 1"))

        logger.info(f"Database ready ({engine.url.render_as_string(hide_password=True)})")
        return session_factory

    except Exception as e:
        logger.error(f"Failed to initialize database: {str(e)}")
        logger.error("Database initialization error details:", exc_info=True)
        return None


@contextmanager
def session_scope(session_factory: sessionmaker) -> Generator[Session, None, None]:
    """
    Get a database session.

    Ensures the session is closed after use. Committing is left to the caller.

    Yields:
        SQLAlchemy session
    """
    db = None
    try:
        db = session_factory()
        yield db
    finally:
        if db is not None:
            db.close()
