"""
FastAPI application for the balloon tracker.

The lifespan builds the ledger and the poller, stores them on ``app.state``
and starts scraping the configured contest in the background.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncGenerator, Optional

from fastapi import FastAPI

from balloon_tracker import __version__
from balloon_tracker.api.endpoints import submissions
from balloon_tracker.collector.fetcher import StandingsFetcher
from balloon_tracker.collector.poller import build_poller
from balloon_tracker.config import Config
from balloon_tracker.monitoring.metrics import PrometheusExporter
from balloon_tracker.storage.database import init_db
from balloon_tracker.storage.ledger import SQLAlchemyLedger

logger = logging.getLogger(__name__)


def create_app(config: Optional[Config] = None, fetcher: Optional[StandingsFetcher] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        config: Application configuration; defaults are used when omitted
        fetcher: Standings fetcher override

    Returns:
        FastAPI: Configured FastAPI application instance.
    """
    config = config or Config()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        logger.info(f"Starting balloon tracker v{__version__}")

        session_factory = init_db(config.database)
        if session_factory is None:
            raise RuntimeError("Database initialization failed")

        prometheus_exporter = None
        if config.monitoring.enable_prometheus:
            prometheus_exporter = PrometheusExporter(config.monitoring.prometheus_port)
            prometheus_exporter.start_server()

        ledger = SQLAlchemyLedger(session_factory)
        poller = build_poller(config, ledger, fetcher, prometheus_exporter)
        app.state.ledger = ledger
        app.state.poller = poller

        if config.poll_on_startup:
            poller.start()
        else:
            logger.info("Polling on startup disabled; use /api/refresh to scrape")

        yield

        logger.info("Shutting down application")
        await poller.shutdown()

    app = FastAPI(
        title="Balloon Tracker",
        version=__version__,
        description="Tracks first accepted submissions on CoderOJ standings and their balloon delivery status.",
        lifespan=lifespan,
        openapi_tags=[
            {"name": "balloons", "description": "Balloon queue and scraping control"},
            {"name": "health", "description": "Health check"},
        ],
    )

    app.include_router(submissions.router, prefix="/api", tags=["balloons"])

    @app.get("/health", tags=["health"])
    async def health_check():
        poller = getattr(app.state, "poller", None)
        return {
            "status": "healthy",
            "version": __version__,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "contest_id": poller.contest.contest_id if poller else None,
            "poller": poller.get_metrics() if poller else None,
        }

    return app
