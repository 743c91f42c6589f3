"""Command-line interface for the balloon tracker."""

import asyncio
import json
import logging
import logging.config
import signal
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Optional

import typer
import uvicorn
from typing_extensions import Annotated

from balloon_tracker.api.main import create_app
from balloon_tracker.collector.poller import StandingsPoller, build_poller
from balloon_tracker.config import Config
from balloon_tracker.models.contest import ContestTarget
from balloon_tracker.monitoring.metrics import PrometheusExporter
from balloon_tracker.parsers.standings_parser import parse_standings
from balloon_tracker.storage.database import init_db
from balloon_tracker.storage.ledger import SQLAlchemyLedger

app = typer.Typer(help="Balloon Tracker - Track first accepted submissions on CoderOJ standings")

logger = logging.getLogger(__name__)

_shutdown_event: Optional[asyncio.Event] = None


LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
QUIET_LOGGERS = ("asyncio", "aiohttp", "sqlalchemy.engine")


def setup_logging(log_level: str = "INFO", log_file: str = "logs/balloon_tracker.log") -> None:
    """Log to stderr and a rotating file, keeping stdout for command output."""
    Path(log_file).parent.mkdir(parents=True, exist_ok=True)

    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"standard": {"format": LOG_FORMAT}},
        "handlers": {
            "console": {"class": "logging.StreamHandler", "formatter": "standard", "stream": "ext://sys.stderr"},
            "file": {
                "class": "logging.handlers.RotatingFileHandler",
                "formatter": "standard",
                "filename": log_file,
                "maxBytes": 10 * 1024 * 1024,
                "backupCount": 5,
                "encoding": "utf8",
            },
        },
        "root": {"handlers": ["console", "file"], "level": log_level},
        "loggers": {name: {"level": "WARNING"} for name in QUIET_LOGGERS},
    })


def load_config(config_path: str, contest_url: Optional[str] = None) -> Config:
    """Load and validate configuration, exiting on errors."""
    config = Config.from_files(config_path)
    if contest_url:
        config.contest_url = contest_url

    validation_errors = config.validate()
    if validation_errors:
        for error in validation_errors:
            logger.error(f"Configuration error: {error}")
        logger.critical("Invalid configuration, aborting")
        raise typer.Exit(code=1)

    return config


def open_ledger(config: Config) -> SQLAlchemyLedger:
    session_factory = init_db(config.database)
    if session_factory is None:
        logger.critical("Database initialization failed, aborting")
        raise typer.Exit(code=1)
    return SQLAlchemyLedger(session_factory)


def _start_exporter(config: Config) -> Optional[PrometheusExporter]:
    if not config.monitoring.enable_prometheus:
        return None
    exporter = PrometheusExporter(port=config.monitoring.prometheus_port)
    exporter.start_server()
    return exporter


async def run_poller(config: Config, ledger: SQLAlchemyLedger) -> None:
    """
    Run the poller until SIGINT or SIGTERM is received.

    Args:
        config: Validated application configuration
        ledger: Ledger the poller writes to
    """
    global _shutdown_event

    _shutdown_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, handle_shutdown_signal, sig)

    poller: StandingsPoller = build_poller(config, ledger, prometheus_exporter=_start_exporter(config))

    try:
        poller.start()
        await _shutdown_event.wait()
    finally:
        await poller.shutdown()
        stats = poller.get_metrics()
        logger.info(
            f"Poller stopped after {stats['cycles_run']} cycles, "
            f"recorded {stats['total_new']} new balloons"
        )


def handle_shutdown_signal(signum: int) -> None:
    """Handle shutdown signals (SIGTERM, SIGINT)."""
    signal_name = signal.Signals(signum).name
    logger.info(f"Received {signal_name} signal, initiating graceful shutdown")

    if _shutdown_event and not _shutdown_event.is_set():
        _shutdown_event.set()


@app.command()
def serve(
    config: Annotated[str, typer.Option("--config", "-c", help="Path to configuration file")] = "config.yaml",
    host: Annotated[Optional[str], typer.Option("--host", help="Bind address (overrides config)")] = None,
    port: Annotated[Optional[int], typer.Option("--port", "-p", help="Port to listen on (overrides config)")] = None,
    loglevel: Annotated[str, typer.Option("--loglevel", "-l", help="Logging level")] = "INFO",
) -> None:
    """Run the HTTP API; scraping starts with the application."""
    setup_logging(loglevel)
    config_obj = load_config(config)

    bind_host = host or config_obj.api.host
    bind_port = port or config_obj.api.port
    logger.info(f"Serving balloon tracker on {bind_host}:{bind_port}")
    uvicorn.run(create_app(config_obj), host=bind_host, port=bind_port, log_config=None)


@app.command()
def poll(
    config: Annotated[str, typer.Option("--config", "-c", help="Path to configuration file")] = "config.yaml",
    contest_url: Annotated[Optional[str], typer.Option("--contest-url", "-u", help="Contest URL (overrides config)")] = None,
    loglevel: Annotated[str, typer.Option("--loglevel", "-l", help="Logging level")] = "INFO",
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Enable verbose output")] = False,
) -> None:
    """Poll the contest standings continuously without the HTTP API."""
    setup_logging("DEBUG" if verbose else loglevel)
    config_obj = load_config(config, contest_url)
    ledger = open_ledger(config_obj)

    logger.info(f"Starting poller for {config_obj.contest_url}")
    try:
        asyncio.run(run_poller(config_obj, ledger))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    except Exception as e:
        logger.critical(f"Unhandled exception: {str(e)}", exc_info=True)
        sys.exit(1)


@app.command("scrape-once")
def scrape_once(
    config: Annotated[str, typer.Option("--config", "-c", help="Path to configuration file")] = "config.yaml",
    contest_url: Annotated[Optional[str], typer.Option("--contest-url", "-u", help="Contest URL (overrides config)")] = None,
    loglevel: Annotated[str, typer.Option("--loglevel", "-l", help="Logging level")] = "WARNING",
) -> None:
    """Run a single fetch, parse and reconcile cycle and print its summary as JSON."""
    setup_logging(loglevel)
    config_obj = load_config(config, contest_url)
    ledger = open_ledger(config_obj)
    poller = build_poller(config_obj, ledger)

    summary = asyncio.run(poller.run_once())
    typer.echo(json.dumps({**asdict(summary), "outcome": summary.outcome}, indent=2, default=str))

    if summary.failed:
        raise typer.Exit(code=1)


@app.command()
def parse(
    file: Annotated[Path, typer.Argument(help="Saved standings page (HTML)", exists=True, dir_okay=False, readable=True)],
) -> None:
    """Parse a saved standings page and print the accepted submissions as JSON."""
    markup = file.read_text(encoding="utf-8", errors="replace")
    candidates = parse_standings(markup)
    typer.echo(json.dumps([asdict(c) for c in candidates], indent=2))


@app.command("init-db")
def init_database(
    config: Annotated[str, typer.Option("--config", "-c", help="Path to configuration file")] = "config.yaml",
    loglevel: Annotated[str, typer.Option("--loglevel", "-l", help="Logging level")] = "INFO",
) -> None:
    """Create the submissions table if it does not exist."""
    setup_logging(loglevel)
    config_obj = load_config(config)
    open_ledger(config_obj)
    typer.echo("Database initialized")


@app.command()
def reset(
    config: Annotated[str, typer.Option("--config", "-c", help="Path to configuration file")] = "config.yaml",
    contest_url: Annotated[Optional[str], typer.Option("--contest-url", "-u", help="Contest URL (overrides config)")] = None,
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Do not ask for confirmation")] = False,
    loglevel: Annotated[str, typer.Option("--loglevel", "-l", help="Logging level")] = "INFO",
) -> None:
    """Delete every balloon recorded for a contest."""
    setup_logging(loglevel)
    config_obj = load_config(config, contest_url)
    contest = ContestTarget.from_url(config_obj.contest_url)

    if not yes:
        typer.confirm(f"Delete all balloons of contest {contest.contest_id}?", abort=True)

    ledger = open_ledger(config_obj)
    deleted = ledger.delete_all_for_contest(contest.contest_id)
    typer.echo(f"Deleted {deleted} records for contest {contest.contest_id}")


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
