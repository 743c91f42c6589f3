"""Configuration handling for the balloon tracker."""

import os
from dataclasses import dataclass, field
from typing import List, Optional
from urllib.parse import quote_plus

import yaml
from dotenv import load_dotenv

DEFAULT_CONTEST_URL = "https://www.coderoj.com/c/4dBXruM"
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36"
)
DEFAULT_SQLITE_URL = "sqlite:///data/balloons.db"


@dataclass
class FetchConfig:
    """Standings page fetch configuration."""

    timeout_sec: float = 10.0
    max_retries: int = 2
    initial_backoff_sec: float = 1.0
    user_agent: str = DEFAULT_USER_AGENT


@dataclass
class DatabaseConfig:
    """Ledger database connection configuration."""

    url: str = ""
    host: str = "localhost"
    port: int = 5432
    database: str = "balloons"
    user: str = "postgres"
    password: str = ""
    use_postgres: bool = False
    echo: bool = False

    @property
    def sqlalchemy_url(self) -> str:
        """Resolve the SQLAlchemy URL: explicit url, then PostgreSQL parts, then SQLite."""
        if self.url:
            return self.url
        if self.use_postgres:
            return f"postgresql://{self.user}:{quote_plus(self.password)}@{self.host}:{self.port}/{self.database}"
        return DEFAULT_SQLITE_URL


@dataclass
class ApiConfig:
    """HTTP API server configuration."""

    host: str = "0.0.0.0"
    port: int = 3000


@dataclass
class MonitoringConfig:
    """Monitoring configuration."""

    enable_prometheus: bool = False
    prometheus_port: int = 8000


@dataclass
class Config:
    """Application configuration combining environment variables and YAML config."""

    contest_url: str = DEFAULT_CONTEST_URL
    poll_interval_sec: float = 30.0
    poll_on_startup: bool = True
    failure_threshold: int = 5
    fetch: FetchConfig = field(default_factory=FetchConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    api: ApiConfig = field(default_factory=ApiConfig)
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)

    @classmethod
    def from_files(cls, config_path: str, env_path: Optional[str] = None) -> "Config":
        """
        Load configuration from YAML file and environment variables.

        Environment variables provide the base values; the YAML file, when it
        exists, overrides them.

        Args:
            config_path: Path to YAML configuration file
            env_path: Optional path to .env file (defaults to .env in current directory)

        Returns:
            Config instance with merged configuration
        """
        if env_path:
            load_dotenv(env_path)
        else:
            load_dotenv()

        config = cls()
        config.contest_url = os.getenv("CONTEST_URL", DEFAULT_CONTEST_URL)
        config.fetch.user_agent = os.getenv("SCRAPER_USER_AGENT") or DEFAULT_USER_AGENT
        config.database = DatabaseConfig(
            url=os.getenv("DATABASE_URL", ""),
            host=os.getenv("PG_HOST", "localhost"),
            port=int(os.getenv("PG_PORT", "5432")),
            database=os.getenv("PG_DB", "balloons"),
            user=os.getenv("PG_USER", "postgres"),
            password=os.getenv("PG_PASSWORD", ""),
            use_postgres=os.getenv("USE_POSTGRES", "false").lower() == "true",
        )
        config.api.port = int(os.getenv("PORT", "3000"))

        if os.path.exists(config_path):
            with open(config_path, "r", encoding="utf-8") as file:
                yaml_config = yaml.safe_load(file)

            if yaml_config:
                nested = {
                    "fetch": config.fetch,
                    "database": config.database,
                    "api": config.api,
                    "monitoring": config.monitoring,
                }
                for key, value in yaml_config.items():
                    if key in nested:
                        if isinstance(value, dict):
                            _apply_section(nested[key], value)
                    elif hasattr(config, key):
                        setattr(config, key, value)

        return config

    def validate(self) -> List[str]:
        """
        Validate configuration and return a list of validation errors.

        Returns:
            List of validation error messages (empty if valid)
        """
        errors = []

        if not self.contest_url:
            errors.append("contest_url must be specified")
        elif "coderoj.com/c/" not in self.contest_url:
            errors.append("contest_url must be a CoderOJ contest URL (coderoj.com/c/...)")

        if self.poll_interval_sec <= 0:
            errors.append("poll_interval_sec must be greater than 0")

        if self.failure_threshold <= 0:
            errors.append("failure_threshold must be greater than 0")

        if self.fetch.timeout_sec <= 0:
            errors.append("fetch.timeout_sec must be greater than 0")
        if self.fetch.max_retries < 0:
            errors.append("fetch.max_retries must not be negative")

        if not self.database.url and self.database.use_postgres:
            if not self.database.host:
                errors.append("PG_HOST must be specified when PostgreSQL is enabled")
            if self.database.port <= 0:
                errors.append("PG_PORT must be a positive integer")
            if not self.database.database:
                errors.append("PG_DB must be specified when PostgreSQL is enabled")
            if not self.database.user:
                errors.append("PG_USER must be specified when PostgreSQL is enabled")

        if not 0 < self.api.port < 65536:
            errors.append("api.port must be between 1 and 65535")
        if self.monitoring.enable_prometheus and not 0 < self.monitoring.prometheus_port < 65536:
            errors.append("monitoring.prometheus_port must be between 1 and 65535")

        return errors


def _apply_section(section: object, values: dict) -> None:
    """Copy known keys from a YAML mapping onto a config section."""
    for key, value in values.items():
        if key == "dbname":
            key = "database"
        if hasattr(section, key) and key != "sqlalchemy_url":
            setattr(section, key, value)
