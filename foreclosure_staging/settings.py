# foreclosure_staging/settings.py
"""Environment-backed configuration.

Values are read once at process start and passed down explicitly; scrapers
and services never call ``os.getenv`` themselves.
"""
import os
from dataclasses import dataclass, field
from typing import Optional, Tuple

from dotenv import load_dotenv

from .errors import ConfigurationError

load_dotenv()

# North-eastern states, used when a scraping config lists none
NORTHEAST_STATES = ("AL", "BA", "CE", "MA", "PB", "PE", "PI", "RN", "SE")

DEFAULT_DATABASE_URL = "sqlite:///./foreclosure_staging.db"
FIRECRAWL_SCRAPE_URL = "https://api.firecrawl.dev/v1/scrape"


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be an integer, got {value!r}") from exc


def _env_float(name: str, default: Optional[float]) -> Optional[float]:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return float(value)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be a number, got {value!r}") from exc


def normalize_database_url(url: str) -> str:
    # SQLAlchemy 2.x doesn't accept 'postgres://'
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql+psycopg2://", 1)
    return url


@dataclass(frozen=True)
class SourceSettings:
    """Everything a candidate source adapter needs to talk to the outside world."""

    backend: str = "firecrawl"
    firecrawl_api_key: Optional[str] = None
    firecrawl_url: str = FIRECRAWL_SCRAPE_URL
    request_timeout: float = 60.0
    delay_seconds: float = 1.0
    max_items: int = 500
    headless: bool = True
    default_states: Tuple[str, ...] = NORTHEAST_STATES

    @classmethod
    def from_env(cls) -> "SourceSettings":
        return cls(
            backend=os.getenv("SCRAPER_BACKEND", "firecrawl").strip().lower(),
            firecrawl_api_key=os.getenv("FIRECRAWL_API_KEY") or None,
            firecrawl_url=os.getenv("FIRECRAWL_URL", FIRECRAWL_SCRAPE_URL),
            request_timeout=_env_float("SCRAPE_TIMEOUT_SECONDS", 60.0),
            delay_seconds=_env_float("SCRAPE_DELAY_SECONDS", 1.0),
            max_items=_env_int("SCRAPE_MAX_ITEMS", 500),
            headless=_env_bool("HEADLESS", True),
        )


@dataclass(frozen=True)
class Settings:
    database_url: str = DEFAULT_DATABASE_URL
    db_pool_size: int = 5
    db_max_overflow: int = 10
    log_level: str = "INFO"
    run_timeout_seconds: Optional[float] = None
    allow_unlogged_runs: bool = False
    scheduler_enabled: bool = False
    scheduler_interval_hours: int = 6
    source: SourceSettings = field(default_factory=SourceSettings)

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            database_url=normalize_database_url(os.getenv("POSTGRES_URL") or DEFAULT_DATABASE_URL),
            db_pool_size=_env_int("DB_POOL_SIZE", 5),
            db_max_overflow=_env_int("DB_MAX_OVERFLOW", 10),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            run_timeout_seconds=_env_float("RUN_TIMEOUT_SECONDS", None),
            allow_unlogged_runs=_env_bool("ALLOW_UNLOGGED_RUNS", False),
            scheduler_enabled=_env_bool("SCHEDULER_ENABLED", False),
            scheduler_interval_hours=_env_int("SCHEDULER_INTERVAL_HOURS", 6),
            source=SourceSettings.from_env(),
        )


settings = Settings.from_env()
