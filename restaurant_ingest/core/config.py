"""Application configuration helpers.

Credentials are only ever read from the environment (or a local `.env`):
`GOOGLE_PLACES_API_KEY` and `OPENAI_API_KEY` are billable keys and
`DATABASE_URL` points the pipeline at the restaurant store.
"""

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import List

from dotenv import load_dotenv

logger = logging.getLogger(__name__)


class ConfigError(RuntimeError):
    """Raised when mandatory configuration is missing or malformed."""


@dataclass(frozen=True)
class Settings:
    google_places_api_key: str
    openai_api_key: str
    database_url: str
    openai_model: str = "gpt-4o"
    request_interval: float = 0.25
    page_delay: float = 2.0
    asset_delay: float = 0.5
    max_retries: int = 3
    retry_delay: float = 1.0
    progress_every: int = 10
    log_level: str = "INFO"


def _clean_key(raw: str) -> str:
    return raw.replace('"', "").replace("'", "").strip()


def _get_float(name: str, default: str) -> float:
    raw = os.getenv(name, default)
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be numeric, got {raw!r}") from exc


def _get_int(name: str, default: str) -> int:
    raw = os.getenv(name, default)
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from exc


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load settings from environment variables with sensible defaults."""
    load_dotenv()

    google_places_api_key = _clean_key(os.getenv("GOOGLE_PLACES_API_KEY", ""))
    openai_api_key = os.getenv("OPENAI_API_KEY", "").strip()
    database_url = os.getenv("DATABASE_URL", "")

    if not database_url:
        logger.warning("DATABASE_URL is not set; database operations will fail.")
    if not google_places_api_key:
        logger.warning("GOOGLE_PLACES_API_KEY is not configured; Places requests will fail.")
    if not openai_api_key:
        logger.warning("OPENAI_API_KEY is not configured; classification requests will fail.")

    return Settings(
        google_places_api_key=google_places_api_key,
        openai_api_key=openai_api_key,
        database_url=database_url,
        openai_model=os.getenv("OPENAI_MODEL", "gpt-4o") or "gpt-4o",
        request_interval=_get_float("INGEST_REQUEST_INTERVAL", "0.25"),
        page_delay=_get_float("INGEST_PAGE_DELAY", "2.0"),
        asset_delay=_get_float("INGEST_ASSET_DELAY", "0.5"),
        max_retries=_get_int("INGEST_MAX_RETRIES", "3"),
        retry_delay=_get_float("INGEST_RETRY_DELAY", "1.0"),
        progress_every=_get_int("INGEST_PROGRESS_EVERY", "10"),
        log_level=(os.getenv("LOG_LEVEL") or "INFO").upper(),
    )


def require_credentials(
    settings: Settings, *, places: bool = True, classification: bool = True, database: bool = True
) -> None:
    """Fail fast before any work starts when a credential is absent."""
    missing: List[str] = []
    if places and not settings.google_places_api_key:
        missing.append("GOOGLE_PLACES_API_KEY")
    if classification and not settings.openai_api_key:
        missing.append("OPENAI_API_KEY")
    if database and not settings.database_url:
        missing.append("DATABASE_URL")
    if missing:
        raise ConfigError(f"{', '.join(missing)} must be set in the environment for the ingest pipeline to run.")
