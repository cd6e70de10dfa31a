"""Environment-driven settings for ``expense_sync``.

Entrypoints load ``.env`` (via ``python-dotenv``, without overriding variables
that are already set) before calling :func:`load_settings`. Library code never
reads the environment at import time.

Recognized variables
--------------------
- ``GEMINI_API_KEY``: credential for the AI tier. Unset, blank, or the
  ``YOUR_API_KEY_HERE`` placeholder all count as missing.
- ``EXPENSE_SYNC_GEMINI_MODEL``: model name (default ``gemini-1.5-flash``).
- ``EXPENSE_SYNC_GEMINI_BASE_URL``: API base URL.
- ``EXPENSE_SYNC_AI_TIMEOUT_SEC``: per-request timeout in seconds (default 20).
- ``DATABASE_URL``: SQLAlchemy URL of the durable store
  (default ``sqlite+pysqlite:///expense_sync.db``).
- ``EXPENSE_SYNC_FIRST_RUN_WINDOW_HOURS``: reconciliation window used before
  the first watermark is written (default 24).
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from .logging_setup import get_logger

DEFAULT_MODEL = "gemini-1.5-flash"
DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_DATABASE_URL = "sqlite+pysqlite:///expense_sync.db"
API_KEY_PLACEHOLDER = "YOUR_API_KEY_HERE"

_logger = get_logger("expense_sync.config")


@dataclass(frozen=True, slots=True)
class Settings:
    gemini_api_key: str | None = None
    gemini_model: str = DEFAULT_MODEL
    gemini_base_url: str = DEFAULT_BASE_URL
    ai_timeout_sec: float = 20.0
    database_url: str = DEFAULT_DATABASE_URL
    first_run_window_hours: int = 24

    @property
    def has_api_key(self) -> bool:
        return bool(self.gemini_api_key)


def _clean_api_key(raw: str | None) -> str | None:
    if raw is None:
        return None
    key = raw.strip()
    if not key or key == API_KEY_PLACEHOLDER:
        return None
    return key


def _env_number(name: str, default: float, *, cast: type = float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = cast(raw.strip())
    except ValueError:
        _logger.warning("config:invalid_number name=%s value=%r using=%s", name, raw, default)
        return default
    if value <= 0:
        _logger.warning("config:non_positive name=%s value=%r using=%s", name, raw, default)
        return default
    return value


def load_settings(*, database_url: str | None = None) -> Settings:
    """Build :class:`Settings` from the environment.

    ``database_url`` overrides ``DATABASE_URL`` when provided (CLI option).
    """

    return Settings(
        gemini_api_key=_clean_api_key(os.getenv("GEMINI_API_KEY")),
        gemini_model=(os.getenv("EXPENSE_SYNC_GEMINI_MODEL") or DEFAULT_MODEL).strip(),
        gemini_base_url=(os.getenv("EXPENSE_SYNC_GEMINI_BASE_URL") or DEFAULT_BASE_URL)
        .strip()
        .rstrip("/"),
        ai_timeout_sec=_env_number("EXPENSE_SYNC_AI_TIMEOUT_SEC", 20.0),
        database_url=database_url or os.getenv("DATABASE_URL") or DEFAULT_DATABASE_URL,
        first_run_window_hours=int(
            _env_number("EXPENSE_SYNC_FIRST_RUN_WINDOW_HOURS", 24, cast=int)
        ),
    )


__all__ = ["Settings", "load_settings"]
