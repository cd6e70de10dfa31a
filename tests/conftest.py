"""Pytest configuration for test isolation.

Settings are read from the environment, so a developer's shell (or a local
``.env``) could leak an API key or a database URL into the suite. An autouse
fixture clears every recognized variable and runs each test from its own
temporary directory, so ``.env`` discovery and the default SQLite file stay
inside ``tmp_path``. Cached SQLAlchemy engines are disposed after each test.
"""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest

_ENV_VARS = (
    "GEMINI_API_KEY",
    "EXPENSE_SYNC_GEMINI_MODEL",
    "EXPENSE_SYNC_GEMINI_BASE_URL",
    "EXPENSE_SYNC_AI_TIMEOUT_SEC",
    "EXPENSE_SYNC_FIRST_RUN_WINDOW_HOURS",
    "EXPENSE_SYNC_LOG_LEVEL",
    "DATABASE_URL",
)


@pytest.fixture(autouse=True)
def _isolate_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    yield
    from db.client import dispose_engines

    dispose_engines()
