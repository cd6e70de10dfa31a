"""Message listers used by reconciliation.

A :class:`MessageSource` returns every inbox message newer than a watermark.
Order is whatever the source provides; callers must not assume it is sorted.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any, Protocol

from .logging_setup import get_logger
from .models import RawMessage

_logger = get_logger("expense_sync.sources")


class MessageSource(Protocol):
    async def list_since(self, timestamp: int) -> list[RawMessage]: ...


def _rows(payload: Any) -> list[Any]:
    # Exports are either a bare list or {"messages": [...]}.
    if isinstance(payload, dict):
        payload = payload.get("messages", [])
    if not isinstance(payload, list):
        raise ValueError(f"expected a JSON list of messages, got {type(payload).__name__}")
    return payload


class JsonExportSource:
    """Reads an exported SMS list: ``[{"body", "address", "timestamp"}, ...]``.

    Entries with a timestamp at or below the watermark are skipped; the rest
    are returned in file order. Malformed entries are logged and skipped.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def _load(self) -> list[Any]:
        with self.path.open("r", encoding="utf-8") as f:
            return _rows(json.load(f))

    async def list_since(self, timestamp: int) -> list[RawMessage]:
        rows = await asyncio.to_thread(self._load)
        out: list[RawMessage] = []
        for i, row in enumerate(rows):
            if not isinstance(row, dict):
                _logger.warning("sources:skip_row index=%d reason=not_an_object", i)
                continue
            try:
                msg = RawMessage.from_event(row)
            except (TypeError, ValueError):
                _logger.warning("sources:skip_row index=%d reason=bad_timestamp", i)
                continue
            if msg.timestamp > timestamp:
                out.append(msg)
        _logger.debug("sources:listed path=%s since=%s count=%d", self.path, timestamp, len(out))
        return out


__all__ = ["MessageSource", "JsonExportSource"]
