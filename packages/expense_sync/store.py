# ruff: noqa: I001
"""Durable key/value store used by the ledger, watermark, and queue.

The store is opaque: string keys map to string values (JSON documents or a
decimal integer). :class:`SqlKeyValueStore` keeps them in the ``kv_documents``
table owned by ``libs/db``; any object with the same ``get``/``set`` shape can
stand in for it.

Every read and write replaces a whole document; there is no partial update
and no cross-key transaction.
"""

from __future__ import annotations

import json
from typing import Any, Protocol

from sqlalchemy.exc import SQLAlchemyError

from db.client import get_engine, session_scope
from db.models.kv import Base, KvDocument
from .errors import StoreUnavailable
from .logging_setup import get_logger

_logger = get_logger("expense_sync.store")

# Fixed document keys.
PENDING_KEY = "pending_expenses_data"
PROCESSED_KEY = "processed_expenses_data"
CATEGORIES_KEY = "categories_data"
WATERMARK_KEY = "last_sms_sync_timestamp"
ENHANCEMENT_QUEUE_KEY = "enhancement_queue_data"


class KeyValueStore(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...


class SqlKeyValueStore:
    """:class:`KeyValueStore` backed by SQLAlchemy.

    The table is created on first use. Driver and connection failures are
    raised as :class:`StoreUnavailable`.
    """

    def __init__(self, database_url: str) -> None:
        self.database_url = database_url
        self._ready = False

    def _ensure_schema(self) -> None:
        if self._ready:
            return
        Base.metadata.create_all(get_engine(database_url=self.database_url))
        self._ready = True

    def get(self, key: str) -> str | None:
        try:
            self._ensure_schema()
            with session_scope(database_url=self.database_url) as session:
                row = session.get(KvDocument, key)
                return None if row is None else row.value
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"read failed for {key!r}: {e}", key=key) from e

    def set(self, key: str, value: str) -> None:
        try:
            self._ensure_schema()
            with session_scope(database_url=self.database_url) as session:
                row = session.get(KvDocument, key)
                if row is None:
                    session.add(KvDocument(key=key, value=value))
                else:
                    row.value = value
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"write failed for {key!r}: {e}", key=key) from e
        _logger.debug("store:set key=%s bytes=%d", key, len(value))


# ---------------------------------------------------------------------------
# JSON document helpers
# ---------------------------------------------------------------------------


def read_json(store: KeyValueStore, key: str, default: Any) -> Any:
    """Return the decoded document at ``key`` or ``default``.

    ``StoreUnavailable`` propagates; a corrupt document is logged and treated
    as absent.
    """

    raw = store.get(key)
    if raw is None or not raw.strip():
        return default
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        _logger.warning("store:corrupt_document key=%s", key)
        return default


def write_json(store: KeyValueStore, key: str, value: Any) -> None:
    store.set(key, json.dumps(value, ensure_ascii=False, separators=(",", ":")))


__all__ = [
    "PENDING_KEY",
    "PROCESSED_KEY",
    "CATEGORIES_KEY",
    "WATERMARK_KEY",
    "ENHANCEMENT_QUEUE_KEY",
    "KeyValueStore",
    "SqlKeyValueStore",
    "read_json",
    "write_json",
]
