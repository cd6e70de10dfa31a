from __future__ import annotations

from pathlib import Path

import pytest
from sqlalchemy import select

from db.client import session_scope
from db.models.kv import KvDocument
from expense_sync.errors import StoreUnavailable
from expense_sync.ledger import ExpenseLedger
from expense_sync.store import PENDING_KEY, SqlKeyValueStore, read_json, write_json
from tests.helpers.db import bootstrap_sqlite_db


def test_get_set_overwrite(tmp_path: Path) -> None:
    url = bootstrap_sqlite_db(tmp_path / "kv.db")
    store = SqlKeyValueStore(url)

    assert store.get("missing") is None
    store.set("k", "v1")
    store.set("k", "v2")
    assert store.get("k") == "v2"

    with session_scope(database_url=url) as s:
        rows = s.execute(select(KvDocument)).scalars().all()
        assert [(r.key, r.value) for r in rows] == [("k", "v2")]


def test_creates_table_on_first_use(tmp_path: Path) -> None:
    store = SqlKeyValueStore(f"sqlite+pysqlite:///{tmp_path / 'fresh.db'}")
    write_json(store, "doc", {"a": [1, 2]})
    assert read_json(store, "doc", None) == {"a": [1, 2]}


def test_corrupt_json_reads_as_default(tmp_path: Path) -> None:
    store = SqlKeyValueStore(bootstrap_sqlite_db(tmp_path / "kv.db"))
    store.set("doc", "{not json")
    assert read_json(store, "doc", []) == []


def test_driver_errors_become_store_unavailable(tmp_path: Path) -> None:
    # A directory path cannot be opened as a SQLite database file.
    bad = tmp_path / "not-a-file"
    bad.mkdir()
    store = SqlKeyValueStore(f"sqlite+pysqlite:///{bad}")

    with pytest.raises(StoreUnavailable) as ei:
        store.get(PENDING_KEY)
    assert ei.value.key == PENDING_KEY


def test_ledger_persists_through_sql_store(tmp_path: Path) -> None:
    url = bootstrap_sqlite_db(tmp_path / "kv.db")
    ledger = ExpenseLedger(SqlKeyValueStore(url), clock=lambda: 1_720_000_000_000)
    rec = ledger.add_manual("Rent", "15000", "Manual")

    reloaded = ExpenseLedger(SqlKeyValueStore(url))
    assert [r.id for r in reloaded.pending()] == [rec.id]
