from __future__ import annotations

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from expense_sync.cli import app
from expense_sync.ledger import ExpenseLedger
from expense_sync.store import SqlKeyValueStore
from tests.helpers.db import bootstrap_sqlite_db

runner = CliRunner()

FUTURE = 9_999_999_999_999


@pytest.fixture
def db_url(tmp_path: Path) -> str:
    return bootstrap_sqlite_db(tmp_path / "cli.db")


def _ledger(url: str) -> ExpenseLedger:
    return ExpenseLedger(SqlKeyValueStore(url))


def _invoke(url: str, *args: str):
    return runner.invoke(app, [*args, "--database-url", url])


def test_add_list_settle(db_url: str) -> None:
    res = _invoke(db_url, "add", "--title", "Dinner", "--amount", "900", "--source", "Cash")
    assert res.exit_code == 0, res.output
    [rec] = _ledger(db_url).pending()
    assert rec.title == "Dinner"

    res = _invoke(db_url, "list")
    assert res.exit_code == 0
    assert "Pending" in res.output

    res = _invoke(db_url, "settle", rec.id, "--split", "3")
    assert res.exit_code == 0, res.output
    assert "Split with 3" in res.output
    [settled] = _ledger(db_url).processed()
    assert str(settled.amount) == "300.00"


def test_add_rejects_bad_amount(db_url: str) -> None:
    res = _invoke(db_url, "add", "--title", "X", "--amount", "0", "--source", "Cash")
    assert res.exit_code == 1
    assert "Error" in res.output


def test_settle_and_delete_unknown_id(db_url: str) -> None:
    assert _invoke(db_url, "settle", "nope").exit_code == 1
    assert _invoke(db_url, "delete", "nope").exit_code == 1


def test_capture_then_set_category(db_url: str) -> None:
    res = _invoke(
        db_url,
        "capture",
        "--body",
        "Rs 120 debited for Uber trip",
        "--sender",
        "JD-ICICIB",
        "--timestamp",
        "1720000000000",
    )
    assert res.exit_code == 0, res.output
    [rec] = _ledger(db_url).pending()
    assert rec.id == "JD-ICICIB-1720000000000-120.00"
    # No API key configured: captured by the regex tier and flagged for later.
    assert rec.requires_enhancement is True

    res = _invoke(db_url, "set-category", rec.id, "Commute")
    assert res.exit_code == 0, res.output
    ledger = _ledger(db_url)
    assert ledger.get(rec.id).category == "Commute"
    assert "Commute" in ledger.categories()


def test_reconcile_rewind_and_watermark(db_url: str, tmp_path: Path) -> None:
    export = tmp_path / "inbox.json"
    export.write_text(
        json.dumps(
            [
                {"body": "Rs 60 debited for Swiggy", "address": "AX-HDFCBK", "timestamp": FUTURE},
                {"body": "OTP 1234", "address": "AX-HDFCBK", "timestamp": FUTURE - 1},
            ]
        ),
        encoding="utf-8",
    )

    res = _invoke(db_url, "reconcile", "--messages", str(export))
    assert res.exit_code == 0, res.output
    assert "found=1" in res.output
    assert [r.title for r in _ledger(db_url).pending()] == ["Swiggy"]

    res = _invoke(db_url, "rewind", "--minutes", "30")
    assert res.exit_code == 0
    value = int(res.output.strip().split("=")[1])
    res = _invoke(db_url, "watermark")
    assert int(res.output.strip()) == value


def test_reconcile_missing_export_fails(db_url: str, tmp_path: Path) -> None:
    res = _invoke(db_url, "reconcile", "--messages", str(tmp_path / "missing.json"))
    assert res.exit_code == 1
    assert "reconciliation failed" in res.output


def test_analyze_surfaces_classifier_failure(db_url: str) -> None:
    res = _invoke(db_url, "analyze", "Rs 500 debited at Amazon")
    assert res.exit_code == 1
    assert "config_missing" in res.output


def test_enhance_without_key_counts_failures(db_url: str) -> None:
    _invoke(db_url, "capture", "--body", "Rs 120 debited for Uber trip", "--sender", "JD-ICICIB")
    res = _invoke(db_url, "enhance")
    assert res.exit_code == 0, res.output
    assert "failed=1" in res.output
