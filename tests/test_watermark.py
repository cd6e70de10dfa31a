from __future__ import annotations

import pytest

from expense_sync.clock import MS_PER_HOUR, MS_PER_MINUTE
from expense_sync.store import WATERMARK_KEY
from expense_sync.watermark import SyncWatermark
from tests.helpers.stores import FailingStore, MemoryStore

NOW = 1_720_000_000_000


def _wm(store, **kw) -> SyncWatermark:
    return SyncWatermark(store, clock=lambda: NOW, **kw)


def test_first_run_defaults_to_window() -> None:
    assert _wm(MemoryStore()).get() == NOW - 24 * MS_PER_HOUR
    assert _wm(MemoryStore(), first_run_window_hours=2).get() == NOW - 2 * MS_PER_HOUR


def test_advance_is_monotonic() -> None:
    store = MemoryStore()
    wm = _wm(store)

    assert wm.advance(1000) is True
    assert wm.advance(999) is False
    assert wm.advance(1000) is False
    assert wm.get() == 1000
    assert wm.advance(1001) is True
    assert store.data[WATERMARK_KEY] == "1001"


def test_rewind_moves_backwards() -> None:
    store = MemoryStore({WATERMARK_KEY: str(NOW)})
    wm = _wm(store)

    assert wm.rewind(60) == NOW - 60 * MS_PER_MINUTE
    assert wm.get() == NOW - 60 * MS_PER_MINUTE
    with pytest.raises(ValueError):
        wm.rewind(-1)


def test_corrupt_value_treated_as_absent() -> None:
    wm = _wm(MemoryStore({WATERMARK_KEY: "yesterday"}))
    assert wm.get() == NOW - 24 * MS_PER_HOUR
    assert wm.advance(5) is True


def test_store_failures_fall_back_and_do_not_raise() -> None:
    store = FailingStore({WATERMARK_KEY: "42"}, fail_reads=True, fail_writes=True)
    wm = _wm(store)

    assert wm.get() == NOW - 24 * MS_PER_HOUR
    assert wm.advance(NOW) is False

    store.fail_reads = False
    assert wm.get() == 42
    assert wm.advance(NOW) is False
    assert store.data[WATERMARK_KEY] == "42"
