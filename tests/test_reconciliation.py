from __future__ import annotations

import asyncio

from expense_sync.api import ExpenseSyncApp
from expense_sync.clock import MS_PER_MINUTE
from expense_sync.errors import ConfigMissing
from expense_sync.models import ExpenseRecord, RawMessage
from expense_sync.pipeline import ExtractionPipeline, default_strategies
from expense_sync.reconciliation import ReconciliationService
from expense_sync.store import WATERMARK_KEY
from expense_sync.strategies import ExtractionStrategy, TierOutcome
from expense_sync.watermark import SyncWatermark
from tests.helpers.gemini_stub import StubClassifier
from tests.helpers.stores import MemoryStore

NOW = 1_720_000_000_000


class ListSource:
    def __init__(self, messages: list[RawMessage], *, error: Exception | None = None) -> None:
        self.messages = messages
        self.error = error
        self.calls: list[int] = []

    async def list_since(self, timestamp: int) -> list[RawMessage]:
        self.calls.append(timestamp)
        if self.error is not None:
            raise self.error
        return [m for m in self.messages if m.timestamp > timestamp]


class ExplodingStrategy(ExtractionStrategy):
    name = "boom"

    async def attempt(self, msg: RawMessage) -> TierOutcome:
        raise RuntimeError("unexpected")


def _msg(body: str, ts: int, sender: str = "AX-HDFCBK") -> RawMessage:
    return RawMessage(body=body, originating_address=sender, timestamp=ts)


MESSAGES = [
    _msg("Rs 300 debited for your Swiggy order", NOW - 5_000),
    _msg("Rs 1000 credited to your account", NOW - 4_000),
    _msg("Rs. 450 debited, payment to Zomato on 21-06", NOW - 9_000),
]


def _service(store: MemoryStore, source: ListSource, pipeline: ExtractionPipeline | None = None):
    pipeline = pipeline or ExtractionPipeline(default_strategies(None), clock=lambda: NOW)
    watermark = SyncWatermark(store, clock=lambda: NOW)
    return ReconciliationService(pipeline, watermark, source, clock=lambda: NOW), watermark


def test_processes_in_source_order_and_advances_to_now() -> None:
    store = MemoryStore({WATERMARK_KEY: str(NOW - 60_000)})
    source = ListSource(MESSAGES)
    service, watermark = _service(store, source)
    found: list[ExpenseRecord] = []

    summary = asyncio.run(service.reconcile(found.append))

    assert summary.ok
    assert source.calls == [NOW - 60_000]
    assert summary.listed == 3
    assert [r.title for r in found] == ["Swiggy", "Zomato"]
    assert [r.id for r in summary.found] == [
        f"AX-HDFCBK-{NOW - 5_000}-300.00",
        f"AX-HDFCBK-{NOW - 9_000}-450.00",
    ]
    assert watermark.get() == NOW
    assert summary.advanced_to == NOW


def test_empty_listing_still_advances() -> None:
    store = MemoryStore({WATERMARK_KEY: str(NOW - 60_000)})
    service, watermark = _service(store, ListSource([]))

    summary = asyncio.run(service.reconcile())

    assert summary.ok and summary.listed == 0
    assert watermark.get() == NOW


def test_async_on_found_is_awaited() -> None:
    store = MemoryStore({WATERMARK_KEY: str(NOW - 60_000)})
    service, _ = _service(store, ListSource(MESSAGES[:1]))
    seen: list[str] = []

    async def on_found(record: ExpenseRecord) -> None:
        await asyncio.sleep(0)
        seen.append(record.id)

    asyncio.run(service.reconcile(on_found))
    assert len(seen) == 1


def test_listing_failure_keeps_watermark() -> None:
    store = MemoryStore({WATERMARK_KEY: str(NOW - 60_000)})
    service, watermark = _service(store, ListSource(MESSAGES, error=PermissionError("READ_SMS denied")))

    summary = asyncio.run(service.reconcile())

    assert not summary.ok
    assert "READ_SMS denied" in (summary.error or "")
    assert watermark.get() == NOW - 60_000


def test_processing_failure_keeps_watermark() -> None:
    store = MemoryStore({WATERMARK_KEY: str(NOW - 60_000)})
    pipeline = ExtractionPipeline([ExplodingStrategy()], clock=lambda: NOW)
    service, watermark = _service(store, ListSource(MESSAGES), pipeline)

    summary = asyncio.run(service.reconcile())

    assert not summary.ok
    assert watermark.get() == NOW - 60_000


def test_rewind_then_reconcile_lists_from_rewound_point() -> None:
    store = MemoryStore({WATERMARK_KEY: str(NOW)})
    app = ExpenseSyncApp(store, None, clock=lambda: NOW)
    source = ListSource(MESSAGES)

    app.rewind(60)
    asyncio.run(app.reconcile(source))

    assert source.calls == [NOW - 60 * MS_PER_MINUTE]


def test_repeated_windows_do_not_duplicate_records() -> None:
    store = MemoryStore()
    app = ExpenseSyncApp(store, StubClassifier(default=ConfigMissing("no key")), clock=lambda: NOW)
    source = ListSource(MESSAGES)

    asyncio.run(app.reconcile(source))
    app.rewind(60)
    asyncio.run(app.reconcile(source))

    assert len(source.calls) == 2
    assert sorted(r.title for r in app.ledger.pending()) == ["Swiggy", "Zomato"]
    # Flagged records are queued exactly once.
    assert len(app.enhancement.pending()) == 2


def test_live_then_reconcile_yields_one_record() -> None:
    store = MemoryStore()
    app = ExpenseSyncApp(store, None, clock=lambda: NOW)
    msg = MESSAGES[0]

    event = {
        "originatingAddress": msg.originating_address,
        "body": msg.body,
        "timestamp": msg.timestamp,
    }
    live = asyncio.run(app.capture(event))
    app.rewind(60)
    asyncio.run(app.reconcile(ListSource([msg])))

    assert live is not None
    assert [r.id for r in app.ledger.pending()] == [live.id]
