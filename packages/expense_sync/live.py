"""Adapter between the device's live SMS push and the pipeline.

The device producer accepts a single-argument callback and returns a handle
that unregisters it. Callbacks fire on the producer's thread, so events are
only queued there; :meth:`LiveCapture.drain` processes them in arrival order.
"""

from __future__ import annotations

import queue
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from .enhancement import EnhancementQueue
from .ledger import ExpenseLedger
from .logging_setup import get_logger
from .models import ExpenseRecord, RawMessage
from .pipeline import ExtractionPipeline
from .watermark import SyncWatermark

_logger = get_logger("expense_sync.live")

type EventCallback = Callable[[Mapping[str, Any]], None]
type Unregister = Callable[[], None]
type Register = Callable[[EventCallback], Unregister]


@dataclass(frozen=True, slots=True)
class DrainSummary:
    received: int
    captured: list[ExpenseRecord]


class LiveCapture:
    def __init__(
        self,
        pipeline: ExtractionPipeline,
        ledger: ExpenseLedger,
        watermark: SyncWatermark,
        enhancement: EnhancementQueue | None = None,
    ) -> None:
        self.pipeline = pipeline
        self.ledger = ledger
        self.watermark = watermark
        self.enhancement = enhancement
        self._events: queue.SimpleQueue[RawMessage] = queue.SimpleQueue()

    def on_event(self, event: Mapping[str, Any]) -> None:
        """Queue a raw push event; safe to call from any thread."""

        try:
            msg = RawMessage.from_event(event)
        except (TypeError, ValueError):
            _logger.warning("live:bad_event keys=%s", sorted(event))
            return
        self._events.put(msg)

    def listen(self, register: Register) -> Unregister:
        """Register :meth:`on_event` with the producer; returns its unregister handle."""

        unregister = register(self.on_event)
        _logger.info("live:listening")
        return unregister

    async def handle(self, msg: RawMessage) -> ExpenseRecord | None:
        """Run one message through the pipeline and merge the result."""

        record = await self.pipeline.process(msg, rediscoverable=True)
        if record is not None:
            if self.ledger.merge(record) and self.enhancement is not None:
                self.enhancement.enqueue(record)
        self.watermark.advance(msg.timestamp)
        return record

    async def drain(self) -> DrainSummary:
        """Process every queued event in arrival order."""

        received = 0
        captured: list[ExpenseRecord] = []
        while True:
            try:
                msg = self._events.get_nowait()
            except queue.Empty:
                break
            received += 1
            record = await self.handle(msg)
            if record is not None:
                captured.append(record)
        return DrainSummary(received=received, captured=captured)


__all__ = ["EventCallback", "Unregister", "Register", "DrainSummary", "LiveCapture"]
