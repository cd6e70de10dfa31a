"""Catch up on messages the live listener missed.

One pass reads the watermark, lists messages newer than it, runs each through
the pipeline (with deterministic ids), hands every extracted record to
``on_found``, and finally advances the watermark to "now". Any failure aborts
the pass without touching the watermark, so the same window is listed again
next time; the ledger's id-based merge absorbs the repeats.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from .clock import Clock, now_ms
from .logging_setup import get_logger
from .models import ExpenseRecord
from .pipeline import ExtractionPipeline
from .sources import MessageSource
from .watermark import SyncWatermark

_logger = get_logger("expense_sync.reconciliation")

type OnFound = Callable[[ExpenseRecord], Awaitable[None] | None]


@dataclass(slots=True)
class ReconcileSummary:
    since: int
    listed: int = 0
    found: list[ExpenseRecord] = field(default_factory=list)
    advanced_to: int | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class ReconciliationService:
    def __init__(
        self,
        pipeline: ExtractionPipeline,
        watermark: SyncWatermark,
        source: MessageSource,
        *,
        clock: Clock = now_ms,
    ) -> None:
        self.pipeline = pipeline
        self.watermark = watermark
        self.source = source
        self.clock = clock

    async def reconcile(self, on_found: OnFound | None = None) -> ReconcileSummary:
        """Run one reconciliation pass; never raises.

        ``on_found`` may be a plain or async callable. Failures are reported
        on the returned summary and leave the watermark where it was.
        """

        since = self.watermark.get()
        summary = ReconcileSummary(since=since)
        try:
            messages = await self.source.list_since(since)
            summary.listed = len(messages)
            for msg in messages:
                record = await self.pipeline.process(msg, rediscoverable=True)
                if record is None:
                    continue
                summary.found.append(record)
                if on_found is not None:
                    result = on_found(record)
                    if result is not None:
                        await result
            now = self.clock()
            self.watermark.advance(now)
            summary.advanced_to = now
        except Exception as e:
            summary.error = f"{e.__class__.__name__}: {e}"
            _logger.exception("reconcile:failed since=%s", since)
            return summary

        _logger.info(
            "reconcile:done since=%s listed=%d found=%d", since, summary.listed, len(summary.found)
        )
        return summary


__all__ = ["OnFound", "ReconcileSummary", "ReconciliationService"]
