"""Application wiring for ``expense_sync``.

:class:`ExpenseSyncApp` assembles the pipeline components over a single
durable store and exposes the operations entrypoints need. :func:`build_app`
constructs the production stack (SQLAlchemy store, Gemini classifier) from
:class:`~expense_sync.config.Settings`.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from .category_history import CategoryHistory
from .classifier import GeminiClassifier
from .clock import Clock, local_stamp, now_ms
from .config import Settings, load_settings
from .enhancement import EnhancementQueue, EnhancementSummary
from .ledger import ExpenseLedger
from .live import LiveCapture, Register, Unregister
from .logging_setup import get_logger
from .models import (
    DEBUG_SOURCE,
    DEFAULT_CATEGORY,
    ExpenseRecord,
    ExtractedCandidate,
    RawMessage,
    fresh_record_id,
)
from .pipeline import ExtractionPipeline, default_strategies
from .reconciliation import ReconcileSummary, ReconciliationService
from .sources import MessageSource
from .store import KeyValueStore, SqlKeyValueStore
from .strategies import Classifier
from .watermark import SyncWatermark

_logger = get_logger("expense_sync.api")


class ExpenseSyncApp:
    """Facade over ledger, pipeline, watermark, and enhancement queue.

    Parameters
    ----------
    store:
        Durable key/value store shared by every component.
    classifier:
        AI tier. ``None`` runs the pipeline with the regex tier only and
        leaves records unflagged.
    clock:
        Epoch-millisecond clock shared by every component.
    first_run_window_hours:
        Reconciliation look-back used before a watermark exists.
    """

    def __init__(
        self,
        store: KeyValueStore,
        classifier: Classifier | None,
        *,
        clock: Clock = now_ms,
        first_run_window_hours: int = 24,
    ) -> None:
        self.store = store
        self.classifier = classifier
        self.clock = clock
        self.ledger = ExpenseLedger(store, clock=clock)
        self.history = CategoryHistory(self.ledger)
        self.pipeline = ExtractionPipeline(
            default_strategies(classifier), history=self.history, clock=clock
        )
        self.watermark = SyncWatermark(
            store, clock=clock, first_run_window_hours=first_run_window_hours
        )
        self.enhancement = (
            EnhancementQueue(store, self.ledger, classifier, self.history)
            if classifier is not None
            else None
        )
        self.live = LiveCapture(self.pipeline, self.ledger, self.watermark, self.enhancement)

    def _on_found(self, record: ExpenseRecord) -> None:
        if self.ledger.merge(record) and self.enhancement is not None:
            self.enhancement.enqueue(record)

    async def reconcile(self, source: MessageSource) -> ReconcileSummary:
        """Run one reconciliation pass against ``source`` and merge the findings."""

        service = ReconciliationService(self.pipeline, self.watermark, source, clock=self.clock)
        return await service.reconcile(self._on_found)

    async def enhance(self) -> EnhancementSummary:
        if self.enhancement is None:
            _logger.info("api:enhance_skipped reason=no_classifier")
            return EnhancementSummary()
        return await self.enhancement.enhance_all()

    def rewind(self, minutes: int) -> int:
        return self.watermark.rewind(minutes)

    def listen(self, register: Register) -> Unregister:
        return self.live.listen(register)

    async def capture(self, message: RawMessage | Mapping[str, Any]) -> ExpenseRecord | None:
        """Process one live message immediately (bypassing the event queue)."""

        msg = message if isinstance(message, RawMessage) else RawMessage.from_event(message)
        return await self.live.handle(msg)

    async def analyze(self, text: str, *, save: bool = False) -> ExtractedCandidate:
        """Manual debug analysis: classify ``text`` directly.

        Classifier failures propagate unchanged. With ``save=True`` a valid
        result is stored as a pending record with source ``"Debug"``.
        """

        if self.classifier is None:
            raise RuntimeError("no classifier configured")
        candidate = await self.classifier.classify(text)
        if save:
            if not candidate.is_valid or candidate.amount is None:
                raise ValueError("classifier result has no positive amount; nothing to save")
            now = self.clock()
            date, time_ = local_stamp(now)
            record = ExpenseRecord(
                id=fresh_record_id(now),
                title=candidate.merchant or DEBUG_SOURCE,
                amount=candidate.amount,
                source=DEBUG_SOURCE,
                date=date,
                time=time_,
                category=candidate.category or DEFAULT_CATEGORY,
                type=candidate.type or "debit",
            )
            self.ledger.merge(record)
        return candidate


def build_app(settings: Settings | None = None) -> ExpenseSyncApp:
    """Production wiring: SQL-backed store and Gemini classifier."""

    settings = settings or load_settings()
    if not settings.has_api_key:
        _logger.info("api:no_api_key ai_tier=unreachable")
    return ExpenseSyncApp(
        SqlKeyValueStore(settings.database_url),
        GeminiClassifier.from_settings(settings),
        first_run_window_hours=settings.first_run_window_hours,
    )


__all__ = ["ExpenseSyncApp", "build_app"]
