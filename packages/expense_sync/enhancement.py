"""Deferred AI enrichment for records captured while the AI tier was down.

Tasks live in their own store document (``enhancement_queue_data``) and point
at ledger records by id. A pass first reconciles the queue with the ledger
(flagged records without a task get one; tasks whose record is gone or no
longer flagged are dropped), then retries the classifier for each task:

- success: the record's title and category are replaced (a learned category
  from :class:`CategoryHistory` still wins), the flag and stored body are
  cleared, and the task is removed;
- failure: the record is untouched and the task records the attempt.

Amount, date, id, and source are never changed. Running the pass twice with
nothing new to do is a no-op.
"""

from __future__ import annotations

from dataclasses import dataclass

from pydantic import ValidationError

from .category_history import CategoryHistory
from .errors import ClassifierError, StoreUnavailable
from .ledger import ExpenseLedger
from .logging_setup import get_logger
from .models import DEFAULT_CATEGORY, EnhancementTask, ExpenseRecord
from .store import ENHANCEMENT_QUEUE_KEY, KeyValueStore, read_json, write_json
from .strategies import Classifier
from .text_extractor import display_case

_logger = get_logger("expense_sync.enhancement")


@dataclass(frozen=True, slots=True)
class EnhancementSummary:
    attempted: int = 0
    enhanced: int = 0
    failed: int = 0
    dropped: int = 0


class EnhancementQueue:
    def __init__(
        self,
        store: KeyValueStore,
        ledger: ExpenseLedger,
        classifier: Classifier,
        history: CategoryHistory | None = None,
    ) -> None:
        self.store = store
        self.ledger = ledger
        self.classifier = classifier
        self.history = history if history is not None else CategoryHistory(ledger)

    # ------------------------------------------------------------------
    # Queue document
    # ------------------------------------------------------------------

    def _load(self) -> list[EnhancementTask] | None:
        """Stored tasks, or ``None`` when the queue document cannot be read."""

        try:
            docs = read_json(self.store, ENHANCEMENT_QUEUE_KEY, [])
        except StoreUnavailable as e:
            _logger.error("enhancement:load_failed error=%s", e)
            return None
        tasks: list[EnhancementTask] = []
        for doc in docs if isinstance(docs, list) else []:
            try:
                tasks.append(EnhancementTask.model_validate(doc))
            except ValidationError:
                _logger.warning("enhancement:skip_invalid_task")
        return tasks

    def _save(self, tasks: list[EnhancementTask]) -> None:
        try:
            write_json(self.store, ENHANCEMENT_QUEUE_KEY, [t.to_document() for t in tasks])
        except StoreUnavailable as e:
            _logger.error("enhancement:save_failed error=%s", e)

    def pending(self) -> list[EnhancementTask]:
        return self._load() or []

    def enqueue(self, record: ExpenseRecord) -> bool:
        """Add a task for a flagged record; no-op when one already exists."""

        if not record.requires_enhancement or not record.original_body:
            return False
        tasks = self._load()
        if tasks is None:
            return False
        if any(t.record_id == record.id for t in tasks):
            return False
        tasks.append(EnhancementTask(record_id=record.id, original_body=record.original_body))
        self._save(tasks)
        _logger.debug("enhancement:enqueued id=%s", record.id)
        return True

    def _sync_with_ledger(self, tasks: list[EnhancementTask]) -> tuple[list[EnhancementTask], int]:
        flagged = {
            r.id: r for r in self.ledger.all_records() if r.requires_enhancement and r.original_body
        }
        kept = [t for t in tasks if t.record_id in flagged]
        dropped = len(tasks) - len(kept)
        queued = {t.record_id for t in kept}
        for record_id, record in flagged.items():
            if record_id not in queued:
                kept.append(
                    EnhancementTask(record_id=record_id, original_body=record.original_body)
                )
        return kept, dropped

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------

    def _enhanced(
        self, record: ExpenseRecord, merchant: str, category: str | None
    ) -> ExpenseRecord:
        updated = record.model_copy(
            update={
                "title": display_case(merchant) or record.title,
                "category": category or DEFAULT_CATEGORY,
                "requires_enhancement": False,
                "original_body": None,
            }
        )
        return self.history.apply(updated)

    async def enhance_all(self) -> EnhancementSummary:
        stored = self._load()
        tasks, dropped = self._sync_with_ledger(stored or [])
        remaining: list[EnhancementTask] = []
        enhanced = failed = 0

        for task in tasks:
            record = self.ledger.get(task.record_id)
            if record is None:
                dropped += 1
                continue
            try:
                candidate = await self.classifier.classify(task.original_body)
            except ClassifierError as e:
                failed += 1
                remaining.append(
                    task.model_copy(update={"attempts": task.attempts + 1, "last_error": e.kind})
                )
                _logger.info("enhancement:retry_failed id=%s kind=%s", task.record_id, e.kind)
                continue
            self.ledger.replace(self._enhanced(record, candidate.merchant, candidate.category))
            enhanced += 1
            _logger.info("enhancement:enhanced id=%s", task.record_id)

        if stored is not None:
            self._save(remaining)
        summary = EnhancementSummary(
            attempted=len(tasks), enhanced=enhanced, failed=failed, dropped=dropped
        )
        _logger.info(
            "enhancement:done attempted=%d enhanced=%d failed=%d dropped=%d",
            summary.attempted,
            summary.enhanced,
            summary.failed,
            summary.dropped,
        )
        return summary


__all__ = ["EnhancementSummary", "EnhancementQueue"]
