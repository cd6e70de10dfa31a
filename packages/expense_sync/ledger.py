"""Pending/processed expense documents and the user's category list.

The ledger owns three store documents:

- ``pending_expenses_data``: records awaiting settlement, oldest first.
- ``processed_expenses_data``: settled records, oldest first.
- ``categories_data``: the user's category names.

``merge`` is the single dedup point shared by live capture and
reconciliation: a record whose id already exists in either list is ignored.

Store failures never discard state. Until the documents have been read, the
ledger works in memory and defers every write; the first successful read folds
those records in. When a write fails the in-memory lists are kept, so the next
successful write persists the full document.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from pydantic import ValidationError

from .clock import Clock, local_stamp, now_ms
from .errors import StoreUnavailable
from .logging_setup import get_logger
from .models import DEFAULT_CATEGORY, ExpenseRecord, fresh_record_id
from .store import CATEGORIES_KEY, PENDING_KEY, PROCESSED_KEY, KeyValueStore, read_json, write_json

_logger = get_logger("expense_sync.ledger")

DEFAULT_CATEGORIES: tuple[str, ...] = ("Food", "Travel", "Shopping", "Bills", DEFAULT_CATEGORY)

FULLY_MINE = "Fully Mine"

_CENT = Decimal("0.01")


def _to_amount(raw: Any) -> Decimal:
    if isinstance(raw, bool):
        raise ValueError(f"invalid amount: {raw!r}")
    try:
        amount = Decimal(str(raw).replace(",", "").strip())
    except (InvalidOperation, ValueError) as e:
        raise ValueError(f"invalid amount: {raw!r}") from e
    if not amount.is_finite() or amount <= 0:
        raise ValueError(f"amount must be positive, got {raw!r}")
    return amount


def _parse_records(docs: Any, key: str) -> list[ExpenseRecord]:
    if not isinstance(docs, list):
        _logger.warning("ledger:unexpected_document key=%s type=%s", key, type(docs).__name__)
        return []
    out: list[ExpenseRecord] = []
    for doc in docs:
        try:
            out.append(ExpenseRecord.from_document(doc))
        except ValidationError as e:
            _logger.warning("ledger:skip_invalid_record key=%s errors=%d", key, e.error_count())
    return out


def _documents(records: Iterable[ExpenseRecord]) -> list[dict[str, Any]]:
    return [r.to_document() for r in records]


class ExpenseLedger:
    """Record store over the pending and processed documents."""

    def __init__(self, store: KeyValueStore, *, clock: Clock = now_ms) -> None:
        self.store = store
        self.clock = clock
        self._pending: list[ExpenseRecord] = []
        self._processed: list[ExpenseRecord] = []
        self._categories: list[str] = []
        self._loaded = False

    # ------------------------------------------------------------------
    # Loading / saving
    # ------------------------------------------------------------------

    def _ensure_loaded(self) -> bool:
        if self._loaded:
            return True
        try:
            pending = _parse_records(read_json(self.store, PENDING_KEY, []), PENDING_KEY)
            processed = _parse_records(read_json(self.store, PROCESSED_KEY, []), PROCESSED_KEY)
            stored = read_json(self.store, CATEGORIES_KEY, [])
        except StoreUnavailable as e:
            _logger.error("ledger:load_failed key=%s error=%s", e.key, e)
            return False

        # Records touched while the store was unreachable are kept on top of
        # what it holds.
        known = {r.id for r in (*pending, *processed)}
        self._pending = pending + [r for r in self._pending if r.id not in known]
        self._processed = processed + [r for r in self._processed if r.id not in known]

        names = [str(c).strip() for c in stored] if isinstance(stored, list) else []
        categories = [n for n in names if n] or list(DEFAULT_CATEGORIES)
        seen = {c.casefold() for c in categories}
        categories += [c for c in self._categories if c.casefold() not in seen]
        self._categories = categories
        self._loaded = True
        return True

    def _write(self, key: str, render: Callable[[], Any]) -> bool:
        if not self._ensure_loaded():
            _logger.warning("ledger:save_deferred key=%s", key)
            return False
        try:
            write_json(self.store, key, render())
        except StoreUnavailable as e:
            _logger.error("ledger:save_failed key=%s error=%s", key, e)
            return False
        return True

    def _save_pending(self) -> bool:
        return self._write(PENDING_KEY, lambda: _documents(self._pending))

    def _save_processed(self) -> bool:
        return self._write(PROCESSED_KEY, lambda: _documents(self._processed))

    def _save_categories(self) -> bool:
        return self._write(CATEGORIES_KEY, lambda: list(self._categories))

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def pending(self) -> list[ExpenseRecord]:
        self._ensure_loaded()
        return list(self._pending)

    def processed(self) -> list[ExpenseRecord]:
        self._ensure_loaded()
        return list(self._processed)

    def all_records(self) -> list[ExpenseRecord]:
        self._ensure_loaded()
        return [*self._processed, *self._pending]

    def get(self, record_id: str) -> ExpenseRecord | None:
        self._ensure_loaded()
        for rec in (*self._pending, *self._processed):
            if rec.id == record_id:
                return rec
        return None

    def _locate(self, record_id: str) -> tuple[list[ExpenseRecord], int]:
        self._ensure_loaded()
        for records in (self._pending, self._processed):
            for idx, rec in enumerate(records):
                if rec.id == record_id:
                    return records, idx
        raise KeyError(record_id)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def merge(self, record: ExpenseRecord) -> bool:
        """Append ``record`` to pending unless its id is already known.

        Returns True when the record was added.
        """

        if self.get(record.id) is not None:
            _logger.debug("ledger:duplicate id=%s", record.id)
            return False
        self._pending.append(record)
        self._save_pending()
        _logger.info("ledger:merged id=%s amount=%s", record.id, record.amount)
        return True

    def add_manual(
        self, title: str, amount: Any, source: str, *, category: str | None = None
    ) -> ExpenseRecord:
        """Create a pending record from user input.

        Raises ``ValueError`` when a field is blank or the amount is not a
        positive number.
        """

        title = (title or "").strip()
        source = (source or "").strip()
        if not title or not source:
            raise ValueError("title, amount and source are all required")
        now = self.clock()
        date, time_ = local_stamp(now)
        record = ExpenseRecord(
            id=fresh_record_id(now),
            title=title,
            amount=_to_amount(amount),
            source=source,
            date=date,
            time=time_,
            category=category or DEFAULT_CATEGORY,
        )
        self.merge(record)
        return record

    def delete(self, record_id: str) -> bool:
        """Remove a pending record; returns False when no pending record matches."""

        self._ensure_loaded()
        kept = [r for r in self._pending if r.id != record_id]
        if len(kept) == len(self._pending):
            return False
        self._pending = kept
        self._save_pending()
        return True

    def settle(self, record_id: str, *, split_with: int | None = None) -> ExpenseRecord:
        """Move a pending record to processed.

        ``split_with=None`` keeps the full amount ("Fully Mine"); ``split_with=n``
        stores the per-person share, rounded to cents.
        """

        self._ensure_loaded()
        record = next((r for r in self._pending if r.id == record_id), None)
        if record is None:
            raise KeyError(record_id)

        if split_with is None:
            update: dict[str, Any] = {"settlement": FULLY_MINE}
        else:
            if split_with < 1:
                raise ValueError(f"split count must be at least 1, got {split_with}")
            share = (record.amount / split_with).quantize(_CENT, rounding=ROUND_HALF_UP)
            if share <= 0:
                raise ValueError(f"amount {record.amount} cannot be split {split_with} ways")
            update = {"settlement": f"Split with {split_with}", "amount": share}

        settled = record.model_copy(update=update)
        self._pending = [r for r in self._pending if r.id != record_id]
        self._processed.append(settled)
        self._save_processed()
        self._save_pending()
        _logger.info("ledger:settled id=%s settlement=%s", settled.id, settled.settlement)
        return settled

    def replace(self, record: ExpenseRecord) -> None:
        """Swap in an updated version of an existing record."""

        records, idx = self._locate(record.id)
        records[idx] = record
        if records is self._pending:
            self._save_pending()
        else:
            self._save_processed()

    def update_category(self, record_id: str, category: str) -> ExpenseRecord:
        category = (category or "").strip()
        if not category:
            raise ValueError("category must not be blank")
        records, idx = self._locate(record_id)
        updated = records[idx].model_copy(update={"category": category})
        self.replace(updated)
        self.add_category(category)
        return updated

    # ------------------------------------------------------------------
    # Category list
    # ------------------------------------------------------------------

    def categories(self) -> list[str]:
        if self._ensure_loaded():
            return list(self._categories)
        # Offline: defaults plus names added since; the stored list is unknown.
        seen = {c.casefold() for c in DEFAULT_CATEGORIES}
        return [*DEFAULT_CATEGORIES, *(c for c in self._categories if c.casefold() not in seen)]

    def add_category(self, name: str) -> bool:
        name = (name or "").strip()
        if not name:
            raise ValueError("category must not be blank")
        current = self.categories()
        if any(c.casefold() == name.casefold() for c in current):
            return False
        self._categories.append(name)
        self._save_categories()
        return True


__all__ = ["DEFAULT_CATEGORIES", "FULLY_MINE", "ExpenseLedger"]
