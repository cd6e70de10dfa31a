"""Merchant → category learning from the user's own records.

The index is derived on demand from the ledger and never persisted. For a
given merchant the category of the most recent matching record wins, looking
at processed records newest-first and then pending records newest-first.
``Uncategorized`` is the default rather than a choice, so it is never learned.

Merchant names are compared after NFKC normalization, whitespace collapsing,
and casefolding.
"""

from __future__ import annotations

import unicodedata
from typing import Protocol

from .models import DEFAULT_CATEGORY, ExpenseRecord


class RecordSource(Protocol):
    def pending(self) -> list[ExpenseRecord]: ...

    def processed(self) -> list[ExpenseRecord]: ...


def normalize_merchant(raw: str | None) -> str | None:
    """Return the comparison key for a merchant name, or ``None`` when blank."""

    if raw is None:
        return None
    s = unicodedata.normalize("NFKC", str(raw)).strip()
    if not s:
        return None
    return " ".join(s.split()).casefold()


def _learned(record: ExpenseRecord) -> str | None:
    category = (record.category or "").strip()
    if not category or category == DEFAULT_CATEGORY:
        return None
    return category


class CategoryHistory:
    def __init__(self, records: RecordSource) -> None:
        self.records = records

    def _newest_first(self) -> list[ExpenseRecord]:
        return [*reversed(self.records.processed()), *reversed(self.records.pending())]

    def lookup(self, merchant: str | None) -> str | None:
        """Category of the most recent record for ``merchant``, if any was chosen."""

        key = normalize_merchant(merchant)
        if key is None:
            return None
        for record in self._newest_first():
            if normalize_merchant(record.title) != key:
                continue
            learned = _learned(record)
            if learned is not None:
                return learned
        return None

    def index(self) -> dict[str, str]:
        """Full normalized-merchant → category mapping."""

        out: dict[str, str] = {}
        for record in self._newest_first():
            key = normalize_merchant(record.title)
            learned = _learned(record)
            if key is not None and learned is not None:
                out.setdefault(key, learned)
        return out

    def apply(self, record: ExpenseRecord) -> ExpenseRecord:
        """Return ``record`` with its category replaced by the learned one, if any."""

        learned = self.lookup(record.title)
        if learned is None or learned == record.category:
            return record
        return record.model_copy(update={"category": learned})


__all__ = ["normalize_merchant", "CategoryHistory"]
