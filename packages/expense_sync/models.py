"""Data models for ``expense_sync``.

- :class:`RawMessage`: transient SMS event from the live listener or the batch
  lister. Never persisted.
- :class:`ExtractedCandidate`: transient output of an extraction tier.
- :class:`ExpenseRecord`: the durable unit stored in the ledger documents.
- :class:`EnhancementTask`: deferred-work entry pointing at a record captured
  while the AI tier was unreachable.

Persisted models serialize with camelCase keys (``requiresEnhancement``,
``originalBody``, ...) so stored documents keep the shape the mobile app
writes; Python code uses snake_case attributes.
"""

from __future__ import annotations

import secrets
from collections.abc import Mapping
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Literal

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationInfo,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

TransactionType = Literal["debit", "credit"]

DEFAULT_CATEGORY = "Uncategorized"
MANUAL_SOURCE = "Manual"
DEBUG_SOURCE = "Debug"


def fresh_record_id(now_ms: int) -> str:
    """Creation-time id for records that cannot be rediscovered (manual entry)."""

    return f"{now_ms}-{secrets.token_hex(3)}"


def message_record_id(source: str, timestamp: int, amount: Decimal) -> str:
    """Deterministic id for a record derived from a device message."""

    return f"{source}-{timestamp}-{amount:.2f}"


# ---------------------------------------------------------------------------
# Transient inputs
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class RawMessage:
    """A single SMS as delivered by the device.

    ``timestamp`` is epoch milliseconds.
    """

    body: str
    originating_address: str
    timestamp: int

    @classmethod
    def from_event(cls, event: Mapping[str, Any]) -> RawMessage:
        """Build from a live-push event or a listing row.

        Live events carry ``originatingAddress``; listing rows carry
        ``address``. Timestamps may arrive as floats from the device bridge.
        """

        address = event.get("originatingAddress")
        if address is None:
            address = event.get("address")
        return cls(
            body=str(event.get("body") or ""),
            originating_address=str(address or "").strip(),
            timestamp=int(float(event.get("timestamp") or 0)),
        )


class ExtractedCandidate(BaseModel):
    """Structured guess produced by one extraction tier.

    The regex tier leaves ``type`` and ``category`` unset. A candidate is only
    promotable when :attr:`is_valid` holds (``amount > 0``).
    """

    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    merchant: str = ""
    amount: Decimal | None = None
    type: TransactionType | None = None
    category: str | None = None
    confidence: float = 0.0

    @field_validator("merchant", mode="before")
    @classmethod
    def _merchant_text(cls, v: Any) -> str:
        return "" if v is None else str(v)

    @field_validator("amount", mode="before")
    @classmethod
    def _amount_decimal(cls, v: Any) -> Any:
        if v is None or isinstance(v, bool):
            return None
        if isinstance(v, str):
            s = v.replace(",", "").strip()
            if not s:
                return None
            try:
                return Decimal(s)
            except InvalidOperation as e:
                raise ValueError(f"invalid amount: {v!r}") from e
        return v

    @field_validator("type", mode="before")
    @classmethod
    def _lower_type(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip().lower() or None
        return v

    @field_validator("category", mode="before")
    @classmethod
    def _blank_category(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, v: Any) -> float:
        try:
            fv = float(v)
        except (TypeError, ValueError):
            return 0.0
        return max(0.0, min(1.0, fv))

    @property
    def is_valid(self) -> bool:
        return self.amount is not None and self.amount > 0


# ---------------------------------------------------------------------------
# Persisted models
# ---------------------------------------------------------------------------


# Raw SMS text is stored exactly as received.
_VERBATIM_FIELDS = frozenset({"original_body"})


class _Document(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    @field_validator("*", mode="before")
    @classmethod
    def _strip_text(cls, v: Any, info: ValidationInfo) -> Any:
        if isinstance(v, str) and info.field_name not in _VERBATIM_FIELDS:
            return v.strip()
        return v

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class ExpenseRecord(_Document):
    """The durable expense unit.

    ``id`` is the deduplication key across capture paths. ``original_body`` is
    retained only while ``requires_enhancement`` is true.
    """

    id: str = Field(min_length=1)
    title: str
    amount: Decimal = Field(gt=0)
    source: str
    date: str
    time: str = ""
    category: str = DEFAULT_CATEGORY
    type: TransactionType = "debit"
    requires_enhancement: bool = False
    original_body: str | None = None
    # None while pending; "Fully Mine" / "Split with N" once settled.
    settlement: str | None = None

    @field_validator("category", mode="before")
    @classmethod
    def _default_category(cls, v: Any) -> Any:
        if v is None or (isinstance(v, str) and not v.strip()):
            return DEFAULT_CATEGORY
        return v

    @model_validator(mode="after")
    def _body_only_while_flagged(self) -> ExpenseRecord:
        if not self.requires_enhancement:
            self.original_body = None
        return self

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> ExpenseRecord:
        return cls.model_validate(doc)


class EnhancementTask(_Document):
    """Deferred AI enrichment for one ledger record."""

    record_id: str = Field(min_length=1)
    original_body: str
    attempts: int = 0
    last_error: str | None = None


__all__ = [
    "TransactionType",
    "DEFAULT_CATEGORY",
    "MANUAL_SOURCE",
    "DEBUG_SOURCE",
    "fresh_record_id",
    "message_record_id",
    "RawMessage",
    "ExtractedCandidate",
    "ExpenseRecord",
    "EnhancementTask",
]
