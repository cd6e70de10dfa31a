"""Turn one raw SMS into an :class:`~expense_sync.models.ExpenseRecord`.

Steps
-----
1. Only messages whose body mentions "debited" are considered.
2. Tiers are consulted in order (AI first, regex second); the first candidate
   with a positive amount wins. A complete miss returns ``None``.
3. The merchant's learned category (from :class:`CategoryHistory`) overrides
   whatever the winning tier suggested.
4. When the amount came from a fallback because the AI tier could not be
   reached, the record is flagged for later enhancement and keeps the raw body.

The pipeline has no persistence side effects; callers merge the returned
record into the ledger.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from typing import Protocol

from .clock import Clock, local_stamp, now_ms
from .logging_setup import get_logger
from .models import (
    DEFAULT_CATEGORY,
    ExpenseRecord,
    RawMessage,
    fresh_record_id,
    message_record_id,
)
from .strategies import AIStrategy, Classifier, ExtractionStrategy, RegexStrategy, TierOutcome
from .text_extractor import display_case, extract_merchant

_logger = get_logger("expense_sync.pipeline")

_DEBIT_RE = re.compile(r"debited", re.IGNORECASE)


class CategoryLookup(Protocol):
    def lookup(self, merchant: str) -> str | None: ...


def is_debit(body: str) -> bool:
    return bool(body) and _DEBIT_RE.search(body) is not None


def default_strategies(classifier: Classifier | None) -> list[ExtractionStrategy]:
    strategies: list[ExtractionStrategy] = []
    if classifier is not None:
        strategies.append(AIStrategy(classifier))
    strategies.append(RegexStrategy())
    return strategies


class ExtractionPipeline:
    """Ordered-tier extraction with category learning and enhancement flagging.

    Parameters
    ----------
    strategies:
        Tiers in priority order. Use :func:`default_strategies` for the usual
        AI-then-regex arrangement.
    history:
        Optional merchant→category lookup applied to the winning candidate.
    clock:
        Epoch-millisecond clock used for creation-time ids and stamps.
    """

    def __init__(
        self,
        strategies: Sequence[ExtractionStrategy],
        *,
        history: CategoryLookup | None = None,
        clock: Clock = now_ms,
    ) -> None:
        if not strategies:
            raise ValueError("at least one extraction strategy is required")
        self.strategies = list(strategies)
        self.history = history
        self.clock = clock

    async def _resolve(self, msg: RawMessage) -> tuple[TierOutcome | None, bool]:
        unreachable = False
        for strategy in self.strategies:
            outcome = await strategy.attempt(msg)
            unreachable = unreachable or outcome.unreachable
            if outcome.hit:
                return outcome, unreachable
        return None, unreachable

    async def process(
        self, msg: RawMessage, *, rediscoverable: bool = False
    ) -> ExpenseRecord | None:
        """Extract a record from ``msg`` or return ``None``.

        With ``rediscoverable=True`` the id is derived from source, timestamp
        and amount, and date/time come from the message timestamp, so the
        live and reconciliation paths produce the same record for the same
        message.
        """

        if not is_debit(msg.body):
            _logger.debug(
                "pipeline:skip_non_debit source=%s ts=%s", msg.originating_address, msg.timestamp
            )
            return None

        outcome, unreachable = await self._resolve(msg)
        if outcome is None or outcome.candidate is None or outcome.candidate.amount is None:
            _logger.debug(
                "pipeline:no_amount source=%s ts=%s", msg.originating_address, msg.timestamp
            )
            return None

        candidate = outcome.candidate
        amount = candidate.amount
        title = display_case(candidate.merchant) or extract_merchant(
            msg.body, msg.originating_address
        )

        category = candidate.category or DEFAULT_CATEGORY
        if self.history is not None:
            learned = self.history.lookup(title)
            if learned:
                category = learned

        if rediscoverable:
            record_id = message_record_id(msg.originating_address, msg.timestamp, amount)
            date, time_ = local_stamp(msg.timestamp)
        else:
            now = self.clock()
            record_id = fresh_record_id(now)
            date, time_ = local_stamp(now)

        record = ExpenseRecord(
            id=record_id,
            title=title,
            amount=amount,
            source=msg.originating_address,
            date=date,
            time=time_,
            category=category,
            type="debit",
            requires_enhancement=unreachable,
            original_body=msg.body if unreachable else None,
        )
        _logger.info(
            "pipeline:record id=%s tier=%s category=%s flagged=%s",
            record.id,
            outcome.tier,
            record.category,
            record.requires_enhancement,
        )
        return record


__all__ = ["CategoryLookup", "is_debit", "default_strategies", "ExtractionPipeline"]
