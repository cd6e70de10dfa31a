"""Extraction tiers as an ordered list of strategies.

Each strategy turns a :class:`~expense_sync.models.RawMessage` into a
:class:`TierOutcome`. The pipeline walks the list in order and promotes the
first outcome whose candidate carries a positive amount; later tiers are only
consulted on a miss.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Protocol

from . import text_extractor
from .errors import ClassifierError
from .logging_setup import get_logger
from .models import ExtractedCandidate, RawMessage

_logger = get_logger("expense_sync.strategies")


class Classifier(Protocol):
    async def classify(self, body: str) -> ExtractedCandidate: ...


@dataclass(frozen=True, slots=True)
class TierOutcome:
    """Result of consulting one tier.

    ``unreachable`` is set when the tier could not be consulted at all
    (missing key, throttled, transport failure); ``error`` names the failure
    kind for logging.
    """

    tier: str
    candidate: ExtractedCandidate | None = None
    unreachable: bool = False
    error: str | None = None

    @property
    def hit(self) -> bool:
        return self.candidate is not None and self.candidate.is_valid


class ExtractionStrategy(ABC):
    name: str = "strategy"

    @abstractmethod
    async def attempt(self, msg: RawMessage) -> TierOutcome:
        raise NotImplementedError


class AIStrategy(ExtractionStrategy):
    """Primary tier: the remote classifier. Failures become misses."""

    name = "ai"

    def __init__(self, classifier: Classifier) -> None:
        self.classifier = classifier

    async def attempt(self, msg: RawMessage) -> TierOutcome:
        try:
            candidate = await self.classifier.classify(msg.body)
        except ClassifierError as e:
            log = _logger.warning if e.unreachable and e.kind != "config_missing" else _logger.info
            log("strategy:ai_miss kind=%s detail=%s", e.kind, e)
            return TierOutcome(self.name, unreachable=e.unreachable, error=e.kind)
        return TierOutcome(self.name, candidate=candidate)


class RegexStrategy(ExtractionStrategy):
    """Fallback tier: local pattern extraction; never unreachable."""

    name = "regex"

    async def attempt(self, msg: RawMessage) -> TierOutcome:
        return TierOutcome(
            self.name, candidate=text_extractor.extract(msg.body, msg.originating_address)
        )


__all__ = [
    "Classifier",
    "TierOutcome",
    "ExtractionStrategy",
    "AIStrategy",
    "RegexStrategy",
]
