"""Failure taxonomy for ``expense_sync``.

Classifier failures are ordinary, expected outcomes of talking to a remote,
rate-limited service. Automatic capture flows catch :class:`ClassifierError`
and fall back to the regex tier; only the manual debug-analysis path lets
them reach the operator.

``NoAmountFound`` is deliberately not an exception: when both tiers miss, the
pipeline returns ``None``.
"""

from __future__ import annotations


class ExpenseSyncError(Exception):
    """Base class for all package errors."""


# ---------------------------------------------------------------------------
# AI tier
# ---------------------------------------------------------------------------


class ClassifierError(ExpenseSyncError):
    """The AI classifier did not produce a usable candidate.

    ``unreachable`` tells the pipeline whether the AI tier could not be
    consulted at all (so the record should be retried later) as opposed to
    having answered without a usable result.
    """

    kind: str = "classifier_error"
    unreachable: bool = True


class ConfigMissing(ClassifierError):
    """No API key is configured; no network call was made."""

    kind = "config_missing"


class RateLimited(ClassifierError):
    """The remote endpoint signalled throttling (HTTP 429)."""

    kind = "rate_limited"


class TransportError(ClassifierError):
    """Network failure, timeout, non-2xx status, or an undecodable body."""

    kind = "transport_error"

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class EmptyResult(ClassifierError):
    """Well-formed response without a usable candidate (e.g. not a transaction)."""

    kind = "empty_result"
    unreachable = False


class ValidationFailed(EmptyResult):
    """The candidate was present but its fields did not validate."""

    kind = "validation_failed"


# ---------------------------------------------------------------------------
# Durable store
# ---------------------------------------------------------------------------


class StoreUnavailable(ExpenseSyncError):
    """The durable key/value store could not be read or written."""

    def __init__(self, message: str, *, key: str | None = None) -> None:
        super().__init__(message)
        self.key = key


__all__ = [
    "ExpenseSyncError",
    "ClassifierError",
    "ConfigMissing",
    "RateLimited",
    "TransportError",
    "EmptyResult",
    "ValidationFailed",
    "StoreUnavailable",
]
