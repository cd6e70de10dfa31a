"""Persisted "last synced up to" timestamp for missed-message reconciliation.

Stored under ``last_sms_sync_timestamp`` as a decimal string of epoch
milliseconds. ``advance`` is monotonic; only ``rewind`` may move it back.
"""

from __future__ import annotations

from .clock import MS_PER_HOUR, MS_PER_MINUTE, Clock, now_ms
from .errors import StoreUnavailable
from .logging_setup import get_logger
from .store import WATERMARK_KEY, KeyValueStore

_logger = get_logger("expense_sync.watermark")


class SyncWatermark:
    def __init__(
        self,
        store: KeyValueStore,
        *,
        clock: Clock = now_ms,
        first_run_window_hours: int = 24,
    ) -> None:
        self.store = store
        self.clock = clock
        self.first_run_window_hours = first_run_window_hours

    def _first_run(self) -> int:
        return self.clock() - self.first_run_window_hours * MS_PER_HOUR

    def _stored(self) -> int | None:
        raw = self.store.get(WATERMARK_KEY)
        if raw is None or not raw.strip():
            return None
        try:
            return int(raw.strip())
        except ValueError:
            _logger.warning("watermark:corrupt value=%r", raw)
            return None

    def get(self) -> int:
        """Stored watermark, or ``now - first_run_window_hours`` when absent or unreadable."""

        try:
            stored = self._stored()
        except StoreUnavailable as e:
            _logger.error("watermark:read_failed error=%s", e)
            stored = None
        return self._first_run() if stored is None else stored

    def _write(self, value: int) -> bool:
        try:
            self.store.set(WATERMARK_KEY, str(int(value)))
        except StoreUnavailable as e:
            _logger.error("watermark:write_failed value=%s error=%s", value, e)
            return False
        return True

    def advance(self, t: int) -> bool:
        """Persist ``t`` only when it is strictly greater than the stored value."""

        try:
            stored = self._stored()
        except StoreUnavailable as e:
            _logger.error("watermark:read_failed error=%s", e)
            return False
        if stored is not None and t <= stored:
            return False
        if not self._write(t):
            return False
        _logger.debug("watermark:advanced to=%s", t)
        return True

    def rewind(self, minutes: int) -> int:
        """Force the watermark to ``now - minutes`` and return the new value."""

        if minutes < 0:
            raise ValueError(f"minutes must be non-negative, got {minutes}")
        target = self.clock() - minutes * MS_PER_MINUTE
        if self._write(target):
            _logger.info("watermark:rewound minutes=%s to=%s", minutes, target)
        return target


__all__ = ["SyncWatermark"]
