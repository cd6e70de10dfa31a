"""Public interface for the ``expense_sync`` package.

Re-exports the application facade, the pipeline components, and the public
models/errors as the stable import surface. There is no runtime logic here.
"""

from .api import ExpenseSyncApp, build_app
from .category_history import CategoryHistory
from .classifier import GeminiClassifier
from .config import Settings, load_settings
from .enhancement import EnhancementQueue, EnhancementSummary
from .errors import (
    ClassifierError,
    ConfigMissing,
    EmptyResult,
    ExpenseSyncError,
    RateLimited,
    StoreUnavailable,
    TransportError,
    ValidationFailed,
)
from .ledger import ExpenseLedger
from .live import LiveCapture
from .models import EnhancementTask, ExpenseRecord, ExtractedCandidate, RawMessage
from .pipeline import ExtractionPipeline
from .reconciliation import ReconcileSummary, ReconciliationService
from .sources import JsonExportSource, MessageSource
from .store import KeyValueStore, SqlKeyValueStore
from .watermark import SyncWatermark

__all__ = [
    # App
    "ExpenseSyncApp",
    "build_app",
    "Settings",
    "load_settings",
    # Components
    "CategoryHistory",
    "GeminiClassifier",
    "EnhancementQueue",
    "EnhancementSummary",
    "ExpenseLedger",
    "LiveCapture",
    "ExtractionPipeline",
    "ReconcileSummary",
    "ReconciliationService",
    "JsonExportSource",
    "MessageSource",
    "KeyValueStore",
    "SqlKeyValueStore",
    "SyncWatermark",
    # Models
    "RawMessage",
    "ExtractedCandidate",
    "ExpenseRecord",
    "EnhancementTask",
    # Errors
    "ExpenseSyncError",
    "ClassifierError",
    "ConfigMissing",
    "RateLimited",
    "TransportError",
    "EmptyResult",
    "ValidationFailed",
    "StoreUnavailable",
]
