"""Shared SQLAlchemy models registry for the workspace database.

Currently includes the key/value document table used by ``expense_sync``.
"""

from .kv import Base, KvDocument

__all__ = [
    "Base",
    "KvDocument",
]
