"""db: shared database library (SQLAlchemy).

Public exports
--------------
- ``Base`` and ``metadata`` for schema creation
- ORM models in ``db.models.kv`` (re-exported for convenience)
- Engine/session helpers in ``db.client``
"""

from __future__ import annotations

from .models.kv import Base, KvDocument

# Re-export SQLAlchemy metadata so callers can ``create_all`` without reaching
# into the models package.
metadata = Base.metadata

__all__ = [
    "Base",
    "metadata",
    "KvDocument",
]
