from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, String, Text, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


# ---------------------------
# Core: kv_documents
# ---------------------------


class KvDocument(Base):
    """One whole JSON document addressed by a fixed string key.

    Callers read and replace the full ``value``; there are no field-level
    updates. ``value`` is opaque text to this library (JSON by convention).
    """

    __tablename__ = "kv_documents"

    key: Mapped[str] = mapped_column(String(128), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=func.now(), onupdate=func.now()
    )


__all__ = [
    "Base",
    "KvDocument",
]
