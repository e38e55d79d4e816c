"""
SQLAlchemy ORM models — Cross-database compatible.

Supports: PostgreSQL, SQLite.

  - Integer autoincrement primary keys (SERIAL on PostgreSQL).
  - NUMERIC(10, 2) for money; SQLite stores it as text-backed Decimal.
"""
from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from sqlalchemy import String, Integer, Numeric, DateTime, Index
from sqlalchemy.ext.asyncio import AsyncAttrs
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(AsyncAttrs, DeclarativeBase):
    """Base class for all ORM models."""
    pass


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ──────────────────────────────────────────────────────────────
#  Orders
# ──────────────────────────────────────────────────────────────

class OrderRow(Base):
    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    product_id: Mapped[int] = mapped_column(Integer, nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    status: Mapped[str] = mapped_column(String(50), default="pending")

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id, "user_id": self.user_id, "product_id": self.product_id,
            "quantity": self.quantity, "total_amount": self.total_amount,
            "status": self.status, "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


# ──────────────────────────────────────────────────────────────
#  Sync stats: append-only log written by the data sync worker
# ──────────────────────────────────────────────────────────────

class SyncStatRow(Base):
    __tablename__ = "sync_stats"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    service_name: Mapped[str] = mapped_column(String(100), nullable=False)
    record_count: Mapped[int] = mapped_column(Integer, default=0)
    last_sync: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    status: Mapped[str] = mapped_column(String(50), default="success")

    __table_args__ = (
        Index("ix_sync_stats_service", "service_name"),
    )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id, "service_name": self.service_name,
            "record_count": self.record_count, "last_sync": self.last_sync,
            "status": self.status,
        }
