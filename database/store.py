"""
SQL stores for orders and sync statistics.

Portable across PostgreSQL and SQLite; every operation runs in its own
transactional session taken from the owned Database handle.
"""
from __future__ import annotations

import structlog
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import select, func

from database.models import OrderRow, SyncStatRow
from database.session import Database
from models.schemas import Order, OrderStatus, SyncStatus

logger = structlog.get_logger()


class OrderStore:
    """CRUD over the orders table."""

    def __init__(self, db: Database):
        self.db = db

    async def create_order(
        self,
        user_id: int,
        product_id: int,
        quantity: int,
        total_amount: Decimal,
        status: str = OrderStatus.PENDING.value,
    ) -> Order:
        """Insert and commit an order. Returns only after the commit succeeded."""
        async with self.db.session() as session:
            row = OrderRow(
                user_id=user_id,
                product_id=product_id,
                quantity=quantity,
                total_amount=total_amount,
                status=status,
            )
            session.add(row)
            await session.flush()
            await session.refresh(row)
            order = self._row_to_order(row)
        return order

    async def get_order(self, order_id: int) -> Optional[Order]:
        async with self.db.session() as session:
            row = await session.get(OrderRow, order_id)
            return self._row_to_order(row) if row else None

    async def list_orders(self) -> list[Order]:
        async with self.db.session() as session:
            result = await session.execute(select(OrderRow).order_by(OrderRow.id.desc()))
            return [self._row_to_order(r) for r in result.scalars()]

    async def update_order(
        self,
        order_id: int,
        status: Optional[str] = None,
        quantity: Optional[int] = None,
        total_amount: Optional[Decimal] = None,
    ) -> Optional[Order]:
        """Partial update: None leaves a column unchanged."""
        async with self.db.session() as session:
            row = await session.get(OrderRow, order_id)
            if not row:
                return None
            if status is not None:
                row.status = status
            if quantity is not None:
                row.quantity = quantity
            if total_amount is not None:
                row.total_amount = total_amount
            row.updated_at = datetime.now(timezone.utc)
            await session.flush()
            await session.refresh(row)
            return self._row_to_order(row)

    async def delete_order(self, order_id: int) -> bool:
        async with self.db.session() as session:
            row = await session.get(OrderRow, order_id)
            if not row:
                return False
            await session.delete(row)
            return True

    async def count_orders(self) -> int:
        async with self.db.session() as session:
            result = await session.execute(select(func.count()).select_from(OrderRow))
            return int(result.scalar_one())

    @staticmethod
    def _row_to_order(row: OrderRow) -> Order:
        return Order.model_validate(row)


class SyncStatsStore:
    """Append-only log of per-source sync results."""

    def __init__(self, db: Database):
        self.db = db

    async def record(self, service_name: str, record_count: int, status: SyncStatus) -> None:
        async with self.db.session() as session:
            session.add(SyncStatRow(
                service_name=service_name,
                record_count=record_count,
                status=status.value,
                last_sync=datetime.now(timezone.utc),
            ))

    async def list_recent(self, service_name: Optional[str] = None, limit: int = 50) -> list[dict]:
        async with self.db.session() as session:
            stmt = select(SyncStatRow).order_by(SyncStatRow.id.desc()).limit(limit)
            if service_name:
                stmt = stmt.where(SyncStatRow.service_name == service_name)
            result = await session.execute(stmt)
            return [r.to_dict() for r in result.scalars()]
