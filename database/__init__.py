"""
Database layer — orders and sync statistics over SQLAlchemy async.

Quick start:
  from database import Database, OrderStore
  db = Database(settings.database)
  await db.connect()
  order = await OrderStore(db).get_order(42)
"""
from database.models import Base, OrderRow, SyncStatRow
from database.session import Database
from database.store import OrderStore, SyncStatsStore

__all__ = [
    "Base", "OrderRow", "SyncStatRow",
    "Database",
    "OrderStore", "SyncStatsStore",
]
