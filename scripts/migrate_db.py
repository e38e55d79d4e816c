#!/usr/bin/env python3
"""
Database Migration — Create tables from SQLAlchemy models.

Usage:
    python scripts/migrate_db.py

    # Check status only (no changes):
    python scripts/migrate_db.py --check
"""
import asyncio
import os
import sys
import argparse

# Ensure app root is on path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


async def run_migration(check_only: bool = False):
    from sqlalchemy import inspect

    from config.settings import load_settings
    from database.models import Base
    from database.session import Database

    settings = load_settings()
    db = Database(settings.database)
    await db.connect()

    try:
        async with db.engine.connect() as conn:
            existing = await conn.run_sync(lambda sync_conn: inspect(sync_conn).get_table_names())

        print(f"Database: {db.engine.dialect.name}")
        print(f"Tables defined: {', '.join(Base.metadata.tables.keys())}")
        print(f"Tables existing: {', '.join(existing) or '(none)'}")

        missing = set(Base.metadata.tables.keys()) - set(existing)
        if check_only:
            if missing:
                print(f"Tables MISSING: {', '.join(sorted(missing))}")
                print("Run without --check to create them.")
            else:
                print("All tables exist.")
            return

        print("Running database migration...")
        await db.init_schema()
        print("Migration complete.")
    finally:
        await db.close()


def main():
    parser = argparse.ArgumentParser(description="Database migration")
    parser.add_argument("--check", action="store_true", help="Check status only")
    args = parser.parse_args()

    asyncio.run(run_migration(check_only=args.check))


if __name__ == "__main__":
    main()
