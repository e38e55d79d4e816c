#!/usr/bin/env python3
"""
Data Sync Worker — records user, product and order counts every interval.

Usage:
    python scripts/data_sync_worker.py
    python scripts/data_sync_worker.py --interval 10
"""
import argparse
import asyncio
import os
import sys

# Ensure app root is on path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


def main() -> int:
    parser = argparse.ArgumentParser(description="Periodic data sync worker")
    parser.add_argument("--config", default=None, help="Path to settings.yaml")
    parser.add_argument("--interval", type=float, default=None,
                        help="Seconds between sync cycles (overrides settings)")
    args = parser.parse_args()

    from config.settings import load_settings
    from job_queue.lifecycle import run_sync_worker
    from utils.logging import configure_logging

    settings = load_settings(args.config)
    if args.interval:
        settings.sync.interval_seconds = args.interval
    configure_logging(settings.debug, service="data-sync-worker")

    return asyncio.run(run_sync_worker(settings))


if __name__ == "__main__":
    sys.exit(main())
