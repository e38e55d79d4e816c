#!/usr/bin/env python3
"""
Email Worker — consumes order notifications from the queue and sends them.

Usage:
    python scripts/email_worker.py
    python scripts/email_worker.py --config config/settings.yaml
    python scripts/email_worker.py --queue-backend memory      # local smoke run

Stops cleanly on SIGINT / SIGTERM (exit 0); exits 1 when the broker is
unreachable at start-up.
"""
import argparse
import asyncio
import os
import sys

# Ensure app root is on path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


def main() -> int:
    parser = argparse.ArgumentParser(description="Order notification email worker")
    parser.add_argument("--config", default=None, help="Path to settings.yaml")
    parser.add_argument("--queue-backend", choices=["redis", "memory"], default=None,
                        help="Override queue.backend from settings")
    args = parser.parse_args()

    from config.settings import load_settings
    from job_queue.lifecycle import run_email_worker
    from utils.logging import configure_logging

    settings = load_settings(args.config)
    if args.queue_backend:
        settings.queue.backend = args.queue_backend
    configure_logging(settings.debug, service="email-worker")

    return asyncio.run(run_email_worker(settings))


if __name__ == "__main__":
    sys.exit(main())
