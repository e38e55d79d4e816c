"""
Process entry points for the worker processes.

Each entry point owns its connections: it opens them at start-up, passes
them into the components that use them, and closes them on the way out.

Exit codes:
  0 — stopped by SIGINT / SIGTERM
  1 — could not reach the broker / database at start-up (not retried)
"""
from __future__ import annotations

import asyncio
import signal
import structlog
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from backend.connector import ServiceClient
from backend.poller import DataSyncPoller
from channels.base import DeliveryChannel
from channels.email_adapter import EmailAdapter
from config.settings import Settings
from database.session import Database
from database.store import OrderStore, SyncStatsStore
from job_queue.consumer import NotificationWorker
from job_queue.message_queue import MessageQueue, QueueError, create_message_queue

logger = structlog.get_logger()

EXIT_OK = 0
EXIT_STARTUP_FAILED = 1

_STOP_SIGNALS = (signal.SIGINT, signal.SIGTERM)


def install_signal_handlers(stop_event: asyncio.Event) -> list[signal.Signals]:
    """Route SIGINT and SIGTERM to the same stop event. Returns the signals installed."""
    loop = asyncio.get_running_loop()

    def _request_stop(sig: signal.Signals) -> None:
        logger.info("shutdown_requested", signal=sig.name)
        stop_event.set()

    installed = []
    for sig in _STOP_SIGNALS:
        try:
            loop.add_signal_handler(sig, _request_stop, sig)
            installed.append(sig)
        except (NotImplementedError, RuntimeError):
            # No loop signal support (Windows, or not the main thread)
            logger.warning("signal_handler_unavailable", signal=sig.name)
    return installed


def remove_signal_handlers(signals: list[signal.Signals]) -> None:
    loop = asyncio.get_running_loop()
    for sig in signals:
        loop.remove_signal_handler(sig)


async def run_email_worker(
    settings: Settings,
    queue: Optional[MessageQueue] = None,
    channel: Optional[DeliveryChannel] = None,
    stop_event: Optional[asyncio.Event] = None,
) -> int:
    """Run the notification worker until a stop signal. Returns the exit code."""
    queue = queue or create_message_queue({
        "backend": settings.queue.backend,
        "redis_url": settings.queue.redis_url,
    })
    channel = channel or EmailAdapter(delay_seconds=settings.worker.delivery_delay_seconds)
    stop_event = stop_event or asyncio.Event()

    worker = NotificationWorker(
        queue,
        channel,
        queue_name=settings.queue.name,
        pop_timeout=settings.worker.pop_timeout_seconds,
        backoff_seconds=settings.worker.backoff_seconds,
    )

    try:
        await worker.start()
    except (QueueError, OSError) as e:
        logger.error("worker_startup_failed", queue=settings.queue.name, error=str(e))
        return EXIT_STARTUP_FAILED

    signals = install_signal_handlers(stop_event)
    try:
        await worker.run(stop_event)
    finally:
        remove_signal_handlers(signals)
        await worker.stop()
    return EXIT_OK


async def run_sync_worker(
    settings: Settings,
    database: Optional[Database] = None,
    client: Optional[ServiceClient] = None,
    stop_event: Optional[asyncio.Event] = None,
) -> int:
    """Run the data sync poller until a stop signal. Returns the exit code."""
    db = database or Database(settings.database)
    stop_event = stop_event or asyncio.Event()

    try:
        await db.connect()
        await db.init_schema()
    except (SQLAlchemyError, OSError) as e:
        logger.error("sync_worker_startup_failed", error=str(e))
        await db.close()
        return EXIT_STARTUP_FAILED

    client = client or ServiceClient(timeout_seconds=settings.sync.request_timeout_seconds)
    poller = DataSyncPoller(
        client,
        OrderStore(db),
        SyncStatsStore(db),
        user_service_url=settings.sync.user_service_url,
        product_service_url=settings.sync.product_service_url,
        interval_s=settings.sync.interval_seconds,
    )

    signals = install_signal_handlers(stop_event)
    try:
        await poller.run(stop_event)
    finally:
        remove_signal_handlers(signals)
        await client.close()
        await db.close()
    return EXIT_OK
