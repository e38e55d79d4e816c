"""Shared test fixtures for the order notification pipeline."""
import asyncio
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

import pytest
import pytest_asyncio

from channels.base import ChannelError, DeliveryChannel
from config.settings import DatabaseConfig, QueueConfig, Settings, SyncConfig, WorkerConfig
from database.session import Database
from job_queue.message_queue import InMemoryMessageQueue, QueueError
from models.schemas import NotificationEnvelope


class FakeSleep:
    """Records requested sleeps instead of waiting."""

    def __init__(self):
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        await asyncio.sleep(0)


class RecordingChannel(DeliveryChannel):
    """Delivery channel that remembers what it was given."""

    channel_name = "recording"

    def __init__(self, fail_with: Optional[Exception] = None, stop_after: int = 0,
                 stop_event: Optional[asyncio.Event] = None):
        super().__init__()
        self.delivered: list[NotificationEnvelope] = []
        self.events: list[tuple[str, int]] = []
        self.fail_with = fail_with
        self.stop_after = stop_after
        self.stop_event = stop_event

    async def send(self, envelope: NotificationEnvelope) -> None:
        self.events.append(("start", envelope.order_id))
        await asyncio.sleep(0)
        if self.fail_with is not None:
            raise self.fail_with
        self.delivered.append(envelope)
        self.sent_count += 1
        self.events.append(("end", envelope.order_id))
        if self.stop_event is not None and self.sent_count >= self.stop_after:
            self.stop_event.set()


class FlakyQueue(InMemoryMessageQueue):
    """In-memory queue whose next N pops / pushes fail."""

    def __init__(self, failing_pops: int = 0, failing_pushes: int = 0):
        super().__init__()
        self.failing_pops = failing_pops
        self.failing_pushes = failing_pushes
        self.pushed: list[tuple[str, bytes]] = []

    async def push(self, queue, payload):
        if self.failing_pushes > 0:
            self.failing_pushes -= 1
            raise QueueError("connection reset by peer")
        await super().push(queue, payload)
        self.pushed.append((queue, payload if isinstance(payload, bytes) else payload.encode()))

    async def pop(self, queue, timeout):
        if self.failing_pops > 0:
            self.failing_pops -= 1
            raise QueueError("connection reset by peer")
        return await super().pop(queue, timeout)


class UnreachableQueue(InMemoryMessageQueue):
    async def connect(self):
        raise QueueError("Cannot reach Redis: connection refused")


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        database=DatabaseConfig(url=f"sqlite:///{tmp_path / 'orders.db'}"),
        queue=QueueConfig(backend="memory", name="email-queue"),
        worker=WorkerConfig(pop_timeout_seconds=0.05, backoff_seconds=5.0, delivery_delay_seconds=0.0),
        sync=SyncConfig(
            interval_seconds=30.0,
            request_timeout_seconds=5.0,
            user_service_url="http://user-service.test",
            product_service_url="http://product-service.test",
        ),
    )


@pytest.fixture
def sample_envelope() -> NotificationEnvelope:
    return NotificationEnvelope.order_created(
        order_id=42,
        user_id=7,
        product_id=3,
        quantity=2,
        total_amount=Decimal("19.98"),
        timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )


@pytest.fixture
def fake_sleep() -> FakeSleep:
    return FakeSleep()


@pytest_asyncio.fixture
async def memory_queue():
    queue = InMemoryMessageQueue()
    await queue.connect()
    yield queue
    await queue.close()


@pytest_asyncio.fixture
async def database(settings):
    db = Database(settings.database)
    await db.connect()
    await db.init_schema()
    yield db
    await db.close()
