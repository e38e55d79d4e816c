"""
Message Queue — Abstract list-structured broker with Redis and in-memory backends.

Queue Topology:
  email-queue    — serialized NotificationEnvelope bytes, FIFO

  producer ──RPUSH──▶ [ tail ... head ] ──BLPOP──▶ worker

The queue is agnostic to the payload schema; it moves opaque bytes.
An item handed out by pop() is gone from the broker — there is no
ack/redelivery, so a failure after pop is a loss from the queue's view.
"""
from __future__ import annotations

import asyncio
import structlog
from abc import ABC, abstractmethod
from typing import Any, Optional, Union

from redis.exceptions import RedisError

logger = structlog.get_logger()

Payload = Union[bytes, str]


class Queues:
    EMAIL = "email-queue"


class QueueError(Exception):
    """Broker operation failed (unreachable, timed out, closed)."""


def _to_bytes(payload: Payload) -> bytes:
    return payload.encode("utf-8") if isinstance(payload, str) else payload


# ──────────────────────────────────────────────────────────────
#  Abstract Interface
# ──────────────────────────────────────────────────────────────

class MessageQueue(ABC):
    """Abstract push / blocking-pop queue interface."""

    @abstractmethod
    async def connect(self) -> None:
        """Establish connection to the queue backend. Raises QueueError."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Gracefully shut down."""
        ...

    @abstractmethod
    async def push(self, queue: str, payload: Payload) -> None:
        """Append a payload to the tail of the named queue."""
        ...

    @abstractmethod
    async def pop(self, queue: str, timeout: float) -> Optional[bytes]:
        """
        Pop from the head of the named queue, blocking up to `timeout` seconds.
        Returns None when the wait elapses with no item.
        """
        ...

    @abstractmethod
    async def length(self, queue: str) -> int:
        """Return the number of pending items in a queue."""
        ...


# ──────────────────────────────────────────────────────────────
#  Redis List Implementation
# ──────────────────────────────────────────────────────────────

class RedisMessageQueue(MessageQueue):
    """
    Production queue backed by a Redis list.

    RPUSH appends to the tail, BLPOP removes from the head. BLPOP is atomic,
    so several worker processes on the same list never receive the same item.
    """

    def __init__(self, redis_url: str = "redis://localhost:6379", client: Any = None):
        self._redis_url = redis_url
        self._redis = client

    async def connect(self) -> None:
        if self._redis is None:
            import redis.asyncio as aioredis
            self._redis = aioredis.from_url(
                self._redis_url,
                decode_responses=False,
                max_connections=20,
            )
        try:
            await self._redis.ping()
        except (RedisError, OSError) as e:
            raise QueueError(f"Cannot reach Redis: {e}") from e
        logger.info("redis_queue_connected", url=self._redis_url.split("@")[-1])

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
            logger.info("redis_queue_closed")

    def _client(self):
        if self._redis is None:
            raise QueueError("Queue is not connected")
        return self._redis

    async def push(self, queue: str, payload: Payload) -> None:
        try:
            await self._client().rpush(queue, _to_bytes(payload))
        except (RedisError, OSError) as e:
            raise QueueError(f"Push to {queue} failed: {e}") from e

    async def pop(self, queue: str, timeout: float) -> Optional[bytes]:
        try:
            result = await self._client().blpop([queue], timeout=timeout)
        except (RedisError, OSError) as e:
            raise QueueError(f"Pop from {queue} failed: {e}") from e
        if result is None:
            return None
        _key, value = result
        return _to_bytes(value)

    async def length(self, queue: str) -> int:
        try:
            return await self._client().llen(queue)
        except (RedisError, OSError) as e:
            raise QueueError(f"Length of {queue} failed: {e}") from e


# ──────────────────────────────────────────────────────────────
#  In-Memory Implementation (Development)
# ──────────────────────────────────────────────────────────────

class InMemoryMessageQueue(MessageQueue):
    """
    Development/test queue backed by asyncio.Queue.
    Single-process only — no persistence.
    """

    def __init__(self):
        self._queues: dict[str, asyncio.Queue] = {}
        self._connected = False

    def _get_queue(self, name: str) -> asyncio.Queue:
        if not self._connected:
            raise QueueError("Queue is not connected")
        if name not in self._queues:
            self._queues[name] = asyncio.Queue()
        return self._queues[name]

    async def connect(self) -> None:
        self._connected = True
        logger.info("inmemory_queue_connected")

    async def close(self) -> None:
        self._connected = False

    async def push(self, queue: str, payload: Payload) -> None:
        self._get_queue(queue).put_nowait(_to_bytes(payload))

    async def pop(self, queue: str, timeout: float) -> Optional[bytes]:
        q = self._get_queue(queue)
        try:
            return await asyncio.wait_for(q.get(), timeout=timeout)
        except asyncio.TimeoutError:
            return None

    async def length(self, queue: str) -> int:
        return self._get_queue(queue).qsize()


# ──────────────────────────────────────────────────────────────
#  Factory
# ──────────────────────────────────────────────────────────────

def create_message_queue(queue_config: dict[str, Any] = None) -> MessageQueue:
    """Factory: create the appropriate queue backend. The caller owns the handle."""
    config = queue_config or {}
    backend = config.get("backend", "memory")

    if backend == "redis":
        url = config.get("redis_url", "redis://localhost:6379")
        return RedisMessageQueue(redis_url=url)
    return InMemoryMessageQueue()
