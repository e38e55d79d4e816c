"""
Notification Worker — pops envelopes from the queue and drives delivery.

One worker is one asyncio task handling one item at a time, so items are
delivered strictly in pop order. For horizontal scaling run more worker
processes against the same queue; the broker's atomic pop guarantees each
item goes to exactly one of them.

State machine:

  STARTING ──connect──▶ CONNECTED ──▶ WAITING ◀──────────────┐
                                        │  pop (bounded wait) │
                                        │    ├─ no item ──────┤
                                        │    └─ item          │
                                        ▼                     │
                                    PROCESSING ── done ───────┤
                                        │                     │
                   any error ─────▶  BACKOFF ── fixed sleep ──┘

  stop requested (checked between iterations) ──▶ DRAINING ──close──▶ STOPPED

Loss points, by design of the transport:
  - a payload that fails to decode is logged and dropped
  - a delivery error after pop drops the item (no re-queue, no DLQ)
  - an item popped while the process is being killed is lost
"""
from __future__ import annotations

import asyncio
import structlog
from dataclasses import dataclass, asdict
from enum import Enum
from typing import Awaitable, Callable, Optional

from channels.base import DeliveryChannel
from job_queue.message_queue import MessageQueue, Queues
from models.schemas import NotificationEnvelope, PoisonMessageError

logger = structlog.get_logger()

Sleep = Callable[[float], Awaitable[None]]


class WorkerState(str, Enum):
    STARTING = "starting"
    CONNECTED = "connected"
    WAITING = "waiting"
    PROCESSING = "processing"
    BACKOFF = "backoff"
    DRAINING = "draining"
    STOPPED = "stopped"


class StepOutcome(str, Enum):
    IDLE = "idle"              # pop timed out with no item
    DELIVERED = "delivered"
    DISCARDED = "discarded"    # poison message dropped
    BACKOFF = "backoff"        # error, slept the fixed backoff


@dataclass
class WorkerStats:
    delivered: int = 0
    discarded: int = 0
    errors: int = 0
    idle_polls: int = 0

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


class NotificationWorker:
    """
    Consumes envelopes from one queue and hands each to a delivery channel.

    Usage:
        worker = NotificationWorker(queue, EmailAdapter())
        await worker.start()           # connect; raises QueueError if unreachable
        await worker.run(stop_event)   # returns once stop_event is set
        await worker.stop()            # close the broker connection
    """

    def __init__(
        self,
        queue: MessageQueue,
        channel: DeliveryChannel,
        queue_name: str = Queues.EMAIL,
        pop_timeout: float = 5.0,
        backoff_seconds: float = 5.0,
        sleep: Sleep = asyncio.sleep,
    ):
        self.queue = queue
        self.channel = channel
        self.queue_name = queue_name
        self.pop_timeout = pop_timeout
        self.backoff_seconds = backoff_seconds
        self._sleep = sleep
        self.state = WorkerState.STARTING
        self.stats = WorkerStats()

    async def start(self) -> None:
        """Connect to the broker. Failure here is fatal and not retried."""
        await self.queue.connect()
        self.state = WorkerState.CONNECTED
        logger.info("notification_worker_started",
                    queue=self.queue_name,
                    pop_timeout_s=self.pop_timeout,
                    backoff_s=self.backoff_seconds)

    async def run(self, stop_event: asyncio.Event, max_steps: Optional[int] = None) -> None:
        """
        Loop until stop_event is set. The event is only checked between
        iterations, so an in-flight delivery always runs to completion.
        """
        if self.state is not WorkerState.CONNECTED:
            raise RuntimeError(f"Worker cannot run from state {self.state.value}")

        steps = 0
        while not stop_event.is_set():
            await self.step()
            steps += 1
            if max_steps is not None and steps >= max_steps:
                break

        self.state = WorkerState.DRAINING
        logger.info("notification_worker_draining", **self.stats.to_dict())

    async def stop(self) -> None:
        """Close the broker connection."""
        self.state = WorkerState.DRAINING
        await self.queue.close()
        self.state = WorkerState.STOPPED
        logger.info("notification_worker_stopped", **self.stats.to_dict())

    async def step(self) -> StepOutcome:
        """One loop iteration: wait for an item, process it, or back off on error."""
        self.state = WorkerState.WAITING
        try:
            payload = await self.queue.pop(self.queue_name, timeout=self.pop_timeout)
            if payload is None:
                self.stats.idle_polls += 1
                return StepOutcome.IDLE

            self.state = WorkerState.PROCESSING
            return await self._process(payload)

        except Exception as e:
            self.stats.errors += 1
            self.state = WorkerState.BACKOFF
            logger.error("notification_worker_error",
                         queue=self.queue_name,
                         error=str(e),
                         backoff_s=self.backoff_seconds)
            await self._sleep(self.backoff_seconds)
            return StepOutcome.BACKOFF

        finally:
            if self.state in (WorkerState.PROCESSING, WorkerState.BACKOFF):
                self.state = WorkerState.WAITING

    async def _process(self, payload: bytes) -> StepOutcome:
        try:
            envelope = NotificationEnvelope.decode(payload)
        except PoisonMessageError as e:
            self.stats.discarded += 1
            logger.warning("poison_message_discarded",
                           queue=self.queue_name,
                           error=str(e),
                           payload=payload[:200].decode("utf-8", errors="replace"))
            return StepOutcome.DISCARDED

        logger.info("processing_notification",
                    type=envelope.type.value,
                    order_id=envelope.order_id,
                    channel=self.channel.channel_name)

        await self.channel.send(envelope)
        self.stats.delivered += 1
        logger.info("notification_delivered",
                    order_id=envelope.order_id,
                    channel=self.channel.channel_name)
        return StepOutcome.DELIVERED
