"""
Notification Producer — pushes envelopes onto the queue after an order commit.

Enqueue is best-effort: a broker failure is logged and returned to the
caller as an EnqueueResult, never raised. The order that triggered it has
already been committed and stays committed.
"""
from __future__ import annotations

import structlog
from dataclasses import dataclass
from typing import Optional

from pydantic import ValidationError

from job_queue.message_queue import MessageQueue, QueueError, Queues
from models.schemas import NotificationEnvelope, Order

logger = structlog.get_logger()


class EnqueueError(Exception):
    """The envelope could not be pushed onto the queue."""

    def __init__(self, message: str, order_id: Optional[int] = None):
        super().__init__(message)
        self.order_id = order_id


@dataclass(frozen=True)
class EnqueueResult:
    ok: bool
    error: Optional[EnqueueError] = None

    @property
    def status(self) -> str:
        return "queued" if self.ok else "failed"


class NotificationProducer:
    """
    Serializes envelopes and pushes them to the tail of one named queue.

    Calls on the same producer are pushed in call order.
    """

    def __init__(self, queue: MessageQueue, queue_name: str = Queues.EMAIL):
        self.queue = queue
        self.queue_name = queue_name

    async def enqueue(self, envelope: NotificationEnvelope) -> EnqueueResult:
        try:
            await self.queue.push(self.queue_name, envelope.encode())
        except (QueueError, OSError, TimeoutError) as e:
            logger.error("notification_enqueue_failed",
                         queue=self.queue_name,
                         order_id=envelope.order_id,
                         error=str(e))
            return EnqueueResult(ok=False, error=EnqueueError(str(e), order_id=envelope.order_id))

        logger.info("notification_enqueued",
                    queue=self.queue_name,
                    type=envelope.type.value,
                    order_id=envelope.order_id)
        return EnqueueResult(ok=True)

    async def notify_order_created(self, order: Order) -> EnqueueResult:
        """Build the envelope at enqueue time and push it."""
        try:
            envelope = order.notification()
        except ValidationError as e:
            logger.error("notification_build_failed",
                         order_id=order.id,
                         errors=e.error_count())
            return EnqueueResult(ok=False, error=EnqueueError(str(e), order_id=order.id))
        return await self.enqueue(envelope)
