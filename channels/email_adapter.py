"""
Email Channel Adapter — simulated order notification emails.

There is no SMTP transport here: a send waits a fixed delay to stand in
for the network round-trip and then logs the rendered message. A real
transport would replace _transmit() and own its own retry policy.
"""
from __future__ import annotations

import asyncio
import structlog
from typing import Awaitable, Callable

from channels.base import ChannelError, DeliveryChannel
from models.schemas import NotificationEnvelope, NotificationType

logger = structlog.get_logger()

Sleep = Callable[[float], Awaitable[None]]


class EmailAdapter(DeliveryChannel):
    """Renders and "sends" notification emails."""

    channel_name = "email"

    def __init__(self, delay_seconds: float = 1.0, sleep: Sleep = asyncio.sleep):
        super().__init__()
        self.delay_seconds = delay_seconds
        self._sleep = sleep

    async def send(self, envelope: NotificationEnvelope) -> None:
        subject, body = self.render(envelope)
        try:
            await self._transmit(subject, body)
        except (OSError, asyncio.TimeoutError) as e:
            raise ChannelError(f"Email for order #{envelope.order_id} not sent: {e}",
                               channel=self.channel_name) from e
        self.sent_count += 1
        logger.info("email_notification_sent",
                    type=envelope.type.value,
                    order_id=envelope.order_id,
                    user_id=envelope.user_id,
                    product_id=envelope.product_id,
                    quantity=envelope.quantity,
                    total_amount=str(envelope.total_amount),
                    timestamp=envelope.timestamp.isoformat(),
                    subject=subject)

    async def _transmit(self, subject: str, body: str) -> None:
        await self._sleep(self.delay_seconds)

    @staticmethod
    def render(envelope: NotificationEnvelope) -> tuple[str, str]:
        """Returns (subject, body) for the envelope type."""
        if envelope.type is NotificationType.ORDER_CREATED:
            return (
                f"Order Confirmed: #{envelope.order_id}",
                f"Hi user {envelope.user_id},\n\n"
                f"Your order #{envelope.order_id} for {envelope.quantity} x "
                f"product {envelope.product_id} has been received.\n"
                f"Total: ${envelope.total_amount}\n"
                f"Placed at: {envelope.timestamp.isoformat()}\n",
            )
        return (f"Notification: {envelope.type.value}", f"Order #{envelope.order_id}")
