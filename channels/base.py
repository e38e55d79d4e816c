"""
Delivery Channels — base interface for anything that can deliver a notification.

The worker loop hands each decoded envelope to exactly one channel and
awaits it to completion before popping the next item.
"""
from __future__ import annotations

import abc
import structlog

from models.schemas import NotificationEnvelope

logger = structlog.get_logger()


class ChannelError(Exception):
    """Base exception for delivery failures."""

    def __init__(self, message: str, channel: str = ""):
        self.channel = channel
        super().__init__(message)


class DeliveryChannel(abc.ABC):
    """Abstract delivery channel. Implementations bump sent_count per delivered envelope."""

    channel_name: str = ""

    def __init__(self):
        self.sent_count = 0

    @abc.abstractmethod
    async def send(self, envelope: NotificationEnvelope) -> None:
        """Deliver one notification. Raises ChannelError on failure."""
        ...
