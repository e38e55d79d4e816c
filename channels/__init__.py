"""Delivery channels for order notifications."""
from channels.base import ChannelError, DeliveryChannel
from channels.email_adapter import EmailAdapter

__all__ = ["ChannelError", "DeliveryChannel", "EmailAdapter"]
