"""
Core data models for the order notification pipeline.
These are the types shared between the order service, the queue and the workers.
"""
from __future__ import annotations

import json
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError


# ──────────────────────────────────────────────────────────────
#  Enums
# ──────────────────────────────────────────────────────────────

class NotificationType(str, Enum):
    ORDER_CREATED = "order_created"


class OrderStatus(str, Enum):
    PENDING = "pending"


class SyncStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"


class PoisonMessageError(ValueError):
    """Raised when a queued payload cannot be decoded into an envelope."""


# ──────────────────────────────────────────────────────────────
#  Notification Envelope
# ──────────────────────────────────────────────────────────────

class NotificationEnvelope(BaseModel):
    """
    Immutable notification message exchanged between producer and worker.

    Wire format is a flat JSON object with camelCase keys:
        {"type": "order_created", "orderId": 42, "userId": 7, "productId": 3,
         "quantity": 2, "totalAmount": 19.98, "timestamp": "2024-01-01T00:00:00Z"}

    The queue only ever sees the bytes returned by encode().
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    type: NotificationType
    order_id: int = Field(alias="orderId", gt=0)
    user_id: int = Field(alias="userId", gt=0)
    product_id: int = Field(alias="productId", gt=0)
    quantity: int = Field(gt=0)
    total_amount: Decimal = Field(alias="totalAmount", ge=0, max_digits=10, decimal_places=2)
    timestamp: datetime

    @classmethod
    def order_created(
        cls,
        order_id: int,
        user_id: int,
        product_id: int,
        quantity: int,
        total_amount: Union[Decimal, float, str],
        timestamp: Optional[datetime] = None,
    ) -> NotificationEnvelope:
        return cls(
            type=NotificationType.ORDER_CREATED,
            order_id=order_id,
            user_id=user_id,
            product_id=product_id,
            quantity=quantity,
            total_amount=Decimal(str(total_amount)),
            timestamp=timestamp or datetime.now(timezone.utc),
        )

    def to_wire(self) -> dict[str, Any]:
        data = self.model_dump(mode="json", by_alias=True)
        # Decimal is emitted as a JSON number, not pydantic's default string
        amount = self.total_amount
        data["totalAmount"] = int(amount) if amount == amount.to_integral_value() else float(amount)
        return data

    def encode(self) -> bytes:
        return json.dumps(self.to_wire(), separators=(",", ":")).encode("utf-8")

    @classmethod
    def decode(cls, payload: Union[bytes, str]) -> NotificationEnvelope:
        try:
            if isinstance(payload, bytes):
                payload = payload.decode("utf-8")
            data = json.loads(payload, parse_float=Decimal)
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise PoisonMessageError(f"Payload is not valid JSON: {e}") from e

        if not isinstance(data, dict):
            raise PoisonMessageError(
                f"Payload must be a JSON object, got {type(data).__name__}"
            )

        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise PoisonMessageError(
                f"Payload failed validation: {e.error_count()} error(s)"
            ) from e


# ──────────────────────────────────────────────────────────────
#  Orders
# ──────────────────────────────────────────────────────────────

class OrderCreateRequest(BaseModel):
    """
    Body of POST /api/orders. Presence is checked by the handler; values that
    are present must already satisfy the envelope ranges.
    """
    model_config = ConfigDict(populate_by_name=True)

    user_id: Optional[int] = Field(default=None, alias="userId", gt=0)
    product_id: Optional[int] = Field(default=None, alias="productId", gt=0)
    quantity: Optional[int] = Field(default=None, gt=0)
    total_amount: Optional[Decimal] = Field(
        default=None, alias="totalAmount", ge=0, max_digits=10, decimal_places=2
    )

    def is_complete(self) -> bool:
        return all((self.user_id, self.product_id, self.quantity, self.total_amount))


class OrderUpdateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    status: Optional[str] = None
    quantity: Optional[int] = Field(default=None, gt=0)
    total_amount: Optional[Decimal] = Field(
        default=None, alias="totalAmount", ge=0, max_digits=10, decimal_places=2
    )


class Order(BaseModel):
    """An order row as returned by the API."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    product_id: int
    quantity: int
    total_amount: Decimal
    status: str = OrderStatus.PENDING.value
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def notification(self, timestamp: Optional[datetime] = None) -> NotificationEnvelope:
        """Build the order_created envelope for this order."""
        return NotificationEnvelope.order_created(
            order_id=self.id,
            user_id=self.user_id,
            product_id=self.product_id,
            quantity=self.quantity,
            total_amount=self.total_amount,
            timestamp=timestamp,
        )
