"""Event schemas for the order workflow.

All events inherit from BaseEvent and are Pydantic models.  Saga events
carry the order identity plus the payload of the collaborator reply, so
the orchestrator never depends on a captured order reference.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from .enums import OrderEventName, OrderStatus
from .ids import new_id, utc_now


class BaseEvent(BaseModel):
    """Base for all events. Provides identity, time, and tracing."""

    event_id: str = Field(default_factory=new_id)
    timestamp: datetime = Field(default_factory=utc_now)
    trace_id: str = Field(default_factory=new_id)
    source_module: str = ""


# ===========================================================================
# Topic: order.lifecycle
# ===========================================================================

class OrderChanged(BaseEvent):
    """An order was created, updated or deleted through the service layer."""

    source_module: str = "workflow.service"
    order_no: str
    event_name: OrderEventName
    order_status: OrderStatus
    changes: dict[str, Any] = Field(default_factory=dict)

    @property
    def status_changed(self) -> bool:
        return "order_status" in self.changes


# ===========================================================================
# Topic: order.saga  (collaborator replies)
# ===========================================================================

class SagaEvent(BaseEvent):
    order_no: str


class OrderFilled(SagaEvent):
    """Inventory confirmed stock; the order is ready for pickup."""

    source_module: str = "inventory"
    pickup_address: Any = None


class OrderShipped(SagaEvent):
    """Shipping confirmed the order has been dispatched."""

    source_module: str = "shipping"
    tracking_id: str | None = None


class OrderReceived(SagaEvent):
    """Shipping reports the customer has received the order."""

    source_module: str = "shipping"


class DeliveryVerified(SagaEvent):
    """Shipping confirmed proof of delivery."""

    source_module: str = "shipping"
    proof_of_delivery: str
