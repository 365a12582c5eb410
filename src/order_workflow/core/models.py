"""Core domain models for the order workflow.

``Order`` is an immutable snapshot: every accepted change produces a new
instance via the governance engine.  Field names are snake_case; camelCase
aliases (``orderItems``, ``orderStatus``, ...) are accepted on input.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr
from pydantic.alias_generators import to_camel

from .enums import TERMINAL_STATUSES, OrderStatus
from .ids import utc_now


# ---------------------------------------------------------------------------
# Line items
# ---------------------------------------------------------------------------

class OrderItem(BaseModel):
    """A single purchasable line on an order."""

    model_config = ConfigDict(
        frozen=True, alias_generator=to_camel, populate_by_name=True,
    )

    item_id: str = Field(min_length=1)
    price: Decimal = Field(ge=0)


# ---------------------------------------------------------------------------
# Order snapshot
# ---------------------------------------------------------------------------

class Order(BaseModel):
    """Immutable snapshot of a purchase order at a point in time.

    The previous-snapshot reference is a private attribute: it is attached
    by the governance engine to the snapshot it produces and is never part
    of the persisted (dumped) state.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        alias_generator=to_camel,
        populate_by_name=True,
    )

    order_no: str
    customer_info: Any = None
    customer_id: str | None = None
    order_items: tuple[OrderItem, ...] = ()
    shipping_address: Any = None
    billing_address: Any = None
    card_number: str | None = None
    signature_required: bool = False
    order_total: Decimal = Decimal("0")
    order_status: OrderStatus = OrderStatus.PENDING
    payment_authorization: str | None = None
    proof_of_delivery: str | None = None
    tracking_id: str | None = None
    cancel_reason: str | None = None
    pickup_address: Any = None

    version: int = 0
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    _previous: Order | None = PrivateAttr(default=None)

    @property
    def previous(self) -> Order | None:
        """The snapshot this one was derived from, if produced by an update."""
        return self._previous

    def detached(self) -> Order:
        """Copy of this snapshot without the previous-snapshot reference."""
        return Order.model_validate(self.model_dump())

    @property
    def is_terminal(self) -> bool:
        return self.order_status in TERMINAL_STATUSES

    def get(self, field: str) -> Any:
        """Return a field value by name or alias (``None`` if unknown)."""
        name = self.resolve_field(field)
        return getattr(self, name) if name else None

    @classmethod
    def resolve_field(cls, key: str) -> str | None:
        """Map a field name or its camelCase alias to the field name."""
        if key in cls.model_fields:
            return key
        for name, info in cls.model_fields.items():
            if info.alias == key:
                return name
        return None


# ---------------------------------------------------------------------------
# Collaborator payloads
# ---------------------------------------------------------------------------

class AddressValidation(BaseModel):
    """Result of an address-service lookup."""

    address: Any
    is_single_family: bool = True
