"""Protocol interfaces for the order workflow.

All collaborator boundaries are defined here as Protocol classes.
Implementations (in-memory, Redis, simulated or real service adapters) can
be swapped without changing callers.
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Coroutine, Protocol, runtime_checkable

from .events import BaseEvent, SagaEvent
from .models import AddressValidation, Order

# Reply handle passed to callback-style services; invoked once the
# asynchronous operation completes.
SagaReply = Callable[[SagaEvent], Awaitable[None]]


# ---------------------------------------------------------------------------
# Event Bus
# ---------------------------------------------------------------------------

@runtime_checkable
class IEventBus(Protocol):
    """Publish/subscribe event bus (notify/listen)."""

    async def publish(self, topic: str, event: BaseEvent) -> None: ...

    async def subscribe(
        self,
        topic: str,
        group: str,
        handler: Callable[[BaseEvent], Coroutine[Any, Any, None]],
    ) -> None: ...

    async def start(self) -> None: ...
    async def stop(self) -> None: ...


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------

@runtime_checkable
class IOrderRepository(Protocol):
    """Stores the latest snapshot of each order, keyed by order number."""

    async def save(
        self, order: Order, expected_version: int | None = None,
    ) -> None: ...

    async def find(self, order_no: str) -> Order | None: ...

    async def delete(self, order_no: str) -> None: ...


# ---------------------------------------------------------------------------
# Services
# ---------------------------------------------------------------------------

@runtime_checkable
class IAddressService(Protocol):
    async def validate_address(self, order: Order) -> AddressValidation: ...


@runtime_checkable
class IPaymentService(Protocol):
    async def authorize_payment(self, order: Order) -> str: ...

    async def complete_payment(self, order: Order) -> None: ...

    async def refund_payment(self, order: Order) -> None: ...


@runtime_checkable
class IShippingService(Protocol):
    async def ship_order(self, order: Order, reply: SagaReply) -> None: ...

    async def track_shipment(self, order: Order, reply: SagaReply) -> None: ...

    async def verify_delivery(self, order: Order, reply: SagaReply) -> None: ...

    async def cancel_shipment(self, order: Order) -> None: ...


@runtime_checkable
class IInventoryService(Protocol):
    async def fill_order(self, order: Order, reply: SagaReply) -> None: ...
