"""Simulated external services: no real address, payment, shipping or
inventory calls.

Each service records what it was asked to do.  Callback-style operations
answer with the matching saga event, either immediately (``auto_reply``)
or when the test or operator calls :meth:`release`.  When a bus is given,
replies are published on the ``order.saga`` topic instead of being passed
to the reply handle.  Any operation can be made to fail with ``fail_on``.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any

from order_workflow.bus.schemas import ORDER_SAGA_TOPIC
from order_workflow.core.events import (
    DeliveryVerified,
    OrderFilled,
    OrderReceived,
    OrderShipped,
    SagaEvent,
)
from order_workflow.core.interfaces import IEventBus, SagaReply
from order_workflow.core.models import AddressValidation, Order

logger = logging.getLogger(__name__)


class SimulatedServiceError(Exception):
    """Raised by a simulated service told to fail."""


def _uid(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


class _SimulatedService:
    """Shared call log, failure injection and reply delivery."""

    def __init__(
        self,
        auto_reply: bool = True,
        fail_on: set[str] | None = None,
        bus: IEventBus | None = None,
    ) -> None:
        self.auto_reply = auto_reply
        self.fail_on: set[str] = set(fail_on or ())
        self.calls: list[tuple[str, str]] = []
        self._bus = bus
        self._pending: list[tuple[SagaReply, SagaEvent]] = []

    def _record(self, operation: str, order: Order) -> None:
        self.calls.append((operation, order.order_no))
        if operation in self.fail_on:
            raise SimulatedServiceError(f"{operation} failed for {order.order_no}")

    def called(self, operation: str) -> list[str]:
        """Order numbers ``operation`` was called for, in call order."""
        return [order_no for op, order_no in self.calls if op == operation]

    async def _respond(self, reply: SagaReply, event: SagaEvent) -> None:
        if not self.auto_reply:
            self._pending.append((reply, event))
            return
        await self._deliver(reply, event)

    async def _deliver(self, reply: SagaReply, event: SagaEvent) -> None:
        if self._bus is not None:
            await self._bus.publish(ORDER_SAGA_TOPIC, event)
        else:
            await reply(event)

    @property
    def pending(self) -> list[SagaEvent]:
        return [event for _, event in self._pending]

    async def release(self) -> int:
        """Deliver the replies held so far, oldest first.

        Replies produced while releasing are held for the next call.
        """
        batch, self._pending = self._pending, []
        for reply, event in batch:
            await self._deliver(reply, event)
        return len(batch)


class SimulatedAddressService(_SimulatedService):
    """Accepts every address as given.

    Parameters
    ----------
    is_single_family:
        Reported for every address; ``False`` makes a signature required.
    """

    def __init__(self, is_single_family: bool = True, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.is_single_family = is_single_family

    async def validate_address(self, order: Order) -> AddressValidation:
        self._record("validate_address", order)
        return AddressValidation(
            address=order.shipping_address,
            is_single_family=self.is_single_family,
        )


class SimulatedPaymentService(_SimulatedService):
    """Issues authorization codes and tracks their lifecycle."""

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.authorizations: dict[str, str] = {}
        self.captured: list[str] = []
        self.refunded: list[str] = []

    async def authorize_payment(self, order: Order) -> str:
        self._record("authorize_payment", order)
        code = _uid("auth")
        self.authorizations[order.order_no] = code
        logger.debug("Authorized %s for %s", order.order_total, order.order_no)
        return code

    async def complete_payment(self, order: Order) -> None:
        self._record("complete_payment", order)
        self.captured.append(order.order_no)

    async def refund_payment(self, order: Order) -> None:
        self._record("refund_payment", order)
        self.refunded.append(order.order_no)


class SimulatedShippingService(_SimulatedService):
    """Ships instantly; delivery is confirmed with a generated proof."""

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.canceled: list[str] = []

    async def ship_order(self, order: Order, reply: SagaReply) -> None:
        self._record("ship_order", order)
        await self._respond(
            reply, OrderShipped(order_no=order.order_no, tracking_id=_uid("trk")),
        )

    async def track_shipment(self, order: Order, reply: SagaReply) -> None:
        self._record("track_shipment", order)
        await self._respond(reply, OrderReceived(order_no=order.order_no))

    async def verify_delivery(self, order: Order, reply: SagaReply) -> None:
        self._record("verify_delivery", order)
        await self._respond(
            reply,
            DeliveryVerified(order_no=order.order_no, proof_of_delivery=_uid("pod")),
        )

    async def cancel_shipment(self, order: Order) -> None:
        self._record("cancel_shipment", order)
        self.canceled.append(order.order_no)


class SimulatedInventoryService(_SimulatedService):
    """Every item is in stock at a single pickup location."""

    def __init__(self, pickup_address: Any = "Warehouse 1", **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.pickup_address = pickup_address

    async def fill_order(self, order: Order, reply: SagaReply) -> None:
        self._record("fill_order", order)
        await self._respond(
            reply,
            OrderFilled(order_no=order.order_no, pickup_address=self.pickup_address),
        )
