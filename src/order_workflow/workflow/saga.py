"""Order fulfillment saga.

Handles the replies of the callback-style services and advances the order:

    OrderFilled       -> record pickup address, request shipment
    OrderShipped      -> status SHIPPING, re-enter state machine
    OrderReceived     -> request delivery verification
    DeliveryVerified  -> capture payment, status COMPLETE, re-enter

Replies are explicit events carrying the order number; each handler reads
the latest persisted snapshot rather than trusting the order it was
started with.  Handlers are looked up by event type.  Failures are logged
and re-raised as :class:`CollaboratorFailure`.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable

from order_workflow.bus.schemas import ORDER_SAGA_TOPIC
from order_workflow.core.enums import OrderStatus
from order_workflow.core.errors import CollaboratorFailure
from order_workflow.core.events import (
    BaseEvent,
    DeliveryVerified,
    OrderFilled,
    OrderReceived,
    OrderShipped,
    SagaEvent,
)
from order_workflow.core.interfaces import IEventBus
from order_workflow.observability.logger import order_context
from order_workflow.observability.metrics import SAGA_CALLBACKS_TOTAL

from .state_machine import OrderServices, OrderStateMachine
from .store import OrderStore

logger = logging.getLogger(__name__)

Handler = Callable[[Any], Awaitable[None]]


class OrderSaga:
    """Saga orchestrator for order fulfillment callbacks.

    Connects itself to the state machine as the reply handler for
    callback-style services.
    """

    def __init__(
        self,
        store: OrderStore,
        services: OrderServices,
        state_machine: OrderStateMachine,
    ) -> None:
        self._store = store
        self._services = services
        self._machine = state_machine
        self._handlers: dict[type[SagaEvent], tuple[str, Handler]] = {
            OrderFilled: ("order_filled", self._order_filled),
            OrderShipped: ("order_shipped", self._order_shipped),
            OrderReceived: ("order_received", self._order_received),
            DeliveryVerified: ("delivery_verified", self._delivery_verified),
        }
        state_machine.connect(self.handle)

    async def attach(
        self,
        bus: IEventBus,
        topic: str = ORDER_SAGA_TOPIC,
        group: str = "order-saga",
    ) -> None:
        """Also accept replies published on the event bus."""
        await bus.subscribe(topic, group, self._on_bus_event)

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def handle(self, event: SagaEvent) -> None:
        """Route a saga event to its callback.

        Raises:
            KeyError: No callback is registered for the event type.
            CollaboratorFailure: The callback failed.
        """
        entry = self._handlers.get(type(event))
        if entry is None:
            raise KeyError(f"No saga handler for {type(event).__name__}")
        name, handler = entry

        with order_context(event.order_no, event.trace_id):
            try:
                await handler(event)
            except CollaboratorFailure:
                SAGA_CALLBACKS_TOTAL.labels(callback=name, outcome="error").inc()
                raise
            except Exception as exc:
                SAGA_CALLBACKS_TOTAL.labels(callback=name, outcome="error").inc()
                logger.error(
                    "Saga callback %s failed: order_no=%s error=%s",
                    name,
                    event.order_no,
                    exc,
                    exc_info=True,
                )
                raise CollaboratorFailure(name, event.order_no, exc) from exc

        SAGA_CALLBACKS_TOTAL.labels(callback=name, outcome="ok").inc()

    async def _on_bus_event(self, event: BaseEvent) -> None:
        if not isinstance(event, SagaEvent):
            logger.warning(
                "Ignoring non-saga event on saga topic: %s", type(event).__name__,
            )
            return
        await self.handle(event)

    # ------------------------------------------------------------------
    # Callbacks
    # ------------------------------------------------------------------

    async def _order_filled(self, event: OrderFilled) -> None:
        """In stock, ready for pickup: record where, then request shipment."""
        updated = await self._store.update(
            event.order_no, {"pickup_address": event.pickup_address},
        )
        await self._services.shipping.ship_order(updated, self.handle)

    async def _order_shipped(self, event: OrderShipped) -> None:
        changes: dict[str, Any] = {"order_status": OrderStatus.SHIPPING}
        if event.tracking_id:
            changes["tracking_id"] = event.tracking_id
        updated = await self._store.update(event.order_no, changes)
        await self._machine.dispatch(updated)

    async def _order_received(self, event: OrderReceived) -> None:
        order = await self._store.get(event.order_no)
        await self._services.shipping.verify_delivery(order, self.handle)

    async def _delivery_verified(self, event: DeliveryVerified) -> None:
        order = await self._store.get(event.order_no)
        await self._services.payment.complete_payment(order)
        updated = await self._store.update(
            event.order_no,
            {
                "order_status": OrderStatus.COMPLETE,
                "proof_of_delivery": event.proof_of_delivery,
            },
        )
        await self._machine.dispatch(updated)
