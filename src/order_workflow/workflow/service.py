"""Order service: the entry points callers use, plus the status listener.

Every successful create, update or delete is announced as an
:class:`OrderChanged` event on the ``order.lifecycle`` topic.  The
:class:`OrderStatusListener` subscribes to that topic and runs the state
machine when an order is created or its status changes.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping

from order_workflow.bus.schemas import ORDER_LIFECYCLE_TOPIC
from order_workflow.core.enums import OrderEventName, OrderStatus
from order_workflow.core.errors import CollaboratorFailure
from order_workflow.core.events import OrderChanged
from order_workflow.core.interfaces import IEventBus
from order_workflow.core.models import Order
from order_workflow.observability.logger import order_context
from order_workflow.orders.factory import OrderFactory

from .state_machine import OrderServices, OrderStateMachine
from .store import OrderStore

logger = logging.getLogger(__name__)


class OrderService:
    """Create, update, cancel, delete and read orders.

    Args:
        factory: Builds new PENDING orders.
        store: Governed updates and guarded deletes.
        services: Used by ``cancel_order`` to stop a shipment in progress.
        bus: Receives change notifications; ``None`` disables them.
    """

    def __init__(
        self,
        factory: OrderFactory,
        store: OrderStore,
        services: OrderServices,
        bus: IEventBus | None = None,
    ) -> None:
        self._factory = factory
        self._store = store
        self._services = services
        self._bus = bus

    async def create_order(
        self,
        customer_info: Any,
        order_items: Any,
        shipping_address: Any,
        billing_address: Any,
        card_number: str,
        signature_required: bool = False,
    ) -> Order:
        order = self._factory.create(
            customer_info=customer_info,
            order_items=order_items,
            shipping_address=shipping_address,
            billing_address=billing_address,
            card_number=card_number,
            signature_required=signature_required,
        )
        await self._store.repository.save(order)
        await self._notify(order, OrderEventName.CREATE)
        return order

    async def update_order(self, order_no: str, changes: Mapping[str, Any]) -> Order:
        """Apply a governed change set and announce it.

        Raises:
            OrderNotFoundError: No such order.
            GovernanceError: The change set was rejected.
        """
        updated = await self._store.update(order_no, changes)
        await self._notify(updated, OrderEventName.UPDATE, _field_names(changes))
        return updated

    async def cancel_order(self, order_no: str, reason: str | None = None) -> Order:
        """Cancel an order, stopping any shipment that is under way.

        The refund itself is issued by the CANCELED state action.

        Raises:
            CollaboratorFailure: The shipping service could not cancel.
            FrozenFieldError: The order is already COMPLETE or CANCELED.
        """
        order = await self._store.get(order_no)
        if order.tracking_id and order.order_status == OrderStatus.SHIPPING:
            try:
                await self._services.shipping.cancel_shipment(order)
            except Exception as exc:
                logger.error(
                    "cancel_shipment failed: order_no=%s tracking_id=%s error=%s",
                    order_no,
                    order.tracking_id,
                    exc,
                )
                raise CollaboratorFailure("cancel_shipment", order_no, exc) from exc

        return await self.update_order(
            order_no,
            {"order_status": OrderStatus.CANCELED, "cancel_reason": reason},
        )

    async def delete_order(self, order_no: str) -> Order:
        """Delete a COMPLETE or CANCELED order.

        Raises:
            OrderNotFoundError: No such order.
            IncompleteStatusOnDeleteError: The order is still in progress.
        """
        order = await self._store.delete(order_no)
        await self._notify(order, OrderEventName.DELETE)
        return order

    async def get_order(self, order_no: str) -> Order:
        return await self._store.get(order_no)

    async def _notify(
        self,
        order: Order,
        event_name: OrderEventName,
        changes: dict[str, Any] | None = None,
    ) -> None:
        if self._bus is None:
            return
        await self._bus.publish(
            ORDER_LIFECYCLE_TOPIC,
            OrderChanged(
                order_no=order.order_no,
                event_name=event_name,
                order_status=order.order_status,
                changes=changes or {},
            ),
        )


class OrderStatusListener:
    """Runs the state machine for created orders and status changes."""

    def __init__(self, store: OrderStore, state_machine: OrderStateMachine) -> None:
        self._store = store
        self._machine = state_machine

    async def attach(self, bus: IEventBus, group: str = "order-status") -> None:
        await bus.subscribe(ORDER_LIFECYCLE_TOPIC, group, self.on_order_changed)

    async def on_order_changed(self, event: OrderChanged) -> None:
        if event.event_name == OrderEventName.DELETE:
            return
        if event.event_name != OrderEventName.CREATE and not event.status_changed:
            return

        with order_context(event.order_no, event.trace_id):
            order = await self._store.get(event.order_no)
            if order.order_status != event.order_status:
                # A later change already moved the order on; it is
                # dispatched by its own notification.
                logger.debug(
                    "Skipping stale %s notification for %s (now %s)",
                    event.order_status.value,
                    event.order_no,
                    order.order_status.value,
                )
                return
            await self._machine.dispatch(order)


def _field_names(changes: Mapping[str, Any]) -> dict[str, Any]:
    return {Order.resolve_field(key) or key: value for key, value in changes.items()}
