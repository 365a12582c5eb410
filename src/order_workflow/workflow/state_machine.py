"""Order status state machine.

A fixed table maps each status to the action run when an order enters
that status:

    PENDING   -> validate address, authorize payment, record both
    APPROVED  -> ask inventory to fill the order      (reply: OrderFilled)
    SHIPPING  -> ask shipping to track the shipment   (reply: OrderReceived)
    CANCELED  -> refund the payment
    COMPLETE  -> terminal, nothing to call

Actions never change status themselves; status moves forward through saga
callbacks (or an external approval) that feed updates back through the
governance engine.  Any failure is logged with the action and order and
re-raised as :class:`CollaboratorFailure`.  There is no retry and no
rollback of effects already produced.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable

from order_workflow.core.enums import OrderStatus
from order_workflow.core.errors import CollaboratorFailure
from order_workflow.core.interfaces import (
    IAddressService,
    IInventoryService,
    IPaymentService,
    IShippingService,
    SagaReply,
)
from order_workflow.core.models import Order
from order_workflow.observability.metrics import ACTIONS_TOTAL

from .store import OrderStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OrderServices:
    """The external services the workflow calls out to."""

    address: IAddressService
    payment: IPaymentService
    shipping: IShippingService
    inventory: IInventoryService


Action = Callable[["OrderStateMachine", Order], Awaitable[None]]


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------

async def _on_pending(machine: OrderStateMachine, order: Order) -> None:
    address = await machine.services.address.validate_address(order)
    authorization = await machine.services.payment.authorize_payment(order)
    await machine.store.update(
        order.order_no,
        {
            "shipping_address": address.address,
            "payment_authorization": authorization,
            "signature_required": not address.is_single_family,
        },
        fallback=order,
    )


async def _on_approved(machine: OrderStateMachine, order: Order) -> None:
    await machine.services.inventory.fill_order(order, machine.reply)


async def _on_shipping(machine: OrderStateMachine, order: Order) -> None:
    await machine.services.shipping.track_shipment(order, machine.reply)


async def _on_canceled(machine: OrderStateMachine, order: Order) -> None:
    await machine.services.payment.refund_payment(order)


async def _on_complete(machine: OrderStateMachine, order: Order) -> None:
    # Post-sale engagement (e.g. customer survey) hooks in here.
    logger.info("Order %s complete", order.order_no)


ACTIONS: dict[OrderStatus, Action] = {
    OrderStatus.PENDING: _on_pending,
    OrderStatus.APPROVED: _on_approved,
    OrderStatus.SHIPPING: _on_shipping,
    OrderStatus.CANCELED: _on_canceled,
    OrderStatus.COMPLETE: _on_complete,
}


# ---------------------------------------------------------------------------
# OrderStateMachine
# ---------------------------------------------------------------------------

class OrderStateMachine:
    """Runs the action for an order's current status.

    Args:
        store: Used by actions that record results on the order.
        services: External services available to actions.
        actions: Status -> action table; defaults to :data:`ACTIONS`.
    """

    def __init__(
        self,
        store: OrderStore,
        services: OrderServices,
        actions: dict[OrderStatus, Action] | None = None,
    ) -> None:
        self.store = store
        self.services = services
        self._actions = dict(actions or ACTIONS)
        self._reply: SagaReply | None = None

    def connect(self, reply: SagaReply) -> None:
        """Set the handler that callback-style services reply to."""
        self._reply = reply

    @property
    def reply(self) -> SagaReply:
        if self._reply is None:
            raise RuntimeError("OrderStateMachine has no reply handler connected")
        return self._reply

    async def dispatch(self, order: Order) -> None:
        """Run the action registered for ``order.order_status``.

        Raises:
            CollaboratorFailure: The action failed; ``__cause__`` holds the
                original error.
        """
        status = order.order_status
        action = self._actions[status]
        try:
            await action(self, order)
        except CollaboratorFailure:
            ACTIONS_TOTAL.labels(status=status.value, outcome="error").inc()
            raise
        except Exception as exc:
            ACTIONS_TOTAL.labels(status=status.value, outcome="error").inc()
            logger.error(
                "State action %s failed: order_no=%s version=%d error=%s",
                status.value,
                order.order_no,
                order.version,
                exc,
                exc_info=True,
            )
            raise CollaboratorFailure(status.value, order.order_no, exc) from exc

        ACTIONS_TOTAL.labels(status=status.value, outcome="ok").inc()
        logger.debug("State action %s done: order_no=%s", status.value, order.order_no)
