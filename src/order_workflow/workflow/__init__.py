"""Order workflow: store, state machine, saga and service layer."""

from order_workflow.workflow.saga import OrderSaga
from order_workflow.workflow.service import OrderService, OrderStatusListener
from order_workflow.workflow.state_machine import ACTIONS, OrderServices, OrderStateMachine
from order_workflow.workflow.store import OrderStore, ready_to_delete

__all__ = [
    "ACTIONS",
    "OrderSaga",
    "OrderService",
    "OrderServices",
    "OrderStateMachine",
    "OrderStatusListener",
    "OrderStore",
    "ready_to_delete",
]
