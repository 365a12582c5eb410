"""Shared fixtures for the order-workflow test suite."""

from __future__ import annotations

from decimal import Decimal
from typing import Any

import pytest

from order_workflow.adapters.simulated import (
    SimulatedAddressService,
    SimulatedInventoryService,
    SimulatedPaymentService,
    SimulatedShippingService,
)
from order_workflow.bus.memory_bus import MemoryEventBus
from order_workflow.core.config import Settings
from order_workflow.core.enums import OrderStatus
from order_workflow.core.models import Order, OrderItem
from order_workflow.governance.engine import GovernanceEngine
from order_workflow.main import build_workflow
from order_workflow.orders.factory import OrderFactory
from order_workflow.orders.rules import order_rules
from order_workflow.storage.memory import InMemoryOrderRepository
from order_workflow.workflow.state_machine import OrderServices
from order_workflow.workflow.store import OrderStore

VALID_CARD = "4111 1111 1111 1111"


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------

@pytest.fixture
def make_order():
    """Build an order snapshot directly, bypassing the factory."""

    def _make(
        status: OrderStatus = OrderStatus.PENDING,
        order_no: str = "ORD-1",
        **overrides: Any,
    ) -> Order:
        fields: dict[str, Any] = {
            "order_no": order_no,
            "customer_info": {"name": "Ada"},
            "order_items": (
                OrderItem(item_id="A", price=Decimal("10")),
                OrderItem(item_id="B", price=Decimal("5")),
            ),
            "shipping_address": "1 Main St",
            "billing_address": "1 Main St",
            "card_number": VALID_CARD,
            "order_total": Decimal("15"),
            "order_status": status,
        }
        fields.update(overrides)
        return Order(**fields)

    return _make


# ---------------------------------------------------------------------------
# Components
# ---------------------------------------------------------------------------

@pytest.fixture
def memory_bus() -> MemoryEventBus:
    return MemoryEventBus()


@pytest.fixture
def repository() -> InMemoryOrderRepository:
    return InMemoryOrderRepository()


@pytest.fixture
def engine() -> GovernanceEngine:
    return GovernanceEngine(order_rules())


@pytest.fixture
def factory(engine) -> OrderFactory:
    return OrderFactory(engine)


@pytest.fixture
def store(repository, engine) -> OrderStore:
    return OrderStore(repository, engine)


@pytest.fixture
def services() -> OrderServices:
    """Simulated services that answer every callback immediately."""
    return OrderServices(
        address=SimulatedAddressService(),
        payment=SimulatedPaymentService(),
        shipping=SimulatedShippingService(),
        inventory=SimulatedInventoryService(),
    )


@pytest.fixture
def held_services() -> OrderServices:
    """Simulated services that hold callbacks until released."""
    return OrderServices(
        address=SimulatedAddressService(auto_reply=False),
        payment=SimulatedPaymentService(auto_reply=False),
        shipping=SimulatedShippingService(auto_reply=False),
        inventory=SimulatedInventoryService(auto_reply=False),
    )


@pytest.fixture
async def workflow(services, memory_bus):
    wf = await build_workflow(services, settings=Settings(), bus=memory_bus)
    await wf.start()
    yield wf
    await wf.stop()


@pytest.fixture
async def held_workflow(held_services, memory_bus):
    wf = await build_workflow(held_services, settings=Settings(), bus=memory_bus)
    await wf.start()
    yield wf
    await wf.stop()
