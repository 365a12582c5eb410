"""Application bootstrap.

Wires settings, rules, persistence, the event bus, the state machine and
the saga into a running :class:`OrderWorkflow`.

Usage::

    workflow = await build_workflow(services)
    await workflow.start()
    order = await workflow.service.create_order(...)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .bus.bus import create_event_bus
from .core.config import Settings, load_settings
from .core.interfaces import IEventBus, IOrderRepository
from .governance.engine import GovernanceEngine
from .governance.rules import RuleRegistry
from .observability.logger import setup_logging
from .observability.metrics import start_metrics_server
from .orders.factory import CardFormat, OrderFactory
from .orders.rules import AGGREGATE, order_rules
from .storage.memory import InMemoryOrderRepository
from .workflow.saga import OrderSaga
from .workflow.service import OrderService, OrderStatusListener
from .workflow.state_machine import OrderServices, OrderStateMachine
from .workflow.store import OrderStore

logger = logging.getLogger(__name__)


@dataclass
class OrderWorkflow:
    """A fully wired order workflow."""

    settings: Settings
    registry: RuleRegistry
    repository: IOrderRepository
    bus: IEventBus
    store: OrderStore
    state_machine: OrderStateMachine
    saga: OrderSaga
    service: OrderService

    async def start(self, serve_metrics: bool = False) -> None:
        if serve_metrics:
            start_metrics_server(self.settings.observability.metrics_port)
        await self.bus.start()
        logger.info(
            "Order workflow started: bus=%s strict_versioning=%s",
            self.settings.bus.backend.value,
            self.settings.strict_versioning,
        )

    async def stop(self) -> None:
        await self.bus.stop()
        logger.info("Order workflow stopped")


async def build_workflow(
    services: OrderServices,
    settings: Settings | None = None,
    repository: IOrderRepository | None = None,
    bus: IEventBus | None = None,
    subscribe_saga: bool = False,
) -> OrderWorkflow:
    """Assemble the workflow around the given external services.

    Args:
        services: Address, payment, shipping and inventory services.
        settings: Defaults to :class:`Settings` from the environment.
        repository: Defaults to an in-memory repository.
        bus: Defaults to the bus selected by ``settings.bus``.
        subscribe_saga: Also consume saga replies published on the bus.
    """
    settings = settings or Settings()

    registry = RuleRegistry()
    registry.register(order_rules(max_total=settings.max_order_total))
    engine = GovernanceEngine(registry.get(AGGREGATE))

    repository = repository or InMemoryOrderRepository(
        strict_versioning=settings.strict_versioning,
    )
    bus = bus or create_event_bus(settings.bus)

    store = OrderStore(repository, engine)
    state_machine = OrderStateMachine(store, services)
    saga = OrderSaga(store, services, state_machine)
    factory = OrderFactory(
        engine,
        CardFormat(
            settings.card_pattern,
            settings.card_min_digits,
            settings.card_max_digits,
        ),
    )
    service = OrderService(factory, store, services, bus)

    await OrderStatusListener(store, state_machine).attach(bus)
    if subscribe_saga:
        await saga.attach(bus)

    return OrderWorkflow(
        settings=settings,
        registry=registry,
        repository=repository,
        bus=bus,
        store=store,
        state_machine=state_machine,
        saga=saga,
        service=service,
    )


async def run(
    services: OrderServices,
    config_path: str | Path | None = None,
    overrides: dict[str, Any] | None = None,
) -> OrderWorkflow:
    """Load settings, configure logging, build and start the workflow."""
    settings = load_settings(config_path=config_path, overrides=overrides)
    setup_logging(settings.observability.log_level, settings.observability.log_format)
    workflow = await build_workflow(services, settings=settings)
    await workflow.start()
    return workflow
