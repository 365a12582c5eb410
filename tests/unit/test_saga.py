"""Test OrderSaga callbacks: each reads the latest order, updates, and moves on."""

import pytest
import structlog
from prometheus_client import REGISTRY

from order_workflow.core.enums import OrderStatus
from order_workflow.core.errors import CollaboratorFailure, OrderNotFoundError
from order_workflow.core.events import (
    BaseEvent,
    DeliveryVerified,
    OrderFilled,
    OrderReceived,
    OrderShipped,
    SagaEvent,
)
from order_workflow.observability.logger import get_trace_id, order_context
from order_workflow.workflow.saga import OrderSaga
from order_workflow.workflow.state_machine import OrderStateMachine


def _saga(store, services):
    machine = OrderStateMachine(store, services)
    return OrderSaga(store, services, machine)


def _callback_count(callback, outcome):
    value = REGISTRY.get_sample_value(
        "orders_saga_callbacks_total", {"callback": callback, "outcome": outcome},
    )
    return value or 0.0


class TestCallbacks:
    async def test_connects_to_state_machine(self, store, services):
        machine = OrderStateMachine(store, services)
        saga = OrderSaga(store, services, machine)

        assert machine.reply == saga.handle

    async def test_order_filled(self, store, repository, held_services, make_order):
        await repository.save(make_order(OrderStatus.APPROVED))
        saga = _saga(store, held_services)

        await saga.handle(OrderFilled(order_no="ORD-1", pickup_address="Dock 4"))

        order = await repository.find("ORD-1")
        assert order.pickup_address == "Dock 4"
        assert order.order_status == OrderStatus.APPROVED
        assert held_services.shipping.called("ship_order") == ["ORD-1"]
        assert [type(e) for e in held_services.shipping.pending] == [OrderShipped]

    async def test_order_shipped(self, store, repository, held_services, make_order):
        await repository.save(make_order(OrderStatus.APPROVED))
        saga = _saga(store, held_services)

        await saga.handle(OrderShipped(order_no="ORD-1", tracking_id="trk-1"))

        order = await repository.find("ORD-1")
        assert order.order_status == OrderStatus.SHIPPING
        assert order.tracking_id == "trk-1"
        assert held_services.shipping.called("track_shipment") == ["ORD-1"]

    async def test_order_shipped_without_tracking_id(
        self, store, repository, held_services, make_order,
    ):
        await repository.save(make_order(OrderStatus.APPROVED))
        saga = _saga(store, held_services)

        await saga.handle(OrderShipped(order_no="ORD-1"))

        order = await repository.find("ORD-1")
        assert order.order_status == OrderStatus.SHIPPING
        assert order.tracking_id is None

    async def test_order_received(self, store, repository, held_services, make_order):
        await repository.save(make_order(OrderStatus.SHIPPING))
        saga = _saga(store, held_services)

        await saga.handle(OrderReceived(order_no="ORD-1"))

        assert held_services.shipping.called("verify_delivery") == ["ORD-1"]
        assert [type(e) for e in held_services.shipping.pending] == [DeliveryVerified]
        assert (await repository.find("ORD-1")).order_status == OrderStatus.SHIPPING

    async def test_delivery_verified(self, store, repository, held_services, make_order):
        await repository.save(make_order(OrderStatus.SHIPPING))
        saga = _saga(store, held_services)

        await saga.handle(DeliveryVerified(order_no="ORD-1", proof_of_delivery="pod-1"))

        order = await repository.find("ORD-1")
        assert order.order_status == OrderStatus.COMPLETE
        assert order.proof_of_delivery == "pod-1"
        assert held_services.payment.captured == ["ORD-1"]

    async def test_callbacks_use_latest_snapshot(
        self, store, repository, held_services, make_order,
    ):
        await repository.save(make_order(OrderStatus.APPROVED))
        saga = _saga(store, held_services)
        await saga.handle(OrderFilled(order_no="ORD-1", pickup_address="Dock 4"))

        # Changed after the shipment was requested.
        await store.update("ORD-1", {"cancel_reason": "note"})
        await held_services.shipping.release()

        order = await repository.find("ORD-1")
        assert order.order_status == OrderStatus.SHIPPING
        assert order.cancel_reason == "note"
        assert order.pickup_address == "Dock 4"

    async def test_nested_replies_restore_log_context(
        self, store, repository, services, make_order,
    ):
        await repository.save(make_order(OrderStatus.APPROVED))
        saga = _saga(store, services)

        with order_context("OUTER", "trace-outer"):
            await saga.handle(OrderFilled(
                order_no="ORD-1", pickup_address="Dock 4", trace_id="trace-1",
            ))

            assert structlog.contextvars.get_contextvars()["order_no"] == "OUTER"
            assert get_trace_id() == "trace-outer"
        assert "order_no" not in structlog.contextvars.get_contextvars()
        assert (await repository.find("ORD-1")).order_status == OrderStatus.COMPLETE


class TestFailures:
    async def test_unknown_order(self, store, services):
        saga = _saga(store, services)

        with pytest.raises(CollaboratorFailure) as exc_info:
            await saga.handle(OrderFilled(order_no="NOPE"))
        assert exc_info.value.action == "order_filled"
        assert isinstance(exc_info.value.cause, OrderNotFoundError)

    async def test_unregistered_event_type(self, store, services):
        saga = _saga(store, services)

        with pytest.raises(KeyError):
            await saga.handle(SagaEvent(order_no="ORD-1"))

    async def test_payment_capture_failure_leaves_order_shipping(
        self, store, repository, services, make_order,
    ):
        await repository.save(make_order(OrderStatus.SHIPPING))
        services.payment.fail_on.add("complete_payment")
        saga = _saga(store, services)

        with pytest.raises(CollaboratorFailure) as exc_info:
            await saga.handle(DeliveryVerified(order_no="ORD-1", proof_of_delivery="pod"))
        assert exc_info.value.action == "delivery_verified"
        assert (await repository.find("ORD-1")).order_status == OrderStatus.SHIPPING

    async def test_outcomes_are_counted(self, store, services):
        saga = _saga(store, services)
        before = _callback_count("order_received", "error")

        with pytest.raises(CollaboratorFailure):
            await saga.handle(OrderReceived(order_no="NOPE"))
        assert _callback_count("order_received", "error") == before + 1


class TestBusReplies:
    async def test_attach_handles_published_replies(
        self, store, repository, held_services, make_order, memory_bus,
    ):
        await repository.save(make_order(OrderStatus.SHIPPING))
        saga = _saga(store, held_services)
        await saga.attach(memory_bus)

        await memory_bus.publish(
            "order.saga", DeliveryVerified(order_no="ORD-1", proof_of_delivery="pod"),
        )

        assert (await repository.find("ORD-1")).order_status == OrderStatus.COMPLETE

    async def test_non_saga_events_ignored(self, store, services, memory_bus):
        saga = _saga(store, services)
        await saga.attach(memory_bus)

        await memory_bus.publish("order.saga", BaseEvent())

        assert memory_bus.dead_letters == []
        assert memory_bus.messages_processed == 1

    async def test_failures_are_dead_lettered(self, store, services, memory_bus):
        saga = _saga(store, services)
        await saga.attach(memory_bus)

        await memory_bus.publish("order.saga", OrderFilled(order_no="NOPE"))

        (dead,) = memory_bus.dead_letters
        assert dead.order_no == "NOPE"
        assert dead.event_type == "OrderFilled"
