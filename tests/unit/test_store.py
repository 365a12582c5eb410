"""Test OrderStore read-modify-write, guarded delete, and stale-write handling."""

from decimal import Decimal

import pytest

from order_workflow.core.enums import OrderStatus
from order_workflow.core.errors import (
    ConflictError,
    FrozenFieldError,
    IncompleteStatusOnDeleteError,
    OrderNotFoundError,
)
from order_workflow.storage.memory import InMemoryOrderRepository
from order_workflow.workflow.store import OrderStore, ready_to_delete


class _PinnedReadRepository(InMemoryOrderRepository):
    """Always reads back the first snapshot saved: every writer sees stale data."""

    def __init__(self, strict_versioning: bool = False) -> None:
        super().__init__(strict_versioning=strict_versioning)
        self._pinned = {}

    async def save(self, order, expected_version=None):
        self._pinned.setdefault(order.order_no, order)
        await super().save(order, expected_version)

    async def find(self, order_no):
        return self._pinned.get(order_no)

    async def latest(self, order_no):
        return await super().find(order_no)


class TestUpdate:
    async def test_persists_and_returns_new_snapshot(self, store, repository, make_order):
        await repository.save(make_order())

        updated = await store.update("ORD-1", {"billing_address": "2 Side St"})

        assert updated.version == 1
        stored = await repository.find("ORD-1")
        assert stored.model_dump() == updated.model_dump()

    async def test_persisted_snapshot_has_no_history(self, store, repository, make_order):
        await repository.save(make_order())

        for i in range(50):
            updated = await store.update("ORD-1", {"tracking_id": f"trk-{i}"})

        stored = await repository.find("ORD-1")
        assert stored.version == 50
        assert stored.previous is None
        # The returned snapshot links one step back, to what was stored.
        assert updated.previous.version == 49
        assert updated.previous.previous is None

    async def test_reads_latest_before_merging(self, store, repository, make_order):
        await repository.save(make_order())
        await store.update("ORD-1", {"order_status": "APPROVED"})

        with pytest.raises(FrozenFieldError):
            await store.update("ORD-1", {"billing_address": "2 Side St"})

    async def test_fallback_when_nothing_persisted(self, store, repository, make_order):
        updated = await store.update(
            "ORD-1", {"payment_authorization": "auth-1"}, fallback=make_order(),
        )

        assert updated.payment_authorization == "auth-1"
        assert (await repository.find("ORD-1")).payment_authorization == "auth-1"

    async def test_persisted_snapshot_wins_over_fallback(self, store, repository, make_order):
        await repository.save(make_order(billing_address="stored"))

        updated = await store.update(
            "ORD-1", {"tracking_id": "trk"}, fallback=make_order(billing_address="stale"),
        )

        assert updated.billing_address == "stored"

    async def test_missing_order(self, store):
        with pytest.raises(OrderNotFoundError):
            await store.update("NOPE", {"tracking_id": "x"})

    async def test_rejected_change_is_not_saved(self, store, repository, make_order):
        await repository.save(make_order())
        saves = repository.save_count

        with pytest.raises(FrozenFieldError):
            await store.update("ORD-1", {"order_no": "OTHER"})
        assert repository.save_count == saves
        assert (await repository.find("ORD-1")).version == 0


class TestDelete:
    @pytest.mark.parametrize("status", [OrderStatus.COMPLETE, OrderStatus.CANCELED])
    async def test_terminal_orders_deleted(self, store, repository, make_order, status):
        await repository.save(make_order(status, proof_of_delivery="signed"))

        deleted = await store.delete("ORD-1")

        assert deleted.order_status == status
        assert await repository.find("ORD-1") is None

    @pytest.mark.parametrize(
        "status", [OrderStatus.PENDING, OrderStatus.APPROVED, OrderStatus.SHIPPING],
    )
    async def test_active_orders_kept(self, store, repository, make_order, status):
        await repository.save(make_order(status))

        with pytest.raises(IncompleteStatusOnDeleteError) as exc_info:
            await store.delete("ORD-1")
        assert exc_info.value.status == status
        assert await repository.find("ORD-1") is not None

    async def test_missing_order(self, store):
        with pytest.raises(OrderNotFoundError):
            await store.delete("NOPE")

    def test_ready_to_delete(self, make_order):
        order = make_order(OrderStatus.CANCELED)

        assert ready_to_delete(order) is order


class TestStaleWrites:
    """Two updates that both read the same snapshot before either writes."""

    async def test_last_writer_wins_by_default(self, engine, make_order):
        repo = _PinnedReadRepository()
        await repo.save(make_order())
        store = OrderStore(repo, engine)

        await store.update("ORD-1", {"tracking_id": "first"})
        await store.update("ORD-1", {"cancel_reason": "second"})

        latest = await repo.latest("ORD-1")
        assert latest.cancel_reason == "second"
        # The first writer's change is lost.
        assert latest.tracking_id is None
        assert latest.version == 1

    async def test_strict_versioning_rejects_stale_write(self, engine, make_order):
        repo = _PinnedReadRepository(strict_versioning=True)
        await repo.save(make_order())
        store = OrderStore(repo, engine)

        await store.update("ORD-1", {"tracking_id": "first"})
        with pytest.raises(ConflictError) as exc_info:
            await store.update("ORD-1", {"cancel_reason": "second"})

        assert exc_info.value.expected_version == 0
        assert exc_info.value.actual_version == 1
        assert (await repo.latest("ORD-1")).tracking_id == "first"


class TestRepository:
    async def test_save_without_expected_version_always_writes(self, make_order):
        repo = InMemoryOrderRepository(strict_versioning=True)
        await repo.save(make_order(version=3))
        await repo.save(make_order(order_total=Decimal("1")))

        assert (await repo.find("ORD-1")).order_total == Decimal("1")
        assert len(repo) == 1

    async def test_delete_missing_is_noop(self):
        repo = InMemoryOrderRepository()
        await repo.delete("NOPE")

        assert len(repo) == 0
