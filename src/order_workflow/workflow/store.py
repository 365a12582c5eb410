"""Order store: the read-modify-write cycle around the governance engine.

``update`` always re-reads the latest persisted snapshot before merging a
change set.  There is no lock: two interleaved updates can both pass their
checks against the same base snapshot.  The repository decides what a
stale write means (last-writer-wins, or a conflict under strict
versioning); the store always passes the version it read.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping

from order_workflow.core.errors import IncompleteStatusOnDeleteError, OrderNotFoundError
from order_workflow.core.interfaces import IOrderRepository
from order_workflow.core.models import Order
from order_workflow.governance.engine import GovernanceEngine
from order_workflow.observability.metrics import STATUS_TRANSITIONS

logger = logging.getLogger(__name__)


class OrderStore:
    """Applies governed updates and guarded deletes to persisted orders."""

    def __init__(self, repository: IOrderRepository, engine: GovernanceEngine) -> None:
        self._repo = repository
        self._engine = engine

    @property
    def repository(self) -> IOrderRepository:
        return self._repo

    async def get(self, order_no: str) -> Order:
        order = await self._repo.find(order_no)
        if order is None:
            raise OrderNotFoundError(order_no)
        return order

    async def update(
        self,
        order_no: str,
        changes: Mapping[str, Any],
        fallback: Order | None = None,
    ) -> Order:
        """Re-read, govern, persist and return the new snapshot.

        The returned snapshot has ``previous`` set; the persisted copy does not.

        Args:
            order_no: Order to update.
            changes: Proposed field changes.
            fallback: Snapshot to use when nothing is persisted yet.

        Raises:
            OrderNotFoundError: Nothing persisted and no fallback given.
            GovernanceError: The change set was rejected.
        """
        current = await self._repo.find(order_no)
        if current is None:
            if fallback is None:
                raise OrderNotFoundError(order_no)
            current = fallback

        updated = self._engine.apply(current, changes)
        # Only the returned snapshot links back to its predecessor.
        await self._repo.save(updated.detached(), expected_version=current.version)

        if updated.order_status != current.order_status:
            STATUS_TRANSITIONS.labels(
                from_status=current.order_status.value,
                to_status=updated.order_status.value,
            ).inc()
            logger.info(
                "Order %s status %s -> %s",
                order_no,
                current.order_status.value,
                updated.order_status.value,
            )
        return updated

    async def delete(self, order_no: str) -> Order:
        """Delete a COMPLETE or CANCELED order and return its last snapshot.

        Raises:
            OrderNotFoundError: No such order.
            IncompleteStatusOnDeleteError: The order is still in progress.
        """
        order = await self.get(order_no)
        ready_to_delete(order)
        await self._repo.delete(order_no)
        logger.info("Order %s deleted (%s)", order_no, order.order_status.value)
        return order


def ready_to_delete(order: Order) -> Order:
    """Don't delete orders before they're complete."""
    if not order.is_terminal:
        raise IncompleteStatusOnDeleteError(order.order_status)
    return order
