"""In-memory order repository for testing and local wiring.

No external dependencies.  Stores the latest snapshot per order number.
With ``strict_versioning`` enabled, a save whose ``expected_version`` does
not match the stored snapshot is rejected with :class:`ConflictError`;
otherwise the last writer wins.
"""

from __future__ import annotations

import logging

from order_workflow.core.errors import ConflictError
from order_workflow.core.models import Order

logger = logging.getLogger(__name__)


class InMemoryOrderRepository:
    """Order repository backed by a dict. Safe within a single event loop."""

    def __init__(self, strict_versioning: bool = False) -> None:
        self._orders: dict[str, Order] = {}
        self._strict = strict_versioning
        self._saves = 0

    async def save(self, order: Order, expected_version: int | None = None) -> None:
        current = self._orders.get(order.order_no)
        stale = (
            current is not None
            and expected_version is not None
            and current.version != expected_version
        )
        if stale:
            if self._strict:
                raise ConflictError(order.order_no, expected_version, current.version)
            logger.warning(
                "Overwriting order %s v%d with a write based on v%d",
                order.order_no,
                current.version,
                expected_version,
            )
        self._orders[order.order_no] = order
        self._saves += 1

    async def find(self, order_no: str) -> Order | None:
        return self._orders.get(order_no)

    async def delete(self, order_no: str) -> None:
        self._orders.pop(order_no, None)

    # ------------------------------------------------------------------
    # Testing helpers
    # ------------------------------------------------------------------

    @property
    def save_count(self) -> int:
        return self._saves

    def __len__(self) -> int:
        return len(self._orders)
