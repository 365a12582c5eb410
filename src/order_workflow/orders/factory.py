"""Order factory: builds the initial immutable snapshot of an order."""

from __future__ import annotations

import logging
import re
from typing import Any, Callable

from order_workflow.core.config import DEFAULT_CARD_PATTERN
from order_workflow.core.enums import OrderStatus
from order_workflow.core.errors import InvalidFormatError
from order_workflow.core.ids import new_order_no
from order_workflow.core.models import Order
from order_workflow.governance.engine import GovernanceEngine

from .rules import calc_total, check_items

logger = logging.getLogger(__name__)


def luhn_valid(digits: str) -> bool:
    """Return True if ``digits`` passes the Luhn checksum."""
    total = 0
    for i, ch in enumerate(reversed(digits)):
        n = int(ch)
        if i % 2 == 1:
            n *= 2
            if n > 9:
                n -= 9
        total += n
    return total % 10 == 0


class CardFormat:
    """Card number format: pattern match, digit count and Luhn checksum."""

    def __init__(
        self,
        pattern: str = DEFAULT_CARD_PATTERN,
        min_digits: int = 13,
        max_digits: int = 19,
    ) -> None:
        self._pattern = re.compile(pattern)
        self._min = min_digits
        self._max = max_digits

    def check(self, card_number: Any) -> str:
        """Return ``card_number`` unchanged if valid.

        Raises:
            InvalidFormatError: Not a string, wrong shape, wrong length, or
                bad checksum.
        """
        if not isinstance(card_number, str) or not self._pattern.match(card_number):
            raise InvalidFormatError("card_number")
        digits = re.sub(r"\D", "", card_number)
        if not self._min <= len(digits) <= self._max:
            raise InvalidFormatError("card_number", "wrong number of digits")
        if not luhn_valid(digits):
            raise InvalidFormatError("card_number", "checksum failed")
        return card_number


class OrderFactory:
    """Creates PENDING orders.

    Parameters
    ----------
    engine:
        Governance engine whose Required rules are run on the new snapshot.
    card_format:
        Card number validator.
    id_factory:
        Produces order numbers; defaults to :func:`new_order_no`.
    """

    def __init__(
        self,
        engine: GovernanceEngine,
        card_format: CardFormat | None = None,
        id_factory: Callable[[], str] = new_order_no,
    ) -> None:
        self._engine = engine
        self._card_format = card_format or CardFormat()
        self._id_factory = id_factory

    def create(
        self,
        customer_info: Any,
        order_items: Any,
        shipping_address: Any,
        billing_address: Any,
        card_number: str,
        signature_required: bool = False,
    ) -> Order:
        """Build the initial snapshot.

        Raises:
            InvalidItemsError: Empty or malformed item list.
            InvalidFormatError: Card number fails the format check.
            InvalidValueError: The total exceeds the ceiling.
            MissingRequiredFieldError: A required field is null.
        """
        items = check_items(order_items)
        self._card_format.check(card_number)

        order = Order(
            order_no=self._id_factory(),
            customer_info=customer_info,
            order_items=tuple(items),
            shipping_address=shipping_address,
            billing_address=billing_address,
            card_number=card_number,
            signature_required=signature_required,
            order_total=calc_total(items),
            order_status=OrderStatus.PENDING,
        )
        self._engine.check_values(order)
        self._engine.check_required(order)

        logger.info(
            "Order created: order_no=%s items=%d total=%s",
            order.order_no,
            len(items),
            order.order_total,
        )
        return order
