"""Governance rules for the Order aggregate.

- customer_info and order_no never change after the order is created.
- order_items, card_number, shipping_address and billing_address freeze
  once the order leaves PENDING.
- order_status freezes once the order is COMPLETE or CANCELED.
- proof_of_delivery is required once the order is COMPLETE.
- order_total is recomputed whenever order_items changes and may not
  exceed the configured ceiling.
- order_status changes are checked against a deny-list of transitions.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Iterable

from order_workflow.core.config import MAX_ORDER_TOTAL
from order_workflow.core.enums import TERMINAL_STATUSES, OrderStatus
from order_workflow.core.errors import InvalidItemsError, InvalidTransitionError
from order_workflow.core.models import Order, OrderItem
from order_workflow.governance.rules import (
    DerivedRule,
    FieldPredicate,
    RuleSet,
    ValidatedRule,
    frozen,
    required,
)

AGGREGATE = "order"

# Source -> target pairs that are never allowed.  Anything else is permitted.
FORBIDDEN_TRANSITIONS: frozenset[tuple[OrderStatus, OrderStatus]] = frozenset({
    (OrderStatus.APPROVED, OrderStatus.PENDING),
    (OrderStatus.SHIPPING, OrderStatus.PENDING),
    (OrderStatus.SHIPPING, OrderStatus.APPROVED),
    (OrderStatus.PENDING, OrderStatus.SHIPPING),
    (OrderStatus.PENDING, OrderStatus.COMPLETE),
})


# ---------------------------------------------------------------------------
# Items and totals
# ---------------------------------------------------------------------------

def check_items(items: Any) -> list[OrderItem]:
    """Return ``items`` as validated :class:`OrderItem` models.

    Accepts a single item or a sequence of items, each either an
    ``OrderItem`` or a mapping with ``item_id``/``itemId`` and ``price``.

    Raises:
        InvalidItemsError: No items, or any item lacks an id or a numeric,
            non-negative price.
    """
    if not items:
        raise InvalidItemsError("order contains no items")
    raw = list(items) if isinstance(items, (list, tuple)) else [items]
    return [_check_item(item) for item in raw]


def _check_item(item: Any) -> OrderItem:
    if isinstance(item, OrderItem):
        return item
    if not isinstance(item, dict):
        raise InvalidItemsError("order items invalid")
    item_id = item.get("item_id", item.get("itemId"))
    price = item.get("price")
    if not item_id or not _is_number(price):
        raise InvalidItemsError("order items invalid")
    amount = Decimal(str(price))
    if not amount.is_finite() or amount < 0:
        raise InvalidItemsError("order items invalid")
    return OrderItem(item_id=str(item_id), price=amount)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float, Decimal)) and not isinstance(value, bool)


def calc_total(items: Iterable[Any]) -> Decimal:
    """Sum of item prices; validates the items first."""
    return sum((item.price for item in check_items(items)), Decimal("0"))


def recalc_total(_order: Order, items: Any) -> dict[str, Any]:
    """Derived change for order_items: normalized items plus the new total."""
    checked = check_items(items)
    return {"order_items": tuple(checked), "order_total": calc_total(checked)}


# ---------------------------------------------------------------------------
# Predicates
# ---------------------------------------------------------------------------

def freeze_on_approval(field: str) -> FieldPredicate:
    """No changes to ``field`` once the order has left PENDING."""
    def predicate(previous: Order) -> str | None:
        return field if previous.order_status != OrderStatus.PENDING else None

    predicate.__name__ = f"freeze_on_approval_{field}"
    return predicate


def freeze_on_completion(field: str) -> FieldPredicate:
    """No changes to ``field`` once the order is COMPLETE or CANCELED."""
    def predicate(previous: Order) -> str | None:
        return field if previous.order_status in TERMINAL_STATUSES else None

    predicate.__name__ = f"freeze_on_completion_{field}"
    return predicate


def required_for_completion(field: str) -> FieldPredicate:
    """``field`` must be set once the order is COMPLETE."""
    def predicate(order: Order) -> str | None:
        return field if order.order_status == OrderStatus.COMPLETE else None

    predicate.__name__ = f"required_for_completion_{field}"
    return predicate


def status_change_valid(previous: Order | None, new_status: Any) -> bool:
    """Check a proposed status against the forbidden-transition list.

    Raises:
        InvalidTransitionError: The (previous, new) pair is forbidden.
    """
    if previous is None or previous.order_status is None:
        return True
    target = OrderStatus(new_status)
    if (previous.order_status, target) in FORBIDDEN_TRANSITIONS:
        raise InvalidTransitionError(previous.order_status, target)
    return True


# ---------------------------------------------------------------------------
# Rule set
# ---------------------------------------------------------------------------

def order_rules(max_total: Decimal = MAX_ORDER_TOTAL) -> RuleSet:
    """Build the Order rule set with the given total ceiling."""
    return RuleSet(
        aggregate=AGGREGATE,
        required=required(
            "customer_info",
            "order_items",
            "card_number",
            "shipping_address",
            "billing_address",
            required_for_completion("proof_of_delivery"),
        ),
        frozen=frozen(
            "customer_info",
            "order_no",
            freeze_on_approval("order_items"),
            freeze_on_approval("card_number"),
            freeze_on_approval("shipping_address"),
            freeze_on_approval("billing_address"),
            freeze_on_completion("order_status"),
        ),
        derived=(
            DerivedRule(field="order_items", derive=recalc_total, name="recalc_total"),
        ),
        validated=(
            ValidatedRule(
                field="order_status",
                allowed_values=frozenset(s.value for s in OrderStatus),
                check=status_change_valid,
                name="status_transition",
            ),
            ValidatedRule(
                field="order_total",
                max_value=max_total,
                name="max_order_total",
            ),
        ),
    )
