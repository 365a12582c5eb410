"""Enumerations used across the order workflow."""

from enum import Enum


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    SHIPPING = "SHIPPING"
    COMPLETE = "COMPLETE"
    CANCELED = "CANCELED"


TERMINAL_STATUSES: frozenset[OrderStatus] = frozenset(
    {OrderStatus.COMPLETE, OrderStatus.CANCELED}
)


class RuleKind(str, Enum):
    """Tag for the four governance rule variants."""

    REQUIRED = "required"
    FROZEN = "frozen"
    DERIVED = "derived"
    VALIDATED = "validated"


class OrderEventName(str, Enum):
    """Lifecycle event names carried by ``OrderChanged``."""

    CREATE = "CREATEORDER"
    UPDATE = "UPDATEORDER"
    DELETE = "DELETEORDER"


class BusBackend(str, Enum):
    MEMORY = "memory"
    REDIS = "redis"
