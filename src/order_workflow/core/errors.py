"""Custom exception hierarchy for the order workflow."""

from __future__ import annotations

from typing import Any


class OrderWorkflowError(Exception):
    """Base exception for all order workflow errors."""


class OrderNotFoundError(OrderWorkflowError):
    """No persisted order exists for the given order number."""

    def __init__(self, order_no: str):
        self.order_no = order_no
        super().__init__(f"Order not found: {order_no}")


# --- Construction ---
class InvalidItemsError(OrderWorkflowError):
    """Item list is missing, empty, or contains a malformed item."""


class InvalidFormatError(OrderWorkflowError):
    """A value does not match its expected format (e.g. card number)."""

    def __init__(self, field: str, reason: str = "invalid format"):
        self.field = field
        self.reason = reason
        super().__init__(f"{field}: {reason}")


# --- Governance ---
class GovernanceError(OrderWorkflowError):
    """A proposed change set was rejected by the governance engine."""


class MissingRequiredFieldError(GovernanceError):
    def __init__(self, field: str):
        self.field = field
        super().__init__(f"Missing required field: {field}")


class FrozenFieldError(GovernanceError):
    def __init__(self, field: str):
        self.field = field
        super().__init__(f"Field is frozen and cannot be changed: {field}")


class InvalidTransitionError(GovernanceError):
    def __init__(self, from_status: Any, to_status: Any):
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Invalid status change: {_label(from_status)} -> {_label(to_status)}"
        )


class InvalidValueError(GovernanceError):
    def __init__(self, field: str, value: Any, reason: str):
        self.field = field
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid value for {field}={value!r}: {reason}")


# --- Persistence ---
class IncompleteStatusOnDeleteError(OrderWorkflowError):
    """Orders can only be deleted once COMPLETE or CANCELED."""

    def __init__(self, status: Any):
        self.status = status
        super().__init__(f"Order status incomplete: {_label(status)}")


class ConflictError(OrderWorkflowError):
    """A write was based on a snapshot that has since been superseded."""

    def __init__(self, order_no: str, expected_version: int, actual_version: int):
        self.order_no = order_no
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Stale write for order {order_no}: based on v{expected_version}, "
            f"stored v{actual_version}"
        )


# --- Collaborators ---
class CollaboratorFailure(OrderWorkflowError):
    """Wraps any failure raised inside a state-machine action or saga callback."""

    def __init__(self, action: str, order_no: str | None, cause: BaseException):
        self.action = action
        self.order_no = order_no
        self.cause = cause
        super().__init__(f"[{action}] order={order_no}: {cause}")


def _label(status: Any) -> str:
    return getattr(status, "value", status) if status is not None else "None"
