"""Change governance engine.

Decides, for a proposed change set against the previous snapshot of an
aggregate, whether the changes are permitted, what further changes they
imply, and whether the result is valid.  Evaluation order is fixed:

1. Frozen     -- every proposed key is checked against the previous snapshot
2. Derived    -- derived changes are merged into the change set
3. Validated  -- every key of the enlarged change set is value-checked
4. Apply      -- a new immutable snapshot is built, ``previous`` attached
5. Required   -- required fields are checked on the new snapshot

Any failure raises a :class:`GovernanceError` subclass and nothing is
applied.

Usage::

    engine = GovernanceEngine(order_rules())
    updated = engine.apply(current, {"order_items": [...]})
"""

from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping

from pydantic import ValidationError

from order_workflow.core.errors import (
    FrozenFieldError,
    GovernanceError,
    InvalidValueError,
    MissingRequiredFieldError,
)
from order_workflow.core.ids import utc_now
from order_workflow.core.models import Order
from order_workflow.observability.metrics import GOVERNANCE_REJECTIONS

from .rules import RuleSet, ValidatedRule

logger = logging.getLogger(__name__)


class GovernanceEngine:
    """Applies a :class:`RuleSet` to (previous snapshot, change set) pairs."""

    def __init__(self, rule_set: RuleSet) -> None:
        self._rules = rule_set

    @property
    def rule_set(self) -> RuleSet:
        return self._rules

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    def apply(self, previous: Order, changes: Mapping[str, Any]) -> Order:
        """Validate ``changes`` against ``previous`` and return the new snapshot.

        Raises:
            FrozenFieldError: A proposed field is frozen.
            InvalidValueError: A value fails an allowed-set, ceiling or
                custom check, or does not fit the snapshot schema.
            InvalidTransitionError: A status change is forbidden.
            MissingRequiredFieldError: The result lacks a required field.
        """
        try:
            proposed = self._normalize(changes)
            self._check_frozen(previous, proposed)
            enlarged = self._derive(previous, proposed)
            self._validate(previous, enlarged)
            updated = self._merge(previous, enlarged)
            self.check_required(updated)
        except GovernanceError as exc:
            GOVERNANCE_REJECTIONS.labels(
                aggregate=self._rules.aggregate, kind=type(exc).__name__,
            ).inc()
            logger.info(
                "GovernanceEngine: rejected change to %s %s: %s",
                self._rules.aggregate,
                previous.order_no,
                exc,
            )
            raise

        logger.debug(
            "GovernanceEngine: applied %d change(s) (%d derived) to %s %s v%d",
            len(proposed),
            len(enlarged) - len(proposed),
            self._rules.aggregate,
            updated.order_no,
            updated.version,
        )
        return updated

    def check_values(self, snapshot: Order) -> None:
        """Run every Validated rule against the values of a first write."""
        for rule in self._rules.validated:
            self._check_value(rule, None, snapshot.get(rule.field))

    def check_required(self, snapshot: Order) -> None:
        """Raise if any Required rule names a field that is null on ``snapshot``."""
        for rule in self._rules.required:
            name = rule.field_for(snapshot)
            if name and snapshot.get(name) is None:
                raise MissingRequiredFieldError(name)

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    @staticmethod
    def _normalize(changes: Mapping[str, Any]) -> dict[str, Any]:
        """Translate aliases to field names; unknown keys are rejected."""
        normalized: dict[str, Any] = {}
        for key, value in changes.items():
            name = Order.resolve_field(key)
            if name is None:
                raise InvalidValueError(key, value, "unknown field")
            normalized[name] = value
        return normalized

    def _check_frozen(self, previous: Order, proposed: dict[str, Any]) -> None:
        for key in proposed:
            for rule in self._rules.frozen:
                if rule.field_for(previous) == key:
                    raise FrozenFieldError(key)

    def _derive(self, previous: Order, proposed: dict[str, Any]) -> dict[str, Any]:
        # Derivations see the previous values with the proposal laid over
        # them; the view is unvalidated and never persisted.
        view = previous.model_copy(update=proposed)
        enlarged = dict(proposed)
        for key, value in proposed.items():
            for rule in self._rules.derived_for(key):
                enlarged.update(rule.derive(view, value))
        return enlarged

    def _validate(self, previous: Order, changes: dict[str, Any]) -> None:
        for key, value in changes.items():
            for rule in self._rules.validated_for(key):
                self._check_value(rule, previous, value)

    @staticmethod
    def _check_value(
        rule: ValidatedRule, previous: Order | None, value: Any,
    ) -> None:
        if rule.allowed_values is not None and not _is_allowed(value, rule.allowed_values):
            raise InvalidValueError(
                rule.field, value,
                f"must be one of {sorted(str(v) for v in rule.allowed_values)}",
            )

        if rule.max_value is not None:
            try:
                over = Decimal(str(value)) > rule.max_value
            except (InvalidOperation, TypeError, ValueError):
                raise InvalidValueError(rule.field, value, "not a number") from None
            if over:
                raise InvalidValueError(
                    rule.field, value, f"exceeds maximum {rule.max_value}",
                )

        if rule.check is not None and not rule.check(previous, value):
            raise InvalidValueError(rule.field, value, "failed validation")

    @staticmethod
    def _merge(previous: Order, changes: dict[str, Any]) -> Order:
        data = previous.model_dump()
        data.update(changes)
        data["version"] = previous.version + 1
        data["updated_at"] = utc_now()
        try:
            updated = Order.model_validate(data)
        except ValidationError as exc:
            error = exc.errors()[0]
            loc = str(error["loc"][0]) if error["loc"] else "order"
            raise InvalidValueError(
                Order.resolve_field(loc) or loc, error.get("input"), error["msg"],
            ) from None
        updated._previous = previous
        return updated


def _is_allowed(value: Any, allowed: frozenset[Any]) -> bool:
    try:
        return value in allowed
    except TypeError:
        # Unhashable values can never be members.
        return False
