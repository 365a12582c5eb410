"""Declarative governance rules.

Defines the four rule variants evaluated by the governance engine:

- :class:`RequiredRule`: a field that must be non-null on the resulting snapshot.
- :class:`FrozenRule`: a field that may not appear in a change set once a
  condition on the *previous* snapshot holds.
- :class:`DerivedRule`: a field whose change implies further changes.
- :class:`ValidatedRule`: value checks (allowed set, ceiling, custom check).

Required and Frozen rules wrap a predicate ``(Order) -> field | None``;
static field names are wrapped as constant-returning predicates so both
forms live in the same list.  Rules are pure data -- no imperative logic.
The :class:`GovernanceEngine` in ``engine.py`` evaluates them.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Callable, ClassVar, Iterable, Union

from order_workflow.core.enums import RuleKind
from order_workflow.core.models import Order

FieldPredicate = Callable[[Order], Union[str, None]]
Derivation = Callable[[Order, Any], dict[str, Any]]
ValueCheck = Callable[[Union[Order, None], Any], bool]


def _constant(name: str) -> FieldPredicate:
    def predicate(_order: Order) -> str:
        return name

    predicate.__name__ = f"always_{name}"
    return predicate


def _as_predicate(field_or_predicate: str | FieldPredicate) -> FieldPredicate:
    if isinstance(field_or_predicate, str):
        return _constant(field_or_predicate)
    return field_or_predicate


# ---------------------------------------------------------------------------
# Rule variants
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RequiredRule:
    """Field must be present (non-null) on the snapshot produced by an update."""

    kind: ClassVar[RuleKind] = RuleKind.REQUIRED

    predicate: FieldPredicate
    name: str = ""

    def field_for(self, snapshot: Order) -> str | None:
        return self.predicate(snapshot)


@dataclass(frozen=True)
class FrozenRule:
    """Field may not be changed; evaluated against the previous snapshot."""

    kind: ClassVar[RuleKind] = RuleKind.FROZEN

    predicate: FieldPredicate
    name: str = ""

    def field_for(self, previous: Order) -> str | None:
        return self.predicate(previous)


@dataclass(frozen=True)
class DerivedRule:
    """When ``field`` changes, ``derive(snapshot, new_value)`` adds changes.

    ``snapshot`` is the previous snapshot with the whole proposal merged in.
    """

    kind: ClassVar[RuleKind] = RuleKind.DERIVED

    field: str
    derive: Derivation
    name: str = ""


@dataclass(frozen=True)
class ValidatedRule:
    """Checks applied to ``field`` whenever it appears in a change set.

    Example -- "order total must not exceed 99,999.99"::

        ValidatedRule(field="order_total", max_value=Decimal("99999.99"))

    ``check`` receives the pre-change snapshot and the proposed value.  It
    returns ``False`` to reject with an invalid-value error, or raises a
    more specific governance error itself.
    """

    kind: ClassVar[RuleKind] = RuleKind.VALIDATED

    field: str
    allowed_values: frozenset[Any] | None = None
    max_value: Decimal | None = None
    check: ValueCheck | None = None
    name: str = ""


Rule = Union[RequiredRule, FrozenRule, DerivedRule, ValidatedRule]


def required(*fields: str | FieldPredicate) -> tuple[RequiredRule, ...]:
    """Build Required rules from field names and/or predicates."""
    return tuple(
        RequiredRule(predicate=_as_predicate(f), name=_rule_name(f))
        for f in fields
    )


def frozen(*fields: str | FieldPredicate) -> tuple[FrozenRule, ...]:
    """Build Frozen rules from field names and/or predicates."""
    return tuple(
        FrozenRule(predicate=_as_predicate(f), name=_rule_name(f))
        for f in fields
    )


def _rule_name(field_or_predicate: str | FieldPredicate) -> str:
    if isinstance(field_or_predicate, str):
        return field_or_predicate
    return getattr(field_or_predicate, "__name__", "predicate")


# ---------------------------------------------------------------------------
# RuleSet: the rules attached to one aggregate type
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RuleSet:
    """A versioned, ordered collection of rules for one aggregate type.

    Example::

        rule_set = RuleSet(
            aggregate="order",
            required=required("customer_info", "order_items"),
            frozen=frozen("customer_info"),
            derived=(DerivedRule("order_items", recalc_total),),
            validated=(ValidatedRule("order_total", max_value=MAX_TOTAL),),
        )
    """

    aggregate: str
    version: int = 1
    required: tuple[RequiredRule, ...] = ()
    frozen: tuple[FrozenRule, ...] = ()
    derived: tuple[DerivedRule, ...] = ()
    validated: tuple[ValidatedRule, ...] = ()

    def derived_for(self, field_name: str) -> list[DerivedRule]:
        return [r for r in self.derived if r.field == field_name]

    def validated_for(self, field_name: str) -> list[ValidatedRule]:
        return [r for r in self.validated if r.field == field_name]

    @property
    def rule_count(self) -> int:
        return (
            len(self.required) + len(self.frozen)
            + len(self.derived) + len(self.validated)
        )

    def rules(self) -> Iterable[Rule]:
        yield from self.required
        yield from self.frozen
        yield from self.derived
        yield from self.validated


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class RuleRegistry:
    """Maps aggregate type names to their :class:`RuleSet`."""

    def __init__(self) -> None:
        self._rule_sets: dict[str, RuleSet] = {}

    def register(self, rule_set: RuleSet) -> None:
        """Register (or replace) the rule set for an aggregate type."""
        self._rule_sets[rule_set.aggregate] = rule_set

    def unregister(self, aggregate: str) -> RuleSet | None:
        return self._rule_sets.pop(aggregate, None)

    def get(self, aggregate: str) -> RuleSet:
        """Look up the rule set for ``aggregate``.

        Raises:
            KeyError: If no rule set is registered for ``aggregate``.
        """
        rule_set = self._rule_sets.get(aggregate)
        if rule_set is None:
            raise KeyError(f"Rule set not registered: {aggregate}")
        return rule_set

    @property
    def registered(self) -> list[str]:
        return list(self._rule_sets.keys())
