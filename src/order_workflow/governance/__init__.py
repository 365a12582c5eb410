"""Change governance: declarative rules and the engine that applies them."""

from order_workflow.governance.engine import GovernanceEngine
from order_workflow.governance.rules import (
    DerivedRule,
    FrozenRule,
    RequiredRule,
    RuleRegistry,
    RuleSet,
    ValidatedRule,
    frozen,
    required,
)

__all__ = [
    "DerivedRule",
    "FrozenRule",
    "GovernanceEngine",
    "RequiredRule",
    "RuleRegistry",
    "RuleSet",
    "ValidatedRule",
    "frozen",
    "required",
]
