"""Rule engine for email filtering."""

from inbox_rules.rules.actions import Intent, plan
from inbox_rules.rules.conditions import (
    ConditionField,
    ConditionOperator,
    FilterCondition,
    evaluate,
)
from inbox_rules.rules.engine import FilterMatch, IntentSink, RuleEngine
from inbox_rules.rules.filters import (
    EmailFilter,
    FilterAction,
    FilterActionType,
    FilterStats,
    matches_filter,
)
from inbox_rules.rules.manager import RuleSetDocument, RuleSetManager

__all__ = [
    "ConditionField",
    "ConditionOperator",
    "EmailFilter",
    "FilterAction",
    "FilterActionType",
    "FilterCondition",
    "FilterMatch",
    "FilterStats",
    "Intent",
    "IntentSink",
    "RuleEngine",
    "RuleSetDocument",
    "RuleSetManager",
    "evaluate",
    "matches_filter",
    "plan",
]
