"""Conditional forwarding rules."""

from inbox_rules.forwarding.conditions import (
    ForwardingCondition,
    ForwardingField,
    ForwardingOperator,
    evaluate_forwarding_condition,
)
from inbox_rules.forwarding.manager import (
    ForwardingDocument,
    ForwardingManager,
    ForwardingMatch,
)
from inbox_rules.forwarding.rules import (
    AccountForwarding,
    ConditionalForwardingRule,
    ExternalForwarding,
    ForwardingAction,
    ForwardingActionType,
    ForwardingIntent,
    ForwardingStatistics,
    ForwardingType,
    plan_forwarding,
    rule_matches,
)

__all__ = [
    "AccountForwarding",
    "ConditionalForwardingRule",
    "ExternalForwarding",
    "ForwardingAction",
    "ForwardingActionType",
    "ForwardingCondition",
    "ForwardingDocument",
    "ForwardingField",
    "ForwardingIntent",
    "ForwardingManager",
    "ForwardingMatch",
    "ForwardingOperator",
    "ForwardingStatistics",
    "ForwardingType",
    "evaluate_forwarding_condition",
    "plan_forwarding",
    "rule_matches",
]
