"""Forwarding destinations and conditional forwarding rules."""

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Annotated

from pydantic import BaseModel, ConfigDict, Field

from inbox_rules.forwarding.conditions import ForwardingCondition
from inbox_rules.rules.conditions import generate_id

if TYPE_CHECKING:
    from inbox_rules.mail.messages import EmailMessage


class ForwardingType(str, Enum):
    """Kinds of forwarding a statistics record can belong to."""

    EXTERNAL = "external"
    ACCOUNT = "account"
    CONDITIONAL = "conditional"


class ForwardingActionType(str, Enum):
    """Actions a conditional forwarding rule can take."""

    FORWARD_TO_EXTERNAL = "forward_to_external"
    FORWARD_TO_ACCOUNT = "forward_to_account"
    LABEL = "label"
    MARK_READ = "mark_read"
    DELETE = "delete"


class ExternalForwarding(BaseModel):
    """Unconditional forwarding of a mailbox to an external address."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: generate_id("fwd"))
    source_email: str
    forward_to_email: str
    enabled: bool = True
    keep_copy: bool = Field(default=True, description="Keep a copy in the original mailbox")
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)


class AccountForwarding(BaseModel):
    """Unconditional forwarding of a mailbox to another account."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: generate_id("fwd"))
    source_email: str
    target_account_id: str
    target_email: str
    enabled: bool = True
    keep_copy: bool = True
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)


class ForwardingAction(BaseModel):
    """Action to take when a forwarding rule matches."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: generate_id("fwdaction"))
    type: Annotated[ForwardingActionType | str, Field(union_mode="left_to_right")]
    target_email: str | None = None
    target_account_id: str | None = None
    label: str | None = None


class ConditionalForwardingRule(BaseModel):
    """A forwarding rule applied only to matching messages."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: generate_id("fwdrule"))
    source_email: str
    name: str
    description: str | None = None
    conditions: tuple[ForwardingCondition, ...] = ()
    match_all: bool = Field(default=True, description="True=AND all conditions, False=OR")
    actions: tuple[ForwardingAction, ...] = ()
    enabled: bool = True
    priority: int | None = Field(default=None, description="Lower number = applied first")
    stop_processing: bool = Field(
        default=False, description="Skip lower-priority rules once this one matches"
    )
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)

    def matches(self, email: "EmailMessage") -> bool:
        """Check if an email matches this rule."""
        return rule_matches(email, self)


class ForwardingIntent(BaseModel):
    """A resolved forwarding side effect."""

    model_config = ConfigDict(frozen=True)

    action: Annotated[ForwardingActionType | str, Field(union_mode="left_to_right")]
    target: str | None = None
    rule_id: str | None = None
    action_id: str | None = None


class ForwardingStatistics(BaseModel):
    """Delivery outcomes for one forwarding or rule."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: generate_id("fwdstats"))
    forwarding_id: str
    forwarding_type: ForwardingType
    emails_forwarded: int = 0
    last_forwarded_at: datetime | None = None
    failure_count: int = 0
    last_failure_at: datetime | None = None
    last_failure_reason: str | None = None


def rule_matches(email: "EmailMessage", rule: ConditionalForwardingRule) -> bool:
    """
    Check if an email matches a forwarding rule.

    Disabled rules and rules without conditions never match.
    """
    if not rule.enabled or not rule.conditions:
        return False

    results = [c.matches(email) for c in rule.conditions]
    return all(results) if rule.match_all else any(results)


def _target(action: ForwardingAction) -> str | None:
    match action.type:
        case ForwardingActionType.FORWARD_TO_EXTERNAL:
            return action.target_email
        case ForwardingActionType.FORWARD_TO_ACCOUNT:
            return action.target_account_id
        case ForwardingActionType.LABEL:
            return action.label
        case _:
            return None


def plan_forwarding(rule: ConditionalForwardingRule) -> list[ForwardingIntent]:
    """Resolve a rule's actions into intents, keeping their order."""
    return [
        ForwardingIntent(
            action=action.type,
            target=_target(action),
            rule_id=rule.id,
            action_id=action.id,
        )
        for action in rule.actions
    ]
