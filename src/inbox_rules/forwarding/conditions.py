"""Forwarding condition definitions and evaluation."""

import math
from enum import Enum
from typing import TYPE_CHECKING, Annotated

from pydantic import BaseModel, ConfigDict, Field

from inbox_rules.rules.conditions import generate_id, render_bool

if TYPE_CHECKING:
    from inbox_rules.mail.messages import EmailMessage


class ForwardingField(str, Enum):
    """Message fields a forwarding condition can test."""

    FROM = "from"
    TO = "to"
    SUBJECT = "subject"
    BODY = "body"
    HAS_ATTACHMENT = "has_attachment"
    SIZE = "size"


class ForwardingOperator(str, Enum):
    """Comparison operators for forwarding conditions."""

    CONTAINS = "contains"
    EQUALS = "equals"
    STARTS_WITH = "starts_with"
    ENDS_WITH = "ends_with"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"


class ForwardingCondition(BaseModel):
    """A single test a conditional forwarding rule applies to a message."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: generate_id("fwdcond"))
    type: Annotated[ForwardingField | str, Field(union_mode="left_to_right")] = (
        ForwardingField.SUBJECT
    )
    operator: Annotated[ForwardingOperator | str, Field(union_mode="left_to_right")] = (
        ForwardingOperator.CONTAINS
    )
    value: str | int | float = ""

    def matches(self, email: "EmailMessage") -> bool:
        """Check if the email matches this condition."""
        return evaluate_forwarding_condition(email, self)


def parse_number(value: str | int | float) -> float | None:
    """Parse a condition value as a number, or None if it isn't one."""
    if isinstance(value, bool):
        return None
    try:
        number = float(value.strip() if isinstance(value, str) else value)
    except (TypeError, ValueError, OverflowError):
        return None
    # "inf", "nan" and out-of-range literals are not usable thresholds
    return number if math.isfinite(number) else None


def _compare_size(size: int | None, value: str | int | float, operator: ForwardingOperator | str) -> bool:
    threshold = parse_number(value)
    if size is None or threshold is None:
        return False

    match operator:
        case ForwardingOperator.GREATER_THAN:
            return size > threshold
        case ForwardingOperator.LESS_THAN:
            return size < threshold
        case ForwardingOperator.EQUALS:
            return size == threshold
        case _:
            return False


def _compare_text(text: str, value: str | int | float, operator: ForwardingOperator | str) -> bool:
    lower_text = text.lower()
    pattern = str(value).lower()

    match operator:
        case ForwardingOperator.CONTAINS:
            return pattern in lower_text
        case ForwardingOperator.EQUALS:
            return lower_text == pattern
        case ForwardingOperator.STARTS_WITH:
            return lower_text.startswith(pattern)
        case ForwardingOperator.ENDS_WITH:
            return lower_text.endswith(pattern)
        case _:
            return False


def evaluate_forwarding_condition(
    email: "EmailMessage", condition: ForwardingCondition
) -> bool:
    """
    Decide whether one forwarding condition matches one message.

    Size comparisons parse the condition value as a number; a value that
    doesn't parse, a missing size, or an operator the field doesn't
    support all evaluate to False.

    Args:
        email: The message to check.
        condition: The condition to evaluate.

    Returns:
        True if the condition matches.
    """
    match condition.type:
        case ForwardingField.FROM:
            return _compare_text(email.sender, condition.value, condition.operator)
        case ForwardingField.TO:
            return _compare_text(" ".join(email.recipients), condition.value, condition.operator)
        case ForwardingField.SUBJECT:
            return _compare_text(email.subject or "", condition.value, condition.operator)
        case ForwardingField.BODY:
            return _compare_text(email.body, condition.value, condition.operator)
        case ForwardingField.HAS_ATTACHMENT:
            if condition.operator != ForwardingOperator.EQUALS:
                return False
            return _compare_text(render_bool(email.has_attachment), condition.value, condition.operator)
        case ForwardingField.SIZE:
            return _compare_size(email.size, condition.value, condition.operator)
        case _:
            return False
