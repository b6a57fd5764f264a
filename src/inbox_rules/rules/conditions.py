"""Condition definitions and evaluation for filter matching."""

import uuid
from enum import Enum
from typing import TYPE_CHECKING, Annotated

from pydantic import BaseModel, ConfigDict, Field

if TYPE_CHECKING:
    from inbox_rules.mail.messages import EmailMessage


def generate_id(prefix: str) -> str:
    """Generate an opaque record id such as ``filter_3f2a...``."""
    return f"{prefix}_{uuid.uuid4().hex}"


class ConditionField(str, Enum):
    """Message fields a filter condition can test."""

    FROM = "from"
    TO = "to"
    SUBJECT = "subject"
    BODY = "body"
    HAS_ATTACHMENT = "hasAttachment"


class ConditionOperator(str, Enum):
    """Comparison operators for filter conditions."""

    CONTAINS = "contains"
    EQUALS = "equals"
    STARTS_WITH = "startsWith"
    ENDS_WITH = "endsWith"
    # Exact, case-sensitive comparison; the only one meant for boolean fields
    IS = "is"


class FilterCondition(BaseModel):
    """A single field/operator/value test against a message.

    Values that are not a known field or operator (e.g. from an older
    saved document) are kept as plain strings and never match.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: generate_id("cond"))
    field: Annotated[ConditionField | str, Field(union_mode="left_to_right")] = (
        ConditionField.SUBJECT
    )
    operator: Annotated[ConditionOperator | str, Field(union_mode="left_to_right")] = (
        ConditionOperator.CONTAINS
    )
    value: str = ""

    def matches(self, email: "EmailMessage") -> bool:
        """Check if the email matches this condition."""
        return evaluate(email, self)


def render_bool(value: bool | None) -> str:
    """Render a boolean field the way conditions compare it."""
    return "true" if value else "false"


def extract_field(email: "EmailMessage", field: ConditionField | str) -> str | None:
    """
    Extract the string form of a message field.

    Args:
        email: The message to read.
        field: Field selector.

    Returns:
        The field value (empty string when absent), or None for an
        unknown field.
    """
    match field:
        case ConditionField.FROM:
            return email.sender
        case ConditionField.TO:
            # Joined so that "contains" can hit any one recipient
            return " ".join(email.recipients)
        case ConditionField.SUBJECT:
            return email.subject or ""
        case ConditionField.BODY:
            return email.body
        case ConditionField.HAS_ATTACHMENT:
            return render_bool(email.has_attachment)
        case _:
            return None


def matches_operator(
    value: str, pattern: str, operator: ConditionOperator | str
) -> bool:
    """Compare a field value to a pattern using the given operator."""
    lower_value = value.lower()
    lower_pattern = pattern.lower()

    match operator:
        case ConditionOperator.CONTAINS:
            return lower_pattern in lower_value
        case ConditionOperator.EQUALS:
            return lower_value == lower_pattern
        case ConditionOperator.STARTS_WITH:
            return lower_value.startswith(lower_pattern)
        case ConditionOperator.ENDS_WITH:
            return lower_value.endswith(lower_pattern)
        case ConditionOperator.IS:
            return value == pattern
        case _:
            return False


def evaluate(email: "EmailMessage", condition: FilterCondition) -> bool:
    """
    Decide whether one condition matches one message.

    ``hasAttachment`` conditions ignore the operator: the value "true"
    matches messages with attachments, anything else matches messages
    without. A stub condition (``contains ""``) therefore means "has no
    attachment".

    Args:
        email: The message to check.
        condition: The condition to evaluate.

    Returns:
        True if the condition matches. Unknown fields or operators
        evaluate to False.
    """
    if condition.field == ConditionField.HAS_ATTACHMENT:
        # Operator is not consulted; only the literal "true" selects attachments
        return bool(email.has_attachment) == (condition.value == "true")

    value = extract_field(email, condition.field)
    if value is None:
        return False
    return matches_operator(value, condition.value, condition.operator)
