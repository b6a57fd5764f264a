"""Filter definitions and the filter matcher."""

from enum import Enum
from typing import TYPE_CHECKING, Annotated

from pydantic import BaseModel, ConfigDict, Field

from inbox_rules.rules.conditions import FilterCondition, generate_id

if TYPE_CHECKING:
    from inbox_rules.mail.messages import EmailMessage


class FilterActionType(str, Enum):
    """Mailbox side effects a filter can request."""

    MOVE_TO_MAILBOX = "moveToMailbox"
    MARK_AS_READ = "markAsRead"
    MARK_AS_SPAM = "markAsSpam"
    DELETE = "delete"
    ADD_LABEL = "addLabel"
    MARK_AS_IMPORTANT = "markAsImportant"


class FilterAction(BaseModel):
    """Action to take when a filter matches."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: generate_id("action"))
    type: Annotated[FilterActionType | str, Field(union_mode="left_to_right")] = (
        FilterActionType.MARK_AS_READ
    )
    value: str | None = Field(
        default=None, description="Mailbox id for moveToMailbox, label for addLabel"
    )


class EmailFilter(BaseModel):
    """A named, user-ordered rule."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: generate_id("filter"))
    name: str = Field(description="Human-readable filter name")
    description: str | None = Field(default=None, description="Filter description")
    enabled: bool = Field(default=True, description="Whether the filter is active")
    priority: int = Field(default=0, description="Lower number = applied first")

    conditions: tuple[FilterCondition, ...] = ()
    match_all: bool = Field(
        default=True, description="True=AND all conditions, False=OR"
    )
    actions: tuple[FilterAction, ...] = ()

    created_at: int = Field(default=0, description="Creation time (epoch ms)")
    updated_at: int = Field(default=0, description="Last update time (epoch ms)")

    def matches(self, email: "EmailMessage") -> bool:
        """Check if an email matches this filter."""
        return matches_filter(email, self)


class FilterStats(BaseModel):
    """Aggregate statistics over a filter collection."""

    model_config = ConfigDict(frozen=True)

    total_rules: int = 0
    enabled_rules: int = 0
    last_applied: int | None = None
    applied_count: int = 0


def matches_filter(email: "EmailMessage", email_filter: EmailFilter) -> bool:
    """
    Check if an email matches a filter's conditions.

    Disabled filters and filters without conditions never match.

    Args:
        email: The email to check.
        email_filter: The filter to evaluate.

    Returns:
        True if all/any conditions match (based on match_all).
    """
    if not email_filter.enabled or not email_filter.conditions:
        return False

    results = [c.matches(email) for c in email_filter.conditions]

    if email_filter.match_all:
        return all(results)
    return any(results)
