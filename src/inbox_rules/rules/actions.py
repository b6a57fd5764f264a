"""Action planning: turn a matched filter's actions into intents."""

from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field

from inbox_rules.rules.filters import EmailFilter, FilterActionType

# Action types whose value is meaningful downstream
VALUED_ACTIONS = frozenset({FilterActionType.MOVE_TO_MAILBOX, FilterActionType.ADD_LABEL})


class Intent(BaseModel):
    """A resolved, ready-to-execute mailbox side effect."""

    model_config = ConfigDict(frozen=True)

    action: Annotated[FilterActionType | str, Field(union_mode="left_to_right")]
    value: str | None = None
    filter_id: str | None = None
    action_id: str | None = None

    def __str__(self) -> str:
        action = getattr(self.action, "value", self.action)
        return f"{action}({self.value})" if self.value is not None else action


def plan(email_filter: EmailFilter) -> list[Intent]:
    """
    Resolve a filter's ordered actions into intents.

    Intents keep the filter's action order; the planner never executes
    anything.

    Args:
        email_filter: The matched filter.

    Returns:
        One Intent per action, in order.
    """
    return [
        Intent(
            action=action.type,
            value=action.value if action.type in VALUED_ACTIONS else None,
            filter_id=email_filter.id,
            action_id=action.id,
        )
        for action in email_filter.actions
    ]
