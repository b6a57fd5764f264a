"""Error classes for the rule engine and its collaborators."""

from pathlib import Path


class InboxRulesError(Exception):
    """Base class for inbox-rules errors."""


class RuleStoreError(InboxRulesError):
    """Raised when the rule set cannot be read from or written to its store."""

    def __init__(self, message: str, path: Path | str | None = None) -> None:
        super().__init__(message)
        self.path = path


class RuleSetLoadError(RuleStoreError):
    """Raised when a saved rule set cannot be loaded."""


class RuleSetSaveError(RuleStoreError):
    """Raised when a rule set snapshot cannot be saved."""


class IntentApplyError(InboxRulesError):
    """Raised by an intent sink when the delivery pipeline rejects an intent."""

    def __init__(self, message: str, intent: object | None = None) -> None:
        super().__init__(message)
        self.intent = intent
