"""Rule engine for applying a rule set's filters to inbound messages."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

from inbox_rules.errors import IntentApplyError
from inbox_rules.rules.actions import Intent, plan
from inbox_rules.rules.filters import EmailFilter

if TYPE_CHECKING:
    from inbox_rules.mail.messages import EmailMessage
    from inbox_rules.rules.manager import RuleSetManager


@dataclass
class FilterMatch:
    """A filter that matched a message, with its planned intents."""

    filter: EmailFilter
    intents: list[Intent] = field(default_factory=list)


class IntentSink(ABC):
    """Applies intents against the mailbox store (the delivery pipeline)."""

    @abstractmethod
    def apply(self, email: "EmailMessage", intents: list[Intent]) -> None:
        """
        Apply one filter's intents to a message, in order.

        Raises:
            IntentApplyError: If the intents could not be applied.
        """
        ...


class CollectingSink(IntentSink):
    """Sink that only records what it was asked to apply."""

    def __init__(self) -> None:
        self.applied: list[tuple["EmailMessage", list[Intent]]] = []

    def apply(self, email: "EmailMessage", intents: list[Intent]) -> None:
        self.applied.append((email, list(intents)))


class ApplyStatistics(BaseModel):
    """Outcome counters reported back by the delivery pipeline."""

    applied_count: int = Field(default=0, description="Successful applications")
    failure_count: int = Field(default=0, description="Failed applications")
    last_failure_at: int | None = Field(default=None, description="Epoch ms of last failure")
    last_failure_reason: str | None = Field(default=None, description="Last failure message")


class RuleEngine:
    """Engine for evaluating messages against a rule set."""

    def __init__(
        self,
        manager: "RuleSetManager",
        logger: logging.Logger | None = None,
    ) -> None:
        """
        Initialize the rule engine.

        Args:
            manager: Rule set whose filters are evaluated.
            logger: Logger for match and failure reports.
        """
        self.manager = manager
        self.logger = logger or logging.getLogger(__name__)
        self.statistics = ApplyStatistics()

    def evaluate(self, email: "EmailMessage") -> list[FilterMatch]:
        """
        Find every enabled filter that matches an email.

        All matching filters apply; there is no stop-on-first-match.

        Args:
            email: The email to check.

        Returns:
            Matches in priority order (ties keep display order).
        """
        filters = sorted(self.manager.get_enabled(), key=lambda f: f.priority)
        return [FilterMatch(filter=f, intents=plan(f)) for f in filters if f.matches(email)]

    def process(
        self,
        email: "EmailMessage",
        sink: IntentSink,
        *,
        dry_run: bool = False,
    ) -> list[FilterMatch]:
        """
        Evaluate an email and hand each match's intents to a sink.

        A failing match is recorded and does not stop later matches.

        Args:
            email: The email to process.
            sink: Delivery pipeline that applies intents.
            dry_run: If True, don't apply anything, just return the matches.

        Returns:
            The matches found.
        """
        matches = self.evaluate(email)

        for match in matches:
            self.logger.info(
                f"Filter '{match.filter.name}' matched message {email.id}: "
                + ", ".join(str(i) for i in match.intents)
            )
            if dry_run or not match.intents:
                continue

            try:
                sink.apply(email, match.intents)
            except IntentApplyError as e:
                self._record_failure(match.filter, str(e))
                continue

            self.statistics.applied_count += 1
            self.manager.record_applied()

        return matches

    def _record_failure(self, email_filter: EmailFilter, reason: str) -> None:
        self.statistics.failure_count += 1
        self.statistics.last_failure_at = self.manager.clock()
        self.statistics.last_failure_reason = reason
        self.logger.error(f"Failed to apply filter '{email_filter.name}': {reason}")

    def classify_all(
        self,
        emails: list["EmailMessage"],
    ) -> list[tuple["EmailMessage", list[FilterMatch]]]:
        """
        Evaluate a batch of emails without applying anything.

        Args:
            emails: List of emails to evaluate.

        Returns:
            List of (email, matches) tuples.
        """
        return [(email, self.evaluate(email)) for email in emails]
