"""Forwarding manager: forwarding destinations, conditional rules and statistics."""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any, TypeVar

from pydantic import BaseModel, Field

from inbox_rules.errors import RuleSetLoadError
from inbox_rules.forwarding.rules import (
    AccountForwarding,
    ConditionalForwardingRule,
    ExternalForwarding,
    ForwardingIntent,
    ForwardingStatistics,
    ForwardingType,
    plan_forwarding,
)
from inbox_rules.storage.base import DocumentStore

if TYPE_CHECKING:
    from inbox_rules.mail.messages import EmailMessage

FORWARDING_VERSION = 1

RecordT = TypeVar("RecordT", ExternalForwarding, AccountForwarding, ConditionalForwardingRule)

_PROTECTED_FIELDS = frozenset({"id", "created_at", "updated_at"})


class ForwardingDocument(BaseModel):
    """Snapshot of all forwarding state for one account."""

    version: int = Field(default=FORWARDING_VERSION, description="Document format version")
    external_forwardings: list[ExternalForwarding] = Field(default_factory=list)
    account_forwardings: list[AccountForwarding] = Field(default_factory=list)
    conditional_rules: list[ConditionalForwardingRule] = Field(default_factory=list)
    statistics: list[ForwardingStatistics] = Field(default_factory=list)


@dataclass
class ForwardingMatch:
    """A conditional rule that matched a message, with its planned intents."""

    rule: ConditionalForwardingRule
    intents: list[ForwardingIntent] = field(default_factory=list)


class ForwardingManager:
    """
    Owns one account's forwarding configuration.

    Like the rule set manager, writers hold a lock and swap in new tuples
    of frozen records, so readers iterate a stable snapshot without locking.
    """

    def __init__(
        self,
        *,
        store: DocumentStore[ForwardingDocument] | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._lock = threading.RLock()
        self._external_forwardings: tuple[ExternalForwarding, ...] = ()
        self._account_forwardings: tuple[AccountForwarding, ...] = ()
        self._conditional_rules: tuple[ConditionalForwardingRule, ...] = ()
        self._statistics: tuple[ForwardingStatistics, ...] = ()
        self.selected_forwarding_id: str | None = None
        self.store = store
        self.logger = logger or logging.getLogger(__name__)

    # ─── Snapshots ────────────────────────────────────────────────────────

    @property
    def external_forwardings(self) -> tuple[ExternalForwarding, ...]:
        return self._external_forwardings

    @property
    def account_forwardings(self) -> tuple[AccountForwarding, ...]:
        return self._account_forwardings

    @property
    def conditional_rules(self) -> tuple[ConditionalForwardingRule, ...]:
        return self._conditional_rules

    @property
    def statistics(self) -> tuple[ForwardingStatistics, ...]:
        return self._statistics

    # ─── Shared helpers ───────────────────────────────────────────────────

    def _add(self, attr: str, record: RecordT) -> RecordT:
        with self._lock:
            setattr(self, attr, (*getattr(self, attr), record))
        return record

    def _update(self, attr: str, record_id: str, updates: dict[str, Any]) -> RecordT | None:
        updates = {k: v for k, v in updates.items() if k not in _PROTECTED_FIELDS}
        with self._lock:
            records = getattr(self, attr)
            for index, record in enumerate(records):
                if record.id == record_id:
                    data = {**record.model_dump(), **updates, "updated_at": datetime.now()}
                    updated = type(record).model_validate(data)
                    setattr(self, attr, (*records[:index], updated, *records[index + 1 :]))
                    return updated
        self.logger.debug(f"Ignoring update of unknown forwarding {record_id}")
        return None

    def _delete(self, attr: str, record_id: str) -> bool:
        with self._lock:
            records = getattr(self, attr)
            remaining = tuple(r for r in records if r.id != record_id)
            if len(remaining) == len(records):
                self.logger.debug(f"Ignoring delete of unknown forwarding {record_id}")
                return False
            setattr(self, attr, remaining)
            if self.selected_forwarding_id == record_id:
                self.selected_forwarding_id = None
        self.logger.info(f"Deleted forwarding {record_id}")
        return True

    @staticmethod
    def _get(records: tuple[RecordT, ...], record_id: str) -> RecordT | None:
        return next((r for r in records if r.id == record_id), None)

    # ─── External forwarding ──────────────────────────────────────────────

    def add_external_forwarding(self, forwarding: ExternalForwarding) -> ExternalForwarding:
        return self._add("_external_forwardings", forwarding)

    def update_external_forwarding(self, forwarding_id: str, **fields: Any) -> ExternalForwarding | None:
        return self._update("_external_forwardings", forwarding_id, fields)

    def delete_external_forwarding(self, forwarding_id: str) -> bool:
        return self._delete("_external_forwardings", forwarding_id)

    def get_external_forwarding(self, forwarding_id: str) -> ExternalForwarding | None:
        return self._get(self._external_forwardings, forwarding_id)

    def get_external_forwardings_by_source(self, source_email: str) -> list[ExternalForwarding]:
        return [f for f in self._external_forwardings if f.source_email == source_email]

    # ─── Account forwarding ───────────────────────────────────────────────

    def add_account_forwarding(self, forwarding: AccountForwarding) -> AccountForwarding:
        return self._add("_account_forwardings", forwarding)

    def update_account_forwarding(self, forwarding_id: str, **fields: Any) -> AccountForwarding | None:
        return self._update("_account_forwardings", forwarding_id, fields)

    def delete_account_forwarding(self, forwarding_id: str) -> bool:
        return self._delete("_account_forwardings", forwarding_id)

    def get_account_forwarding(self, forwarding_id: str) -> AccountForwarding | None:
        return self._get(self._account_forwardings, forwarding_id)

    def get_account_forwardings_by_source(self, source_email: str) -> list[AccountForwarding]:
        return [f for f in self._account_forwardings if f.source_email == source_email]

    # ─── Conditional rules ────────────────────────────────────────────────

    def add_conditional_rule(self, rule: ConditionalForwardingRule) -> ConditionalForwardingRule:
        """Add a rule; rules without a priority sort after existing ones."""
        with self._lock:
            if rule.priority is None:
                rule = rule.model_copy(update={"priority": len(self._conditional_rules)})
            self._conditional_rules = (*self._conditional_rules, rule)
        self.logger.info(f"Added forwarding rule '{rule.name}' ({rule.id})")
        return rule

    def update_conditional_rule(self, rule_id: str, **fields: Any) -> ConditionalForwardingRule | None:
        return self._update("_conditional_rules", rule_id, fields)

    def delete_conditional_rule(self, rule_id: str) -> bool:
        return self._delete("_conditional_rules", rule_id)

    def get_conditional_rule(self, rule_id: str) -> ConditionalForwardingRule | None:
        return self._get(self._conditional_rules, rule_id)

    def get_conditional_rules_by_source(self, source_email: str) -> list[ConditionalForwardingRule]:
        return [r for r in self._conditional_rules if r.source_email == source_email]

    def evaluate(
        self, email: "EmailMessage", source_email: str | None = None
    ) -> list[ForwardingMatch]:
        """
        Find the conditional rules that apply to an email.

        Every matching rule applies, in priority order, unless a matched
        rule sets ``stop_processing``.

        Args:
            email: The email to check.
            source_email: Only consider rules for this mailbox.

        Returns:
            Matches in the order they should be applied.
        """
        rules = [
            r
            for r in self._conditional_rules
            if source_email is None or r.source_email == source_email
        ]
        rules.sort(key=lambda r: r.priority if r.priority is not None else len(rules))

        matches = []
        for rule in rules:
            if not rule.matches(email):
                continue
            matches.append(ForwardingMatch(rule=rule, intents=plan_forwarding(rule)))
            if rule.stop_processing:
                break
        return matches

    # ─── Statistics ───────────────────────────────────────────────────────

    def _forwarding_type(self, forwarding_id: str) -> ForwardingType:
        if self.get_external_forwarding(forwarding_id):
            return ForwardingType.EXTERNAL
        if self.get_account_forwarding(forwarding_id):
            return ForwardingType.ACCOUNT
        return ForwardingType.CONDITIONAL

    def _record(self, forwarding_id: str, **changes: Any) -> ForwardingStatistics:
        """Apply changes to a statistics record, creating it first if needed."""
        with self._lock:
            current = self.get_statistics(forwarding_id) or ForwardingStatistics(
                forwarding_id=forwarding_id,
                forwarding_type=self._forwarding_type(forwarding_id),
            )
            updated = current.model_copy(
                update={name: change(current) for name, change in changes.items()}
            )
            self._statistics = (
                *(s for s in self._statistics if s.forwarding_id != forwarding_id),
                updated,
            )
            return updated

    def record_success(self, forwarding_id: str) -> ForwardingStatistics:
        """Count one successfully forwarded email."""
        return self._record(
            forwarding_id,
            emails_forwarded=lambda s: s.emails_forwarded + 1,
            last_forwarded_at=lambda s: datetime.now(),
        )

    def record_failure(self, forwarding_id: str, reason: str) -> ForwardingStatistics:
        """Count one failed forward and remember why."""
        stats = self._record(
            forwarding_id,
            failure_count=lambda s: s.failure_count + 1,
            last_failure_at=lambda s: datetime.now(),
            last_failure_reason=lambda s: reason,
        )
        self.logger.warning(f"Forwarding {forwarding_id} failed: {reason}")
        return stats

    def get_statistics(self, forwarding_id: str) -> ForwardingStatistics | None:
        return next((s for s in self._statistics if s.forwarding_id == forwarding_id), None)

    # ─── Persistence ──────────────────────────────────────────────────────

    def to_document(self) -> ForwardingDocument:
        with self._lock:
            return ForwardingDocument(
                external_forwardings=list(self._external_forwardings),
                account_forwardings=list(self._account_forwardings),
                conditional_rules=list(self._conditional_rules),
                statistics=list(self._statistics),
            )

    def restore(self, document: ForwardingDocument) -> None:
        if document.version > FORWARDING_VERSION:
            raise RuleSetLoadError(
                f"Forwarding document version {document.version} is newer than "
                f"supported version {FORWARDING_VERSION}"
            )
        with self._lock:
            self._external_forwardings = tuple(document.external_forwardings)
            self._account_forwardings = tuple(document.account_forwardings)
            self._conditional_rules = tuple(document.conditional_rules)
            self._statistics = tuple(document.statistics)

    def load(self) -> bool:
        """Restore state from the injected store. Returns True if found."""
        if self.store is None:
            return False
        document = self.store.load()
        if document is None:
            return False
        self.restore(document)
        return True

    def save(self) -> bool:
        """Snapshot state to the injected store. Returns True if written."""
        if self.store is None:
            return False
        self.store.save(self.to_document())
        return True
