"""Rule set manager: owns the ordered filter collection and its statistics."""

import logging
import threading
import time
from typing import Any, Callable, Iterable

from pydantic import BaseModel, Field

from inbox_rules.errors import RuleSetLoadError
from inbox_rules.rules.conditions import FilterCondition, generate_id
from inbox_rules.rules.filters import EmailFilter, FilterAction, FilterStats
from inbox_rules.storage.base import DocumentStore

# Bump when the saved shape of a rule set changes
RULE_SET_VERSION = 1

COPY_SUFFIX = " (copy)"

# Never settable through update()
_PROTECTED_FILTER_FIELDS = frozenset({"id", "priority", "created_at", "updated_at"})
_PATCHABLE_STATS_FIELDS = frozenset({"last_applied", "applied_count"})


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return time.time_ns() // 1_000_000


class RuleSetDocument(BaseModel):
    """Snapshot of a rule set manager's entire state."""

    version: int = Field(default=RULE_SET_VERSION, description="Document format version")
    filters: list[EmailFilter] = Field(default_factory=list)
    stats: FilterStats = Field(default_factory=FilterStats)
    selected_filter_id: str | None = None


def compute_stats(
    filters: Iterable[EmailFilter], previous: FilterStats | None = None
) -> FilterStats:
    """Derive rule counts from a collection, keeping application counters."""
    filters = list(filters)
    previous = previous or FilterStats()
    return previous.model_copy(
        update={
            "total_rules": len(filters),
            "enabled_rules": sum(1 for f in filters if f.enabled),
        }
    )


class RuleSetManager:
    """
    Owns one account's ordered filter collection.

    Mutations are serialized by a lock and swap in a new immutable tuple
    of filters together with freshly derived stats, so readers always see
    a consistent snapshot without locking.
    """

    def __init__(
        self,
        filters: Iterable[EmailFilter] | None = None,
        *,
        stats: FilterStats | None = None,
        store: DocumentStore[RuleSetDocument] | None = None,
        clock: Callable[[], int] | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        """
        Initialize the manager.

        Args:
            filters: Initial filters, in display order.
            stats: Initial application counters.
            store: Load/save collaborator for the rule set document.
            clock: Millisecond clock used for timestamps.
            logger: Logger to report mutations to.
        """
        self._lock = threading.RLock()
        self._filters: tuple[EmailFilter, ...] = tuple(filters or ())
        self._stats = compute_stats(self._filters, stats)
        self._selected_filter_id: str | None = None
        self._listeners: list[Callable[["RuleSetManager"], None]] = []
        self.store = store
        self.clock = clock or now_ms
        self.logger = logger or logging.getLogger(__name__)

    # ─── Snapshots ────────────────────────────────────────────────────────

    @property
    def filters(self) -> tuple[EmailFilter, ...]:
        """Current filters in display order."""
        return self._filters

    @property
    def stats(self) -> FilterStats:
        """Current aggregate statistics."""
        return self._stats

    @property
    def selected_filter_id(self) -> str | None:
        return self._selected_filter_id

    def get_by_id(self, filter_id: str) -> EmailFilter | None:
        """Look up a filter by id."""
        return next((f for f in self._filters if f.id == filter_id), None)

    def get_enabled(self) -> list[EmailFilter]:
        """Enabled filters in display order."""
        return [f for f in self._filters if f.enabled]

    def subscribe(self, listener: Callable[["RuleSetManager"], None]) -> None:
        """Register a callback run after every committed mutation."""
        self._listeners.append(listener)

    # ─── Internals ────────────────────────────────────────────────────────

    def _now(self, previous: int = 0) -> int:
        return max(self.clock(), previous)

    def _commit(
        self,
        filters: Iterable[EmailFilter],
        stats: FilterStats | None = None,
    ) -> None:
        """Swap in a new collection and its derived stats. Caller holds the lock."""
        self._filters = tuple(filters)
        self._stats = compute_stats(self._filters, stats or self._stats)
        for listener in self._listeners:
            listener(self)

    def _index_of(self, filter_id: str) -> int | None:
        for index, f in enumerate(self._filters):
            if f.id == filter_id:
                return index
        return None

    def _replace(
        self, filter_id: str, change: Callable[[EmailFilter], EmailFilter | None]
    ) -> EmailFilter | None:
        """Apply ``change`` to one filter and commit. Unknown ids are a no-op."""
        with self._lock:
            index = self._index_of(filter_id)
            if index is None:
                self.logger.debug(f"Ignoring change to unknown filter {filter_id}")
                return None

            updated = change(self._filters[index])
            if updated is None:
                return None

            filters = list(self._filters)
            filters[index] = updated
            self._commit(filters)
            return updated

    def _touch(self, f: EmailFilter, **changes: Any) -> EmailFilter:
        return f.model_copy(update={**changes, "updated_at": self._now(f.updated_at)})

    # ─── Filter CRUD ──────────────────────────────────────────────────────

    def create(self, name: str, description: str | None = None) -> EmailFilter:
        """
        Create an enabled filter with no conditions or actions.

        Args:
            name: Display name.
            description: Optional description.

        Returns:
            The new filter, appended after all existing ones.
        """
        with self._lock:
            timestamp = self._now()
            new_filter = EmailFilter(
                name=name,
                description=description,
                enabled=True,
                priority=len(self._filters),
                created_at=timestamp,
                updated_at=timestamp,
            )
            self._commit([*self._filters, new_filter])

        self.logger.info(f"Created filter '{name}' ({new_filter.id})")
        return new_filter

    def update(self, filter_id: str, **fields: Any) -> EmailFilter | None:
        """
        Merge fields into a filter.

        ``id``, ``priority`` and the timestamps cannot be set this way;
        priority follows display order (see ``move_filter``).

        Returns:
            The updated filter, or None if the id is unknown.
        """
        updates = {k: v for k, v in fields.items() if k not in _PROTECTED_FILTER_FIELDS}

        def change(f: EmailFilter) -> EmailFilter:
            data = f.model_dump()
            data.update(updates)
            data["updated_at"] = self._now(f.updated_at)
            return EmailFilter.model_validate(data)

        return self._replace(filter_id, change)

    def delete(self, filter_id: str) -> bool:
        """
        Remove a filter.

        Returns:
            True if a filter was removed.
        """
        with self._lock:
            index = self._index_of(filter_id)
            if index is None:
                self.logger.debug(f"Ignoring delete of unknown filter {filter_id}")
                return False

            removed = self._filters[index]
            if self._selected_filter_id == filter_id:
                self._selected_filter_id = None
            self._commit(f for f in self._filters if f.id != filter_id)

        self.logger.info(f"Deleted filter '{removed.name}' ({filter_id})")
        return True

    def toggle(self, filter_id: str) -> EmailFilter | None:
        """Flip a filter between enabled and disabled."""
        return self._replace(filter_id, lambda f: self._touch(f, enabled=not f.enabled))

    def duplicate(self, filter_id: str) -> EmailFilter | None:
        """
        Copy a filter, giving the copy and all its conditions and actions
        fresh ids.

        Returns:
            The copy (appended last), or None if the id is unknown.
        """
        with self._lock:
            original = self.get_by_id(filter_id)
            if original is None:
                return None

            timestamp = self._now()
            copy = original.model_copy(
                update={
                    "id": generate_id("filter"),
                    "name": f"{original.name}{COPY_SUFFIX}",
                    "priority": len(self._filters),
                    "created_at": timestamp,
                    "updated_at": timestamp,
                    "conditions": tuple(
                        c.model_copy(update={"id": generate_id("cond")})
                        for c in original.conditions
                    ),
                    "actions": tuple(
                        a.model_copy(update={"id": generate_id("action")})
                        for a in original.actions
                    ),
                }
            )
            self._commit([*self._filters, copy])

        self.logger.info(f"Duplicated filter '{original.name}' as {copy.id}")
        return copy

    # ─── Conditions ───────────────────────────────────────────────────────

    def add_condition(self, filter_id: str) -> FilterCondition | None:
        """Append an editable stub condition (subject contains "")."""
        condition = FilterCondition()
        updated = self._replace(
            filter_id,
            lambda f: self._touch(f, conditions=(*f.conditions, condition)),
        )
        return condition if updated else None

    def update_condition(
        self, filter_id: str, condition_id: str, **fields: Any
    ) -> FilterCondition | None:
        """Merge fields into one of a filter's conditions."""
        fields.pop("id", None)
        result: list[FilterCondition] = []

        def change(f: EmailFilter) -> EmailFilter | None:
            conditions = []
            for c in f.conditions:
                if c.id == condition_id:
                    c = FilterCondition.model_validate({**c.model_dump(), **fields})
                    result.append(c)
                conditions.append(c)
            if not result:
                return None
            return self._touch(f, conditions=tuple(conditions))

        self._replace(filter_id, change)
        return result[0] if result else None

    def remove_condition(self, filter_id: str, condition_id: str) -> bool:
        """Remove one of a filter's conditions."""

        def change(f: EmailFilter) -> EmailFilter | None:
            conditions = tuple(c for c in f.conditions if c.id != condition_id)
            if len(conditions) == len(f.conditions):
                return None
            return self._touch(f, conditions=conditions)

        return self._replace(filter_id, change) is not None

    # ─── Actions ──────────────────────────────────────────────────────────

    def add_action(self, filter_id: str) -> FilterAction | None:
        """Append a stub action (mark as read)."""
        action = FilterAction()
        updated = self._replace(
            filter_id,
            lambda f: self._touch(f, actions=(*f.actions, action)),
        )
        return action if updated else None

    def update_action(
        self, filter_id: str, action_id: str, **fields: Any
    ) -> FilterAction | None:
        """Merge fields into one of a filter's actions."""
        fields.pop("id", None)
        result: list[FilterAction] = []

        def change(f: EmailFilter) -> EmailFilter | None:
            actions = []
            for a in f.actions:
                if a.id == action_id:
                    a = FilterAction.model_validate({**a.model_dump(), **fields})
                    result.append(a)
                actions.append(a)
            if not result:
                return None
            return self._touch(f, actions=tuple(actions))

        self._replace(filter_id, change)
        return result[0] if result else None

    def remove_action(self, filter_id: str, action_id: str) -> bool:
        """Remove one of a filter's actions."""

        def change(f: EmailFilter) -> EmailFilter | None:
            actions = tuple(a for a in f.actions if a.id != action_id)
            if len(actions) == len(f.actions):
                return None
            return self._touch(f, actions=actions)

        return self._replace(filter_id, change) is not None

    # ─── Ordering & selection ─────────────────────────────────────────────

    def move_filter(self, from_index: int, to_index: int) -> bool:
        """
        Move one filter to a new position and renumber all priorities.

        Args:
            from_index: Current position of the filter.
            to_index: Target position (clamped to the collection).

        Returns:
            True if the collection was reordered.
        """
        with self._lock:
            filters = list(self._filters)
            if not 0 <= from_index < len(filters):
                self.logger.debug(f"Ignoring move from out-of-range index {from_index}")
                return False

            moved = filters.pop(from_index)
            filters.insert(max(0, min(to_index, len(filters))), moved)
            self._commit(
                f if f.priority == index else f.model_copy(update={"priority": index})
                for index, f in enumerate(filters)
            )
        return True

    def select(self, filter_id: str | None) -> None:
        """Point the selection at a filter (or clear it)."""
        with self._lock:
            self._selected_filter_id = filter_id

    # ─── Statistics ───────────────────────────────────────────────────────

    def update_stats(self, **fields: Any) -> FilterStats:
        """Patch application counters. Rule counts always follow the collection."""
        updates = {k: v for k, v in fields.items() if k in _PATCHABLE_STATS_FIELDS}
        with self._lock:
            stats = FilterStats.model_validate({**self._stats.model_dump(), **updates})
            self._commit(self._filters, stats)
            return self._stats

    def record_applied(self, timestamp: int | None = None) -> FilterStats:
        """Count one application of a filter's actions."""
        with self._lock:
            return self.update_stats(
                applied_count=self._stats.applied_count + 1,
                last_applied=timestamp if timestamp is not None else self._now(),
            )

    # ─── Persistence ──────────────────────────────────────────────────────

    def to_document(self) -> RuleSetDocument:
        """Snapshot the whole rule set as a versioned document."""
        with self._lock:
            return RuleSetDocument(
                filters=list(self._filters),
                stats=self._stats,
                selected_filter_id=self._selected_filter_id,
            )

    def restore(self, document: RuleSetDocument) -> None:
        """
        Replace the manager's state with a saved document.

        Raises:
            RuleSetLoadError: If the document comes from a newer format.
        """
        if document.version > RULE_SET_VERSION:
            raise RuleSetLoadError(
                f"Rule set document version {document.version} is newer than "
                f"supported version {RULE_SET_VERSION}"
            )
        with self._lock:
            self._selected_filter_id = document.selected_filter_id
            self._commit(document.filters, document.stats)

    @classmethod
    def from_document(cls, document: RuleSetDocument, **kwargs: Any) -> "RuleSetManager":
        """Build a manager from a saved document."""
        manager = cls(**kwargs)
        manager.restore(document)
        return manager

    def load(self) -> bool:
        """
        Restore state from the injected store.

        Returns:
            True if a document was found and restored.

        Raises:
            RuleSetLoadError: If the store cannot provide a valid document.
        """
        if self.store is None:
            return False

        document = self.store.load()
        if document is None:
            return False

        self.restore(document)
        self.logger.info(f"Loaded {len(self._filters)} filters")
        return True

    def save(self) -> bool:
        """
        Snapshot state to the injected store.

        Returns:
            True if a snapshot was written.

        Raises:
            RuleSetSaveError: If the store cannot write the snapshot.
        """
        if self.store is None:
            return False

        self.store.save(self.to_document())
        self.logger.debug(f"Saved {len(self._filters)} filters")
        return True
