"""Tests for the rule set manager."""

import random
import threading

import pytest
from pydantic import ValidationError

from inbox_rules.errors import RuleSetLoadError
from inbox_rules.rules.conditions import ConditionField, ConditionOperator
from inbox_rules.rules.filters import FilterActionType, FilterStats
from inbox_rules.rules.manager import RuleSetDocument, RuleSetManager
from inbox_rules.storage.base import MemoryDocumentStore


def assert_stats_consistent(manager: RuleSetManager) -> None:
    assert manager.stats.total_rules == len(manager.filters)
    assert manager.stats.enabled_rules == sum(1 for f in manager.filters if f.enabled)


class TestCreate:
    """Tests for creating filters."""

    def test_create_defaults(self, manager: RuleSetManager) -> None:
        """New filters are enabled, empty and timestamped."""
        f = manager.create("Newsletters", "Archive newsletters")

        assert f.name == "Newsletters"
        assert f.description == "Archive newsletters"
        assert f.enabled is True
        assert f.priority == 0
        assert f.conditions == () and f.actions == ()
        assert f.created_at == f.updated_at
        assert manager.stats == FilterStats(total_rules=1, enabled_rules=1)

    def test_new_filters_sort_last(self, manager: RuleSetManager) -> None:
        """Priority of a new filter is the current collection length."""
        filters = [manager.create(f"F{i}") for i in range(3)]
        assert [f.priority for f in filters] == [0, 1, 2]
        assert manager.filters == tuple(filters)

    def test_ids_are_unique(self, manager: RuleSetManager) -> None:
        """Same name still yields distinct ids."""
        ids = {manager.create("Same").id for _ in range(10)}
        assert len(ids) == 10


class TestUpdate:
    """Tests for merging fields into a filter."""

    def test_update_merges_fields(self, manager: RuleSetManager) -> None:
        """Given fields change and updated_at moves forward."""
        f = manager.create("Old")
        updated = manager.update(f.id, name="New", match_all=False)

        assert updated.name == "New"
        assert updated.match_all is False
        assert updated.updated_at > f.updated_at
        assert manager.get_by_id(f.id) == updated

    def test_update_unknown_id_is_noop(self, manager: RuleSetManager) -> None:
        """Unknown ids leave the collection untouched."""
        manager.create("Only")
        before = manager.filters
        assert manager.update("filter_missing", name="X") is None
        assert manager.filters == before

    def test_priority_and_id_are_not_editable(self, manager: RuleSetManager) -> None:
        """id, priority and created_at are ignored by update."""
        f = manager.create("Fixed")
        updated = manager.update(f.id, id="other", priority=99, created_at=0)
        assert updated.id == f.id
        assert updated.priority == f.priority
        assert updated.created_at == f.created_at

    def test_update_enabled_keeps_stats(self, manager: RuleSetManager) -> None:
        """Disabling through update is reflected in the stats."""
        f = manager.create("Flip")
        manager.update(f.id, enabled=False)
        assert manager.stats.enabled_rules == 0
        assert_stats_consistent(manager)


class TestDelete:
    """Tests for deleting filters."""

    def test_delete_enabled(self, manager: RuleSetManager) -> None:
        """Deleting an enabled filter lowers both counts."""
        a = manager.create("A")
        manager.create("B")
        assert manager.delete(a.id) is True
        assert manager.stats == FilterStats(total_rules=1, enabled_rules=1)

    def test_delete_disabled(self, manager: RuleSetManager) -> None:
        """Deleting a disabled filter only lowers the total."""
        a = manager.create("A")
        manager.toggle(a.id)
        manager.delete(a.id)
        assert manager.stats == FilterStats(total_rules=0, enabled_rules=0)

    def test_delete_clears_selection(self, manager: RuleSetManager) -> None:
        """Selection is cleared only when the selected filter goes away."""
        a = manager.create("A")
        b = manager.create("B")
        manager.select(a.id)
        manager.delete(b.id)
        assert manager.selected_filter_id == a.id
        manager.delete(a.id)
        assert manager.selected_filter_id is None

    def test_delete_unknown(self, manager: RuleSetManager) -> None:
        """Unknown ids are not an error."""
        manager.create("A")
        assert manager.delete("filter_missing") is False
        assert manager.stats.total_rules == 1


class TestToggle:
    """Tests for enabling and disabling filters."""

    def test_toggle_round_trip(self, manager: RuleSetManager) -> None:
        """Toggling twice restores the filter and the stats."""
        f = manager.create("T")
        off = manager.toggle(f.id)
        assert off.enabled is False
        assert manager.stats.enabled_rules == 0
        assert manager.get_enabled() == []

        on = manager.toggle(f.id)
        assert on.enabled is True
        assert manager.stats.enabled_rules == 1
        assert on.updated_at > off.updated_at

    def test_toggle_unknown(self, manager: RuleSetManager) -> None:
        """Unknown ids return None."""
        assert manager.toggle("filter_missing") is None


class TestDuplicate:
    """Tests for copying filters."""

    def test_duplicate_is_deep_and_reidentified(self, manager: RuleSetManager) -> None:
        """Copy, conditions and actions all get fresh ids."""
        f = manager.create("Invoices")
        manager.add_condition(f.id)
        manager.add_condition(f.id)
        manager.add_action(f.id)
        original = manager.get_by_id(f.id)

        copy = manager.duplicate(f.id)

        assert copy.id != original.id
        assert copy.name != original.name
        assert copy.name == "Invoices (copy)"
        assert copy.priority == 1
        assert copy.created_at > original.created_at
        assert {c.id for c in copy.conditions}.isdisjoint(c.id for c in original.conditions)
        assert {a.id for a in copy.actions}.isdisjoint(a.id for a in original.actions)
        assert [c.value for c in copy.conditions] == [c.value for c in original.conditions]
        assert manager.stats == FilterStats(total_rules=2, enabled_rules=2)

    def test_duplicate_disabled(self, manager: RuleSetManager) -> None:
        """A disabled filter's copy stays disabled."""
        f = manager.create("Off")
        manager.toggle(f.id)
        copy = manager.duplicate(f.id)
        assert copy.enabled is False
        assert manager.stats == FilterStats(total_rules=2, enabled_rules=0)

    def test_copy_edits_do_not_touch_original(self, manager: RuleSetManager) -> None:
        """Editing the copy's condition leaves the original's alone."""
        f = manager.create("Src")
        cond = manager.add_condition(f.id)
        copy = manager.duplicate(f.id)
        manager.update_condition(copy.id, copy.conditions[0].id, value="changed")
        assert manager.get_by_id(f.id).conditions[0] == cond

    def test_duplicate_unknown(self, manager: RuleSetManager) -> None:
        """Unknown ids return None."""
        assert manager.duplicate("filter_missing") is None


class TestConditions:
    """Tests for editing a filter's conditions."""

    def test_add_condition_stub(self, manager: RuleSetManager) -> None:
        """New conditions are subject contains ""."""
        f = manager.create("C")
        condition = manager.add_condition(f.id)

        assert condition.field is ConditionField.SUBJECT
        assert condition.operator is ConditionOperator.CONTAINS
        assert condition.value == ""
        updated = manager.get_by_id(f.id)
        assert updated.conditions == (condition,)
        assert updated.updated_at > f.updated_at

    def test_update_condition(self, manager: RuleSetManager) -> None:
        """Fields are merged and the condition keeps its id."""
        f = manager.create("C")
        condition = manager.add_condition(f.id)
        updated = manager.update_condition(
            f.id, condition.id, field="from", operator="endsWith", value="@bank.com"
        )
        assert updated.id == condition.id
        assert updated.field is ConditionField.FROM
        assert manager.get_by_id(f.id).conditions[0].value == "@bank.com"

    def test_remove_condition(self, manager: RuleSetManager) -> None:
        """Only the named condition is removed."""
        f = manager.create("C")
        first = manager.add_condition(f.id)
        second = manager.add_condition(f.id)
        assert manager.remove_condition(f.id, first.id) is True
        assert manager.get_by_id(f.id).conditions == (second,)

    def test_unknown_references_are_noops(self, manager: RuleSetManager) -> None:
        """Unknown filter or condition ids change nothing."""
        f = manager.create("C")
        manager.add_condition(f.id)
        before = manager.get_by_id(f.id)

        assert manager.add_condition("filter_missing") is None
        assert manager.update_condition(f.id, "cond_missing", value="x") is None
        assert manager.remove_condition(f.id, "cond_missing") is False
        assert manager.get_by_id(f.id) == before


class TestActions:
    """Tests for editing a filter's actions."""

    def test_add_action_stub(self, manager: RuleSetManager) -> None:
        """New actions are markAsRead with no value."""
        f = manager.create("A")
        action = manager.add_action(f.id)
        assert action.type is FilterActionType.MARK_AS_READ
        assert action.value is None
        assert manager.get_by_id(f.id).actions == (action,)

    def test_update_and_remove_action(self, manager: RuleSetManager) -> None:
        """Actions can be retyped and removed once."""
        f = manager.create("A")
        first = manager.add_action(f.id)
        second = manager.add_action(f.id)
        manager.update_action(f.id, first.id, type="moveToMailbox", value="mbx-archive")
        assert manager.get_by_id(f.id).actions[0].type is FilterActionType.MOVE_TO_MAILBOX

        assert manager.remove_action(f.id, first.id) is True
        assert manager.get_by_id(f.id).actions == (second,)
        assert manager.remove_action(f.id, first.id) is False


class TestMoveFilter:
    """Tests for reordering filters."""

    def test_move_reindexes_priorities(self, manager: RuleSetManager) -> None:
        """Priorities follow positions after a move."""
        a, b, c, d = (manager.create(name) for name in "ABCD")
        assert manager.move_filter(2, 0) is True

        assert [f.name for f in manager.filters] == ["C", "A", "B", "D"]
        assert [f.priority for f in manager.filters] == [0, 1, 2, 3]

    def test_move_down(self, manager: RuleSetManager) -> None:
        """Moving to the last index appends."""
        for name in "ABCD":
            manager.create(name)
        manager.move_filter(0, 3)
        assert [f.name for f in manager.filters] == ["B", "C", "D", "A"]
        assert [f.priority for f in manager.filters] == [0, 1, 2, 3]

    def test_move_repairs_priority_gaps(self, manager: RuleSetManager) -> None:
        """Gaps left by delete are closed by the next move."""
        a = manager.create("A")
        manager.create("B")
        manager.delete(a.id)
        manager.create("C")
        assert [f.priority for f in manager.filters] == [1, 1]

        manager.move_filter(0, 0)
        assert [f.priority for f in manager.filters] == [0, 1]

    def test_out_of_range_is_noop(self, manager: RuleSetManager) -> None:
        """A missing source index changes nothing."""
        manager.create("A")
        before = manager.filters
        assert manager.move_filter(5, 0) is False
        assert manager.filters == before

    def test_target_is_clamped(self, manager: RuleSetManager) -> None:
        """A target past the end means last."""
        for name in "ABC":
            manager.create(name)
        manager.move_filter(0, 10)
        assert [f.name for f in manager.filters] == ["B", "C", "A"]


class TestQueries:
    """Tests for read access to the collection."""

    def test_get_enabled_keeps_order(self, manager: RuleSetManager) -> None:
        """Enabled filters come back in display order."""
        a, b, c = (manager.create(name) for name in "ABC")
        manager.toggle(b.id)
        assert [f.name for f in manager.get_enabled()] == ["A", "C"]

    def test_snapshots_are_stable(self, manager: RuleSetManager) -> None:
        """A snapshot taken earlier does not see later mutations."""
        manager.create("A")
        snapshot = manager.filters
        manager.create("B")
        assert len(snapshot) == 1
        assert len(manager.filters) == 2

    def test_snapshot_contents_are_read_only(self, manager: RuleSetManager) -> None:
        """Readers cannot change conditions or actions behind the manager's back."""
        f = manager.create("A")
        manager.add_condition(f.id)
        manager.add_action(f.id)
        held = manager.filters[0]

        with pytest.raises(AttributeError):
            held.conditions.clear()
        with pytest.raises(AttributeError):
            held.actions.append(None)
        with pytest.raises(ValidationError):
            held.conditions[0].value = "changed"

        current = manager.get_by_id(f.id)
        assert len(current.conditions) == 1
        assert len(current.actions) == 1
        assert current.updated_at == held.updated_at


class TestStatsInvariant:
    """Model-based check: random operation sequences keep stats consistent."""

    @pytest.mark.parametrize("seed", range(25))
    def test_random_sequences(self, seed: int, manager: RuleSetManager) -> None:
        """Counts match a dict model after every operation."""
        rng = random.Random(seed)
        model: dict[str, bool] = {}

        for _ in range(60):
            op = rng.choice(["create", "delete", "toggle", "duplicate", "update", "move"])
            ids = [f.id for f in manager.filters]
            target = rng.choice(ids + ["filter_missing"]) if ids else "filter_missing"

            if op == "create":
                model[manager.create("f").id] = True
            elif op == "delete":
                manager.delete(target)
                model.pop(target, None)
            elif op == "toggle":
                if manager.toggle(target):
                    model[target] = not model[target]
            elif op == "duplicate":
                copy = manager.duplicate(target)
                if copy:
                    model[copy.id] = copy.enabled
            elif op == "update":
                enabled = rng.random() < 0.5
                if manager.update(target, enabled=enabled):
                    model[target] = enabled
            else:
                manager.move_filter(rng.randint(0, 5), rng.randint(0, 5))

            assert_stats_consistent(manager)
            assert manager.stats.total_rules == len(model)
            assert manager.stats.enabled_rules == sum(model.values())

    def test_concurrent_mutations(self, manager: RuleSetManager) -> None:
        """Parallel writers never lose a count."""

        def worker() -> None:
            for _ in range(50):
                f = manager.create("t")
                manager.toggle(f.id)
                manager.duplicate(f.id)

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert manager.stats == FilterStats(total_rules=400, enabled_rules=0)


class TestApplicationStats:
    """Tests for application counters and listeners."""

    def test_record_applied(self, manager: RuleSetManager) -> None:
        """Each application bumps the count and the timestamp."""
        manager.create("A")
        manager.record_applied(1234)
        stats = manager.record_applied(5678)
        assert stats.applied_count == 2
        assert stats.last_applied == 5678
        assert stats.total_rules == 1

    def test_update_stats_cannot_touch_counts(self, manager: RuleSetManager) -> None:
        """Rule counts always follow the collection."""
        manager.create("A")
        stats = manager.update_stats(total_rules=50, enabled_rules=50, applied_count=7)
        assert stats == FilterStats(total_rules=1, enabled_rules=1, applied_count=7)

    def test_listeners_see_committed_state(self, manager: RuleSetManager) -> None:
        """Listeners run after the new state is in place."""
        seen = []
        manager.subscribe(lambda m: seen.append(m.stats.total_rules))
        manager.create("A")
        manager.create("B")
        assert seen == [1, 2]


class TestPersistence:
    """Tests for saving and restoring rule sets."""

    def test_save_and_load(self, clock) -> None:
        """A saved rule set comes back whole."""
        store = MemoryDocumentStore()
        manager = RuleSetManager(store=store, clock=clock)
        f = manager.create("Persisted")
        manager.add_condition(f.id)
        manager.select(f.id)
        manager.record_applied(42)
        assert manager.save() is True

        restored = RuleSetManager(store=store, clock=clock)
        assert restored.load() is True
        assert restored.filters == manager.filters
        assert restored.stats == manager.stats
        assert restored.selected_filter_id == f.id

    def test_without_store(self, manager: RuleSetManager) -> None:
        """Without a store nothing is loaded or saved."""
        assert manager.load() is False
        assert manager.save() is False

    def test_empty_store(self) -> None:
        """An empty store reports nothing loaded."""
        assert RuleSetManager(store=MemoryDocumentStore()).load() is False

    def test_restore_recomputes_counts(self) -> None:
        """Saved rule counts are ignored in favour of the filters."""
        document = RuleSetDocument(
            filters=[], stats=FilterStats(total_rules=9, enabled_rules=9, applied_count=3)
        )
        manager = RuleSetManager.from_document(document)
        assert manager.stats == FilterStats(applied_count=3)

    def test_newer_document_version_is_rejected(self) -> None:
        """Documents from a newer format fail to load."""
        with pytest.raises(RuleSetLoadError):
            RuleSetManager.from_document(RuleSetDocument(version=99))
