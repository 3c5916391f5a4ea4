"""Unit tests for the Todo entity and identity rules."""

from datetime import UTC, date, datetime

import pytest

from domain.entities.todo import RealId, Todo, VirtualKey, is_same_entry, same_identity

DAY = date(2024, 6, 5)


def virtual(recurring_todo_id: int = 7, day: date = DAY) -> Todo:
    return Todo(
        text="Water plants",
        assigned_date=day,
        position=1,
        recurring_todo_id=recurring_todo_id,
        is_virtual=True,
    )


class TestIdentity:
    def test_real_row_uses_id(self):
        todo = Todo(id=3, text="Pay rent", assigned_date=DAY, position=1)
        assert todo.identity == RealId(3)

    def test_virtual_row_uses_recurrence_key(self):
        assert virtual().identity == VirtualKey(7, DAY)

    def test_instance_date_defaults_to_assigned_date(self):
        assert virtual().instance_date == DAY

    def test_row_without_id_or_recurrence_has_no_identity(self):
        todo = Todo(text="Orphan", assigned_date=DAY, position=1)
        with pytest.raises(ValueError):
            _ = todo.identity

    def test_virtual_key_still_matches_materialized_row(self):
        materialized = Todo(
            id=42, text="Water plants", assigned_date=DAY, position=1, recurring_todo_id=7
        )
        assert materialized.matches(VirtualKey(7, DAY))
        assert materialized.matches(RealId(42))
        assert not materialized.matches(VirtualKey(7, date(2024, 6, 6)))

    def test_identities_render_readably(self):
        assert str(RealId(3)) == "todo#3"
        assert str(VirtualKey(7, DAY)) == "recurring#7@2024-06-05"


class TestEquality:
    def test_completed_at_is_ignored(self):
        a = Todo(id=1, text="A", assigned_date=DAY, position=1, is_completed=True)
        b = Todo(
            id=1,
            text="A",
            assigned_date=DAY,
            position=1,
            is_completed=True,
            completed_at=datetime(2024, 6, 5, 9, 30, tzinfo=UTC),
        )
        assert a == b

    def test_same_identity_compares_ids(self):
        a = Todo(id=1, text="A", assigned_date=DAY, position=1)
        b = Todo(id=1, text="B", assigned_date=DAY, position=2)
        assert same_identity(a, b)

    def test_same_identity_compares_virtual_keys(self):
        assert same_identity(virtual(), virtual())
        assert not same_identity(virtual(7), virtual(8))

    def test_real_and_virtual_are_distinct_identities(self):
        real = Todo(id=1, text="A", assigned_date=DAY, position=1, recurring_todo_id=7)
        assert not same_identity(real, virtual())

    def test_materialized_row_is_same_entry_as_virtual(self):
        materialized = Todo(
            id=42, text="Water plants", assigned_date=DAY, position=1, recurring_todo_id=7
        )
        assert is_same_entry(virtual(), materialized)


class TestTransitions:
    def test_complete_stamps_time(self):
        at = datetime(2024, 6, 5, 8, 0, tzinfo=UTC)
        todo = Todo(id=1, text="A", assigned_date=DAY, position=1).complete(at)
        assert todo.is_completed
        assert todo.completed_at == at

    def test_uncomplete_clears_stamp(self):
        todo = Todo(
            id=1,
            text="A",
            assigned_date=DAY,
            position=1,
            is_completed=True,
            completed_at=datetime(2024, 6, 5, 8, 0, tzinfo=UTC),
        ).uncomplete()
        assert not todo.is_completed
        assert todo.completed_at is None

    def test_with_same_position_returns_self(self):
        todo = Todo(id=1, text="A", assigned_date=DAY, position=2)
        assert todo.with_position(2) is todo
        assert todo.with_position(3).position == 3
