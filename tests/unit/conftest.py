"""Shared fixtures for unit tests."""

from datetime import UTC, date, datetime, timedelta
from unittest.mock import AsyncMock

import pytest

from domain.entities.todo import Todo
from domain.entities.view import ViewWindow
from domain.services.local_store import LocalStore
from domain.services.mutation_tracker import MutationTracker
from domain.services.todo_sync_service import TodoSyncService

DAY = date(2024, 6, 1)


class FakeTodoRepository:
    """AsyncMock for every ITodoRepository method."""

    def __init__(self) -> None:
        self.get_for_date = AsyncMock(return_value=[])
        self.get_for_range = AsyncMock(return_value=[])
        self.create = AsyncMock()
        self.update_text = AsyncMock()
        self.update_position = AsyncMock()
        self.update_assigned_date = AsyncMock()
        self.complete = AsyncMock()
        self.uncomplete = AsyncMock()
        self.delete = AsyncMock(return_value=None)
        self.complete_virtual = AsyncMock()
        self.update_virtual_text = AsyncMock()
        self.update_virtual_position = AsyncMock()
        self.update_virtual_assigned_date = AsyncMock()
        self.delete_virtual = AsyncMock(return_value=None)

    def write_calls(self) -> int:
        """Number of write requests issued."""
        writes = [
            self.create,
            self.update_text,
            self.update_position,
            self.update_assigned_date,
            self.complete,
            self.uncomplete,
            self.delete,
            self.complete_virtual,
            self.update_virtual_text,
            self.update_virtual_position,
            self.update_virtual_assigned_date,
            self.delete_virtual,
        ]
        return sum(mock.await_count for mock in writes)


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime | None = None) -> None:
        self.current = start or datetime(2024, 6, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.current

    def advance(self, seconds: float = 1.0) -> datetime:
        self.current += timedelta(seconds=seconds)
        return self.current


def make_todo(
    id: int | None,
    position: int,
    text: str | None = None,
    day: date = DAY,
    **kwargs: object,
) -> Todo:
    """Build a todo with sensible defaults."""
    return Todo(
        id=id,
        text=text or f"Task {id if id is not None else position}",
        assigned_date=day,
        position=position,
        **kwargs,  # type: ignore[arg-type]
    )


def assert_well_ordered(bucket: tuple[Todo, ...]) -> None:
    """Positions are 1..N and incomplete items precede completed ones."""
    assert [t.position for t in bucket] == list(range(1, len(bucket) + 1))
    flags = [t.is_completed for t in bucket]
    assert flags == sorted(flags)


@pytest.fixture
def day() -> date:
    return DAY


@pytest.fixture
def repo() -> FakeTodoRepository:
    """Create a fresh FakeTodoRepository."""
    return FakeTodoRepository()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def tracker(clock: FakeClock) -> MutationTracker:
    return MutationTracker(clock=clock)


@pytest.fixture
def store() -> LocalStore:
    return LocalStore()


@pytest.fixture
def service(
    repo: FakeTodoRepository, store: LocalStore, tracker: MutationTracker
) -> TodoSyncService:
    """Create service with fake repository and a fixed clock."""
    return TodoSyncService(repo, store=store, tracker=tracker, view=ViewWindow(DAY))
