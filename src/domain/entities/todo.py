"""Todo domain entity and identity rules."""

from dataclasses import dataclass, field, replace
from datetime import date, datetime


@dataclass(frozen=True, slots=True)
class RealId:
    """Identity of a persisted row."""

    id: int

    def __str__(self) -> str:
        return f"todo#{self.id}"


@dataclass(frozen=True, slots=True)
class VirtualKey:
    """Identity of a recurrence occurrence that has no row of its own yet."""

    recurring_todo_id: int
    instance_date: date

    def __str__(self) -> str:
        return f"recurring#{self.recurring_todo_id}@{self.instance_date.isoformat()}"


TodoIdentity = RealId | VirtualKey


@dataclass(frozen=True, slots=True)
class Todo:
    """Domain entity for a task assigned to a calendar date.

    Value equality ignores ``completed_at``; client and server clocks stamp
    completions differently.
    """

    text: str
    assigned_date: date
    position: int
    id: int | None = None
    instance_date: date | None = None
    recurring_todo_id: int | None = None
    is_completed: bool = False
    completed_at: datetime | None = field(default=None, compare=False)
    is_rolled_over: bool = False
    is_virtual: bool = False

    def __post_init__(self) -> None:
        """Default the occurrence date to the bucket date."""
        if self.instance_date is None:
            object.__setattr__(self, "instance_date", self.assigned_date)

    @property
    def identity(self) -> TodoIdentity:
        """Real identity when persisted, virtual key otherwise."""
        if self.id is not None:
            return RealId(self.id)
        if self.recurring_todo_id is None or self.instance_date is None:
            raise ValueError("Todo without id must reference a recurrence")
        return VirtualKey(self.recurring_todo_id, self.instance_date)

    @property
    def virtual_key(self) -> VirtualKey | None:
        """Recurrence key, present for every occurrence virtual or materialized."""
        if self.recurring_todo_id is None or self.instance_date is None:
            return None
        return VirtualKey(self.recurring_todo_id, self.instance_date)

    def matches(self, identity: TodoIdentity) -> bool:
        """Check whether this todo is addressed by ``identity``.

        A ``VirtualKey`` keeps resolving after materialization, so references
        taken while the item was virtual are not orphaned.
        """
        if isinstance(identity, RealId):
            return self.id == identity.id
        return (
            self.recurring_todo_id == identity.recurring_todo_id
            and self.instance_date == identity.instance_date
        )

    def complete(self, completed_at: datetime) -> "Todo":
        """Return a completed copy."""
        return replace(self, is_completed=True, completed_at=completed_at)

    def uncomplete(self) -> "Todo":
        """Return an incomplete copy."""
        return replace(self, is_completed=False, completed_at=None)

    def with_position(self, position: int) -> "Todo":
        if self.position == position:
            return self
        return replace(self, position=position)


def same_identity(a: Todo, b: Todo) -> bool:
    """Check whether two values denote the same logical item."""
    if a.id is not None and b.id is not None:
        return a.id == b.id
    if a.is_virtual and b.is_virtual:
        return (
            a.recurring_todo_id is not None
            and a.recurring_todo_id == b.recurring_todo_id
            and a.instance_date == b.instance_date
        )
    return False


def is_same_entry(existing: Todo, incoming: Todo) -> bool:
    """Match rule used when merging a server row into local state.

    Ids are compared first when both are present; otherwise the recurrence
    key is used, which is how a materialized row replaces its virtual entry.
    """
    if existing.id is not None and incoming.id is not None:
        return existing.id == incoming.id
    return (
        existing.recurring_todo_id is not None
        and existing.recurring_todo_id == incoming.recurring_todo_id
        and existing.instance_date == incoming.instance_date
    )
