"""Remote Todo Service protocol."""

from datetime import date
from typing import Protocol

from domain.entities.todo import Todo


class ITodoRepository(Protocol):
    """Request/response contract of the authoritative Todo Service.

    Every write returns the canonical row, post-materialization when the
    request addressed a virtual occurrence. Failures raise ``NetworkError``
    or ``ConflictError``.
    """

    async def get_for_date(self, day: date) -> list[Todo]:
        """Get todos (real and virtual) assigned to a date."""
        ...

    async def get_for_range(self, start: date, end: date) -> list[Todo]:
        """Get todos assigned to any date in the inclusive range."""
        ...

    async def create(self, text: str, assigned_date: date) -> Todo:
        """Create a todo at the end of a date."""
        ...

    async def update_text(self, todo_id: int, text: str) -> Todo:
        ...

    async def update_position(self, todo_id: int, position: int) -> Todo:
        """Move a todo to a 0-based index within its date."""
        ...

    async def update_assigned_date(self, todo_id: int, to_date: date) -> Todo:
        ...

    async def complete(self, todo_id: int) -> Todo:
        ...

    async def uncomplete(self, todo_id: int) -> Todo:
        ...

    async def delete(self, todo_id: int, delete_all_future: bool = False) -> None:
        ...

    async def complete_virtual(self, recurring_todo_id: int, instance_date: date) -> Todo:
        """Materialize a virtual occurrence and complete it."""
        ...

    async def update_virtual_text(
        self, recurring_todo_id: int, instance_date: date, text: str
    ) -> Todo:
        ...

    async def update_virtual_position(
        self, recurring_todo_id: int, instance_date: date, position: int
    ) -> Todo:
        ...

    async def update_virtual_assigned_date(
        self, recurring_todo_id: int, instance_date: date, to_date: date
    ) -> Todo:
        ...

    async def delete_virtual(
        self, recurring_todo_id: int, instance_date: date, delete_all_future: bool = False
    ) -> None:
        """Skip one occurrence, or end the recurrence before ``instance_date``."""
        ...
