"""Push channel domain entities."""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import StrEnum
from typing import Any


class PushMessageType(StrEnum):
    """Notification kinds consumed by the sync engine."""

    # Single date changed - refetch that date
    TODOS_CHANGED = "TODOS_CHANGED"
    # Recurrence definition changed - refetch all visible dates
    RECURRING_CHANGED = "RECURRING_CHANGED"


@dataclass(frozen=True, slots=True)
class PushMessage:
    """A decoded push envelope."""

    type: str
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime | None = None

    @property
    def changed_date(self) -> date | None:
        """Date carried by a ``TODOS_CHANGED`` notification, if parsable."""
        value = self.data.get("date")
        if isinstance(value, date):
            return value
        if not isinstance(value, str):
            return None
        try:
            return date.fromisoformat(value[:10])
        except ValueError:
            return None
