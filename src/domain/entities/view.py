"""Visible date window entity."""

from dataclasses import dataclass
from datetime import date, timedelta

ALLOWED_VIEW_DAYS = (1, 3, 5, 7)


@dataclass(frozen=True, slots=True)
class ViewWindow:
    """The dates currently visible to the viewer.

    A window of ``days`` dates centred on ``selected_date``.
    """

    selected_date: date
    days: int = 1

    def __post_init__(self) -> None:
        if self.days not in ALLOWED_VIEW_DAYS:
            raise ValueError(f"days must be one of {ALLOWED_VIEW_DAYS}, got {self.days}")

    @property
    def start(self) -> date:
        return self.selected_date - timedelta(days=self.days // 2)

    @property
    def end(self) -> date:
        return self.selected_date + timedelta(days=self.days // 2)

    def dates(self) -> list[date]:
        """All visible dates in ascending order."""
        return [self.start + timedelta(days=i) for i in range(self.days)]

    def contains(self, day: date) -> bool:
        return self.start <= day <= self.end

    @staticmethod
    def span(start: date, end: date) -> list[date]:
        """Every date from ``start`` to ``end`` inclusive."""
        return [start + timedelta(days=i) for i in range((end - start).days + 1)]
