"""Unit tests for the view window and push entities."""

from datetime import date

import pytest

from domain.entities.push import PushMessage, PushMessageType
from domain.entities.view import ViewWindow


class TestViewWindow:
    def test_single_day(self):
        window = ViewWindow(date(2024, 6, 1))
        assert window.dates() == [date(2024, 6, 1)]

    def test_centred_on_selected_date(self):
        window = ViewWindow(date(2024, 6, 3), days=5)
        assert window.start == date(2024, 6, 1)
        assert window.end == date(2024, 6, 5)
        assert len(window.dates()) == 5

    def test_contains(self):
        window = ViewWindow(date(2024, 6, 3), days=3)
        assert window.contains(date(2024, 6, 2))
        assert not window.contains(date(2024, 6, 5))

    @pytest.mark.parametrize("days", [0, 2, 4, 8])
    def test_rejects_unsupported_sizes(self, days: int):
        with pytest.raises(ValueError):
            ViewWindow(date(2024, 6, 3), days=days)

    def test_span_across_month(self):
        assert ViewWindow.span(date(2024, 5, 31), date(2024, 6, 2)) == [
            date(2024, 5, 31),
            date(2024, 6, 1),
            date(2024, 6, 2),
        ]


class TestPushMessage:
    def test_changed_date(self):
        message = PushMessage(type=PushMessageType.TODOS_CHANGED, data={"date": "2024-06-01"})
        assert message.changed_date == date(2024, 6, 1)

    def test_changed_date_accepts_datetime_string(self):
        message = PushMessage(type="TODOS_CHANGED", data={"date": "2024-06-01T00:00:00"})
        assert message.changed_date == date(2024, 6, 1)

    @pytest.mark.parametrize("data", [{}, {"date": "yesterday"}, {"date": 20240601}])
    def test_changed_date_missing_or_invalid(self, data: dict):
        assert PushMessage(type="TODOS_CHANGED", data=data).changed_date is None
