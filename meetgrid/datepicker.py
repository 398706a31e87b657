"""Multi-date picker used when creating an event.

Shows a 35-day (five week) window starting on a Sunday. A tap toggles one
day; pressing on a day and moving across others selects the whole range
between them, added to whatever was selected when the press began. Days
before today can never be picked.
"""

import datetime as dt
from collections.abc import Callable, Iterable

WINDOW_DAYS = 35
WEEK_DAYS = 7


def week_start(day: dt.date) -> dt.date:
    """Sunday on or before ``day``."""
    return day - dt.timedelta(days=(day.weekday() + 1) % WEEK_DAYS)


class DateRangePicker:
    def __init__(
        self,
        value: Iterable[dt.date] = (),
        *,
        today: dt.date | None = None,
        on_change: Callable[[list[dt.date]], None] | None = None,
    ) -> None:
        self.today = today or dt.date.today()
        self.window_start = week_start(self.today)
        self._value: list[dt.date] = sorted(set(value))
        self._on_change = on_change
        self._drag_index: int | None = None
        self._origin: list[dt.date] = []
        self._dragged = False

    @property
    def value(self) -> list[dt.date]:
        return list(self._value)

    @property
    def dates(self) -> list[dt.date]:
        return [self.window_start + dt.timedelta(days=i) for i in range(WINDOW_DAYS)]

    @property
    def window_end(self) -> dt.date:
        return self.window_start + dt.timedelta(days=WINDOW_DAYS - 1)

    @property
    def dragging(self) -> bool:
        return self._drag_index is not None

    def is_past(self, day: dt.date) -> bool:
        return day < self.today

    def is_selected(self, day: dt.date) -> bool:
        return day in self._value

    def _set(self, days: Iterable[dt.date]) -> None:
        self._value = sorted(set(days))
        if self._on_change is not None:
            self._on_change(list(self._value))

    def previous_week(self) -> None:
        self.window_start -= dt.timedelta(days=WEEK_DAYS)

    def next_week(self) -> None:
        self.window_start += dt.timedelta(days=WEEK_DAYS)

    def toggle(self, day: dt.date) -> None:
        if day in self._value:
            self._set(d for d in self._value if d != day)
        else:
            self._set([*self._value, day])

    def clear(self) -> None:
        self._set([])

    def _day(self, index: int) -> dt.date | None:
        if 0 <= index < WINDOW_DAYS:
            return self.window_start + dt.timedelta(days=index)
        return None

    def press(self, index: int) -> None:
        day = self._day(index)
        if day is None or self.is_past(day):
            return
        self._drag_index = index
        self._origin = list(self._value)
        self._dragged = False

    def enter(self, index: int) -> None:
        if self._drag_index is None or index == self._drag_index or self._day(index) is None:
            return
        self._dragged = True
        lo, hi = sorted((self._drag_index, index))
        span = [d for d in self.dates[lo : hi + 1] if not self.is_past(d)]
        self._set([*self._origin, *span])

    def release(self) -> None:
        self._drag_index = None

    def click(self, index: int) -> None:
        """Toggle on click, unless the press that produced it was a drag."""
        day = self._day(index)
        if day is None or self.is_past(day) or self._dragged:
            self._dragged = False
            return
        self.toggle(day)
