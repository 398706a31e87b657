"""Slot addressing for the availability grid.

A slot is one (date, hour) cell. Every collection of slots, local or
remote, is reconciled through the canonical key ``"<ISO-date>-<hour>"``.
"""

import datetime as dt
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any


def _as_date(value: Any) -> dt.date:
    if isinstance(value, dt.datetime):
        return value.date()
    if isinstance(value, dt.date):
        return value
    if isinstance(value, str):
        # Accept full ISO timestamps ("2025-06-01T00:00:00.000Z") as well as bare dates.
        return dt.date.fromisoformat(value[:10])
    raise TypeError(f"cannot interpret {value!r} as a date")


def slot_key(date: dt.date, hour: int) -> str:
    return f"{_as_date(date).isoformat()}-{hour}"


@dataclass(frozen=True, order=True)
class TimeSlot:
    date: dt.date
    hour: int

    def __post_init__(self) -> None:
        object.__setattr__(self, "date", _as_date(self.date))
        if not isinstance(self.hour, int) or not 0 <= self.hour <= 23:
            raise ValueError(f"hour must be an integer in 0-23, got {self.hour!r}")

    @property
    def key(self) -> str:
        return slot_key(self.date, self.hour)

    def to_dict(self) -> dict[str, Any]:
        return {"date": self.date.isoformat(), "hour": self.hour}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TimeSlot":
        return cls(_as_date(data["date"]), int(data["hour"]))


def parse_slot_key(key: str) -> TimeSlot:
    """Inverse of :func:`slot_key`."""
    date_part, sep, hour_part = key.rpartition("-")
    if not sep or not date_part:
        raise ValueError(f"invalid slot key: {key!r}")
    try:
        return TimeSlot(dt.date.fromisoformat(date_part), int(hour_part))
    except (TypeError, ValueError) as e:
        raise ValueError(f"invalid slot key: {key!r}") from e


def normalize_slots(slots: Iterable[TimeSlot]) -> list[TimeSlot]:
    """Deduplicate by key and sort by (date, hour)."""
    unique: dict[str, TimeSlot] = {}
    for slot in slots:
        unique.setdefault(slot.key, slot)
    return sorted(unique.values())


def candidate_dates(
    start_date: dt.date,
    end_date: dt.date,
    selected_dates: Iterable[dt.date] | None = None,
) -> list[dt.date]:
    """Columns of the grid.

    ``selected_dates`` wins over the contiguous ``start_date..end_date``
    range whenever it is non-empty.
    """
    chosen = sorted({_as_date(d) for d in selected_dates or ()})
    if chosen:
        return chosen
    start, end = _as_date(start_date), _as_date(end_date)
    days = (end - start).days
    return [start + dt.timedelta(days=i) for i in range(days + 1)]


def hour_range(start_hour: int, end_hour: int) -> list[int]:
    """Rows of the grid, inclusive of ``end_hour``."""
    return list(range(start_hour, end_hour + 1))


@dataclass(frozen=True)
class GridSpec:
    """The addressable cells of one event's grid."""

    dates: tuple[dt.date, ...]
    hours: tuple[int, ...]

    @classmethod
    def from_event(cls, event: Any) -> "GridSpec":
        dates = candidate_dates(event.start_date, event.end_date, event.selected_dates)
        return cls(tuple(dates), tuple(hour_range(event.start_hour, event.end_hour)))

    @property
    def cell_count(self) -> int:
        return len(self.dates) * len(self.hours)

    def cells(self) -> list[TimeSlot]:
        return [TimeSlot(d, h) for d in self.dates for h in self.hours]

    def column(self, date: dt.date) -> list[TimeSlot]:
        return [TimeSlot(date, h) for h in self.hours]

    def row(self, hour: int) -> list[TimeSlot]:
        return [TimeSlot(d, hour) for d in self.dates]

    def contains(self, slot: TimeSlot) -> bool:
        return slot.date in self.dates and slot.hour in self.hours

    def cell_at(self, date_index: int, hour: int) -> TimeSlot | None:
        """Resolve a rendered cell address (column index, hour) to a slot."""
        if not 0 <= date_index < len(self.dates) or hour not in self.hours:
            return None
        return TimeSlot(self.dates[date_index], hour)
