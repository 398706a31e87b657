"""Heatmap and best-time ranking over every participant's availability."""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

from meetgrid.slots import TimeSlot

BEST_TIMES_LIMIT = 10


class HasAvailability(Protocol):
    name: str
    availability: Sequence[TimeSlot]


@dataclass
class SlotTally:
    slot: TimeSlot
    count: int = 0
    participants: list[Any] = field(default_factory=list)

    @property
    def key(self) -> str:
        return self.slot.key


@dataclass
class SlotBreakdown:
    slot: TimeSlot
    available: list[Any]
    unavailable: list[Any]


def slot_tallies(participants: Iterable[HasAvailability]) -> dict[str, SlotTally]:
    """Map slot key -> tally, in first-encountered order.

    Participants are expected oldest first, so ties later resolve in favour
    of the slot the earliest respondent picked first.
    """
    tallies: dict[str, SlotTally] = {}
    for participant in participants:
        seen: set[str] = set()
        for slot in participant.availability:
            if slot.key in seen:
                continue
            seen.add(slot.key)
            tally = tallies.get(slot.key)
            if tally is None:
                tally = tallies[slot.key] = SlotTally(slot)
            tally.count += 1
            tally.participants.append(participant)
    return tallies


def build_heatmap(participants: Iterable[HasAvailability]) -> dict[str, int]:
    return {key: t.count for key, t in slot_tallies(participants).items()}


def best_times(participants: Iterable[HasAvailability], limit: int = BEST_TIMES_LIMIT) -> list[SlotTally]:
    # sorted() is stable, so equal counts keep insertion order.
    ranked = sorted(slot_tallies(participants).values(), key=lambda t: t.count, reverse=True)
    return ranked[:limit]


def slot_breakdown(participants: Iterable[HasAvailability], slot: TimeSlot) -> SlotBreakdown:
    available: list[Any] = []
    unavailable: list[Any] = []
    for participant in participants:
        if any(s.key == slot.key for s in participant.availability):
            available.append(participant)
        else:
            unavailable.append(participant)
    return SlotBreakdown(slot, available, unavailable)


def heat_intensity(count: int, max_participants: int) -> float:
    """Fraction of respondents free in a cell, clamped to [0, 1]."""
    if max_participants <= 0 or count <= 0:
        return 0.0
    return min(1.0, count / max_participants)
