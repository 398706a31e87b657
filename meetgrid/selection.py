"""Selection state for one participant's availability grid.

The engine owns the committed slot list plus the pending delta that a drag
gesture accumulates. Pending changes are merged into the committed list at
most once per animation frame (or once at gesture end in preview mode).
"""

import datetime as dt
import logging
from collections.abc import Callable, Iterable
from typing import Literal

from meetgrid.scheduling import Handle, LoopScheduler, Scheduler
from meetgrid.slots import GridSpec, TimeSlot, normalize_slots

logger = logging.getLogger("meetgrid.selection")

PaintMode = Literal["add", "remove"]
ChangeListener = Callable[[list[TimeSlot]], None]


class PendingDelta:
    """Keys waiting to be added or removed. The two sets never overlap."""

    def __init__(self) -> None:
        self.to_add: dict[str, TimeSlot] = {}
        self.to_remove: set[str] = set()

    def add(self, slot: TimeSlot) -> None:
        self.to_remove.discard(slot.key)
        self.to_add[slot.key] = slot

    def remove(self, slot: TimeSlot) -> None:
        self.to_add.pop(slot.key, None)
        self.to_remove.add(slot.key)

    def clear(self) -> None:
        self.to_add.clear()
        self.to_remove.clear()

    def __bool__(self) -> bool:
        return bool(self.to_add or self.to_remove)


class SelectionEngine:
    def __init__(
        self,
        slots: Iterable[TimeSlot] = (),
        *,
        preview: bool = False,
        scheduler: Scheduler | None = None,
    ) -> None:
        self.preview = preview
        self.pending = PendingDelta()
        self._scheduler = scheduler or LoopScheduler()
        self._committed = normalize_slots(slots)
        self._keys = {s.key for s in self._committed}
        self._listeners: list[ChangeListener] = []
        self._frame: Handle | None = None
        self._baseline: list[TimeSlot] | None = None
        self._visited: set[str] = set()
        self.paint_mode: PaintMode | None = None

    @property
    def committed(self) -> list[TimeSlot]:
        return list(self._committed)

    @property
    def gesture_active(self) -> bool:
        return self.paint_mode is not None

    @property
    def frame_scheduled(self) -> bool:
        return self._frame is not None

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def is_selected(self, slot: TimeSlot) -> bool:
        return slot.key in self._keys

    def is_selected_render(self, slot: TimeSlot) -> bool:
        """Selection state as drawn, including previewed pending changes."""
        selected = slot.key in self._keys
        if self.preview and self.gesture_active:
            if slot.key in self.pending.to_remove:
                selected = False
            if slot.key in self.pending.to_add:
                selected = True
        return selected

    def _set_committed(self, slots: Iterable[TimeSlot]) -> list[TimeSlot]:
        self._committed = normalize_slots(slots)
        self._keys = {s.key for s in self._committed}
        snapshot = self.committed
        for listener in list(self._listeners):
            listener(snapshot)
        return snapshot

    def toggle(self, slot: TimeSlot) -> list[TimeSlot]:
        if slot.key in self._keys:
            return self._set_committed(s for s in self._committed if s.key != slot.key)
        return self._set_committed([*self._committed, slot])

    def begin_gesture(self, anchor: TimeSlot) -> PaintMode:
        """Start a paint gesture; the anchor's prior state fixes the mode."""
        self._baseline = self.committed
        self._visited = set()
        self.pending.clear()
        self.paint_mode = "remove" if anchor.key in self._keys else "add"
        logger.debug("gesture.begin anchor=%s mode=%s", anchor.key, self.paint_mode)
        return self.paint_mode

    def apply_to_cell(self, slot: TimeSlot) -> bool:
        """Record one cell visit. Returns False when the visit had no effect."""
        if self.paint_mode is None or slot.key in self._visited:
            return False
        self._visited.add(slot.key)
        if self.paint_mode == "add":
            self.pending.add(slot)
        else:
            self.pending.remove(slot)
        self.schedule_commit()
        return True

    def schedule_commit(self) -> None:
        if self.preview and self.gesture_active:
            return
        if self._frame is not None:
            return
        self._frame = self._scheduler.request_frame(self._on_frame)

    def _on_frame(self) -> None:
        self._frame = None
        self.commit()

    def _cancel_frame(self) -> None:
        if self._frame is not None:
            self._frame.cancel()
            self._frame = None

    def commit(self) -> list[TimeSlot]:
        """Merge the pending delta into the committed list and clear it."""
        if not self.pending:
            return self.committed
        kept = [s for s in self._committed if s.key not in self.pending.to_remove]
        kept_keys = {s.key for s in kept}
        additions = [s for k, s in self.pending.to_add.items() if k not in kept_keys]
        self.pending.clear()
        return self._set_committed([*kept, *additions])

    def end_gesture(self) -> list[TimeSlot]:
        self._cancel_frame()
        self.paint_mode = None
        self._visited = set()
        self._baseline = None
        return self.commit()

    def abort_gesture(self) -> list[TimeSlot]:
        """Drop the gesture without committing, restoring its baseline."""
        self._cancel_frame()
        self.pending.clear()
        baseline = self._baseline
        self.paint_mode = None
        self._visited = set()
        self._baseline = None
        if baseline is not None and [s.key for s in baseline] != [s.key for s in self._committed]:
            return self._set_committed(baseline)
        return self.committed

    def replace_committed(self, slots: Iterable[TimeSlot]) -> list[TimeSlot]:
        """Swap in remote state. A live pending delta is left untouched."""
        return self._set_committed(slots)

    def _fill_or_clear(self, cells: list[TimeSlot]) -> list[TimeSlot]:
        if not cells:
            return self.committed
        keys = {c.key for c in cells}
        if all(k in self._keys for k in keys):
            return self._set_committed(s for s in self._committed if s.key not in keys)
        return self._set_committed([*self._committed, *cells])

    def toggle_date(self, date: dt.date, hours: Iterable[int]) -> list[TimeSlot]:
        return self._fill_or_clear([TimeSlot(date, h) for h in hours])

    def toggle_hour(self, hour: int, dates: Iterable[dt.date]) -> list[TimeSlot]:
        return self._fill_or_clear([TimeSlot(d, hour) for d in dates])

    def toggle_all(self, grid: GridSpec) -> list[TimeSlot]:
        cells = grid.cells()
        in_grid = sum(1 for c in cells if c.key in self._keys)
        if cells and in_grid == grid.cell_count:
            keys = {c.key for c in cells}
            return self._set_committed(s for s in self._committed if s.key not in keys)
        return self._set_committed([*self._committed, *cells])

    def close(self) -> None:
        self._cancel_frame()
        self._listeners.clear()
