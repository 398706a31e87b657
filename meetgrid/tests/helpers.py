"""Deterministic test doubles for the grid: clock, frames and a hit-testing surface."""

import datetime as dt

from meetgrid.gestures import GridSurface
from meetgrid.realtime import ParticipantChange
from meetgrid.slots import GridSpec, TimeSlot


class _ManualHandle:
    def __init__(self, when, callback):
        self.when = when
        self.callback = callback
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class ManualScheduler:
    """Deterministic clock, timers and animation frames for tests."""

    def __init__(self):
        self.time = 0.0
        self._timers = []
        self._frames = []

    def now(self):
        return self.time

    def call_later(self, delay_ms, callback):
        handle = _ManualHandle(self.time + delay_ms, callback)
        self._timers.append(handle)
        return handle

    def request_frame(self, callback):
        handle = _ManualHandle(None, callback)
        self._frames.append(handle)
        return handle

    @property
    def pending_timers(self):
        return [h for h in self._timers if not h.cancelled]

    @property
    def pending_frames(self):
        return [h for h in self._frames if not h.cancelled]

    def advance(self, ms):
        target = self.time + ms
        while True:
            due = [h for h in self._timers if not h.cancelled and h.when <= target]
            if not due:
                break
            handle = min(due, key=lambda h: h.when)
            self._timers.remove(handle)
            self.time = handle.when
            handle.callback()
        self.time = target

    def flush_frames(self):
        frames, self._frames = self._frames, []
        for handle in frames:
            if not handle.cancelled:
                handle.callback()


class FakeSurface(GridSurface):
    """A grid drawn as 100x40 px cells starting at the origin, one column per date."""

    CELL_W = 100
    CELL_H = 40

    def __init__(self, grid: GridSpec, width: float = 1000):
        self.grid = grid
        self.width = width
        self.scroll_x = 0.0
        self.locked_calls = []
        self.vibrations = []
        self.pings = []
        self.focused = []

    def cell_at(self, x, y):
        col = int((x + self.scroll_x) // self.CELL_W)
        row = int(y // self.CELL_H)
        if x < 0 or y < 0 or row >= len(self.grid.hours):
            return None
        return self.grid.cell_at(col, self.grid.hours[row])

    def center(self, slot: TimeSlot):
        col = self.grid.dates.index(slot.date)
        row = self.grid.hours.index(slot.hour)
        return (col * self.CELL_W + self.CELL_W / 2 - self.scroll_x, row * self.CELL_H + self.CELL_H / 2)

    def viewport_bounds(self):
        return (0.0, self.width)

    def scroll_by(self, dx):
        self.scroll_x += dx

    def set_scroll_locked(self, locked):
        self.locked_calls.append(locked)

    @property
    def scroll_locked(self):
        return bool(self.locked_calls) and self.locked_calls[-1]

    def vibrate(self, duration_ms):
        self.vibrations.append(duration_ms)

    def show_ping(self, x, y, duration_ms):
        self.pings.append((x, y, duration_ms))

    def focus(self, cell):
        self.focused.append(cell)


def make_grid(days=5, start=dt.date(2025, 6, 1), hours=(9, 10, 11)):
    return GridSpec(tuple(start + dt.timedelta(days=i) for i in range(days)), tuple(hours))



class FakeSubscription:
    def __init__(self, feed):
        self.feed = feed

    async def unsubscribe(self):
        self.feed.unsubscribed += 1
        self.feed.handler = None


class FakeFeed:
    """In-process change feed; ``emit`` delivers a notification synchronously."""

    def __init__(self):
        self.subscribed = 0
        self.unsubscribed = 0
        self.handler = None

    async def subscribe(self, event_id, on_change):
        self.subscribed += 1
        self.handler = on_change
        return FakeSubscription(self)

    async def emit(self, event_type="insert", row=None):
        await self.handler(ParticipantChange(event_type, row or {}))
