"""Timer and frame scheduling for the interactive grid.

Everything here runs on one asyncio loop. Callbacks are plain functions and
never await, so pointer handling stays non-blocking.
"""

import asyncio
import time
from collections.abc import Callable
from typing import Protocol

FRAME_INTERVAL_MS = 1000 / 60


class Handle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def now(self) -> float:
        """Monotonic time in milliseconds."""
        ...

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> Handle: ...

    def request_frame(self, callback: Callable[[], None]) -> Handle: ...


class LoopScheduler:
    """Scheduler backed by the running asyncio event loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def now(self) -> float:
        return time.monotonic() * 1000

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
        return self.loop.call_later(max(delay_ms, 0) / 1000, callback)

    def request_frame(self, callback: Callable[[], None]) -> asyncio.TimerHandle:
        return self.call_later(FRAME_INTERVAL_MS, callback)
