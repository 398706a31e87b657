"""Pointer gesture classification for the availability grid.

Raw pointer input is reduced to exactly one of *tap* or *drag-paint* per
gesture. The classifier itself is a pure function,
``transition(context, event, config) -> (context', effects)``; the
``GestureController`` owns the side of things that touches the world
(timers, scroll lock, the selection engine, the host surface) and executes
the effects it is handed.

Mouse and pen presses start a drag immediately. Touch presses wait in
``pending`` for a long-press timer (clamped to 200-300 ms) and, depending on
``TouchActivation``, may also start on movement or give way to a native
horizontal scroll.
"""

import datetime as dt
import logging
import math
from collections.abc import Callable
from dataclasses import dataclass, replace
from enum import Enum
from typing import Literal

from meetgrid.errors import GestureLockFailure
from meetgrid.scheduling import Handle, LoopScheduler, Scheduler
from meetgrid.selection import SelectionEngine
from meetgrid.slots import GridSpec, TimeSlot

logger = logging.getLogger("meetgrid.gestures")

Edge = Literal[-1, 1]


class GestureState(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    ACTIVE = "active"


class PointerType(str, Enum):
    MOUSE = "mouse"
    TOUCH = "touch"
    PEN = "pen"


class TouchActivation(str, Enum):
    LONG_PRESS = "long_press"
    SCROLL_AWARE = "scroll_aware"
    DRAG_THRESHOLD = "drag_threshold"


@dataclass(frozen=True)
class GestureConfig:
    long_press_delay_ms: float = 250
    move_threshold_px: float = 5
    scroll_intent_px: float = 12
    touch_activation: TouchActivation = TouchActivation.SCROLL_AWARE
    edge_margin_px: float = 50
    autoscroll_step_px: float = 20
    autoscroll_interval_ms: float = 16
    lock_failure_jump_px: float = 20
    lock_failure_window_ms: float = 100
    mouse_suppress_ms: float = 500
    haptic_ms: int = 10
    ping_ms: int = 600

    @property
    def long_press_ms(self) -> float:
        return max(200.0, min(300.0, self.long_press_delay_ms))


# Input events. Hit-testing happens before the classifier sees an event, so
# moves carry the resolved cell (or None) and the viewport edge they are in.


@dataclass(frozen=True)
class PointerDown:
    pointer_id: int
    pointer_type: PointerType
    x: float
    y: float
    t: float
    cell: TimeSlot | None


@dataclass(frozen=True)
class PointerMove:
    pointer_id: int
    pointer_type: PointerType
    x: float
    y: float
    t: float
    cell: TimeSlot | None
    edge: Edge | None = None


@dataclass(frozen=True)
class PointerUp:
    pointer_id: int
    pointer_type: PointerType
    x: float
    y: float
    t: float


@dataclass(frozen=True)
class PointerCancel:
    pointer_id: int
    pointer_type: PointerType
    t: float


@dataclass(frozen=True)
class LongPressElapsed:
    pointer_id: int
    t: float


@dataclass(frozen=True)
class AutoScrollTick:
    pointer_id: int
    t: float
    x: float
    y: float


InputEvent = PointerDown | PointerMove | PointerUp | PointerCancel | LongPressElapsed | AutoScrollTick


# Effects requested by the classifier, executed in order by the controller.


@dataclass(frozen=True)
class ArmLongPress:
    delay_ms: float


@dataclass(frozen=True)
class CancelLongPress:
    pass


@dataclass(frozen=True)
class AcquireScrollLock:
    pass


@dataclass(frozen=True)
class ReleaseScrollLock:
    pass


@dataclass(frozen=True)
class BeginGesture:
    cell: TimeSlot


@dataclass(frozen=True)
class ApplyCell:
    cell: TimeSlot


@dataclass(frozen=True)
class EndGesture:
    pass


@dataclass(frozen=True)
class AbortGesture:
    reason: GestureLockFailure


@dataclass(frozen=True)
class ToggleCell:
    cell: TimeSlot


@dataclass(frozen=True)
class FocusCell:
    cell: TimeSlot


@dataclass(frozen=True)
class StartAutoScroll:
    direction: Edge


@dataclass(frozen=True)
class StopAutoScroll:
    pass


@dataclass(frozen=True)
class ScrollViewport:
    dx: float


@dataclass(frozen=True)
class PaintAt:
    """Paint whatever cell sits under (x, y) once the viewport has moved."""

    x: float
    y: float


@dataclass(frozen=True)
class Haptic:
    duration_ms: int


@dataclass(frozen=True)
class ShowPing:
    x: float
    y: float
    duration_ms: int


Effect = (
    ArmLongPress
    | CancelLongPress
    | AcquireScrollLock
    | ReleaseScrollLock
    | BeginGesture
    | ApplyCell
    | EndGesture
    | AbortGesture
    | ToggleCell
    | FocusCell
    | StartAutoScroll
    | StopAutoScroll
    | ScrollViewport
    | PaintAt
    | Haptic
    | ShowPing
)


@dataclass(frozen=True)
class GestureContext:
    state: GestureState = GestureState.IDLE
    pointer_id: int | None = None
    pointer_type: PointerType | None = None
    anchor_x: float = 0.0
    anchor_y: float = 0.0
    last_x: float = 0.0
    last_y: float = 0.0
    anchor_cell: TimeSlot | None = None
    activated_at: float = 0.0
    activated_x: float = 0.0
    activated_y: float = 0.0
    autoscroll: Edge | None = None
    scroll_locked: bool = False
    suppress_mouse_until: float = float("-inf")


def _owns(ctx: GestureContext, pointer_id: int) -> bool:
    return ctx.state is not GestureState.IDLE and ctx.pointer_id == pointer_id


def _finish(ctx: GestureContext, t: float, config: GestureConfig) -> GestureContext:
    """Back to idle; a finished touch gesture opens the mouse suppression window."""
    suppress = ctx.suppress_mouse_until
    if ctx.pointer_type is PointerType.TOUCH:
        suppress = max(suppress, t + config.mouse_suppress_ms)
    return GestureContext(suppress_mouse_until=suppress)


def _teardown(ctx: GestureContext) -> list[Effect]:
    effects: list[Effect] = []
    if ctx.autoscroll is not None:
        effects.append(StopAutoScroll())
    return effects


def _release(ctx: GestureContext) -> list[Effect]:
    return [ReleaseScrollLock()] if ctx.scroll_locked else []


def _activate(ctx: GestureContext, cell: TimeSlot, x: float, y: float, t: float, lock: bool) -> GestureContext:
    return replace(
        ctx,
        state=GestureState.ACTIVE,
        activated_at=t,
        activated_x=x,
        activated_y=y,
        scroll_locked=ctx.scroll_locked or lock,
        anchor_cell=ctx.anchor_cell or cell,
    )


def _on_down(ctx: GestureContext, ev: PointerDown, config: GestureConfig) -> tuple[GestureContext, list[Effect]]:
    if ctx.state is not GestureState.IDLE or ev.cell is None:
        return ctx, []
    if ev.pointer_type is PointerType.MOUSE and ev.t < ctx.suppress_mouse_until:
        return ctx, []
    pressed = replace(
        ctx,
        pointer_id=ev.pointer_id,
        pointer_type=ev.pointer_type,
        anchor_x=ev.x,
        anchor_y=ev.y,
        anchor_cell=ev.cell,
        last_x=ev.x,
        last_y=ev.y,
    )
    if ev.pointer_type is PointerType.TOUCH:
        return replace(pressed, state=GestureState.PENDING), [ArmLongPress(config.long_press_ms)]
    active = _activate(pressed, ev.cell, ev.x, ev.y, ev.t, lock=False)
    return active, [BeginGesture(ev.cell), FocusCell(ev.cell)]


def _on_long_press(ctx: GestureContext, ev: LongPressElapsed, config: GestureConfig) -> tuple[GestureContext, list[Effect]]:
    if ctx.state is not GestureState.PENDING or ctx.pointer_id != ev.pointer_id or ctx.anchor_cell is None:
        return ctx, []
    # The finger may have drifted under the move threshold while pending.
    active = _activate(ctx, ctx.anchor_cell, ctx.last_x, ctx.last_y, ev.t, lock=True)
    return active, [
        AcquireScrollLock(),
        Haptic(config.haptic_ms),
        ShowPing(ctx.last_x, ctx.last_y, config.ping_ms),
        BeginGesture(ctx.anchor_cell),
        FocusCell(ctx.anchor_cell),
    ]


def _on_pending_move(ctx: GestureContext, ev: PointerMove, config: GestureConfig) -> tuple[GestureContext, list[Effect]]:
    dx = ev.x - ctx.anchor_x
    dy = ev.y - ctx.anchor_y
    ctx = replace(ctx, last_x=ev.x, last_y=ev.y)
    mode = config.touch_activation
    if mode is TouchActivation.DRAG_THRESHOLD:
        if math.hypot(dx, dy) > config.move_threshold_px and ev.cell is not None:
            active = _activate(replace(ctx, anchor_cell=ev.cell), ev.cell, ev.x, ev.y, ev.t, lock=True)
            return active, [CancelLongPress(), AcquireScrollLock(), BeginGesture(ev.cell), FocusCell(ev.cell)]
        return ctx, []
    if mode is TouchActivation.SCROLL_AWARE:
        if abs(dx) > config.scroll_intent_px and abs(dx) > abs(dy):
            # Horizontal swipe: hand the touch to the native scroller, no tap.
            return _finish(ctx, ev.t, config), [CancelLongPress()]
    return ctx, []


def _edge_effects(ctx: GestureContext, edge: Edge | None) -> tuple[GestureContext, list[Effect]]:
    if edge == ctx.autoscroll:
        return ctx, []
    effects: list[Effect] = []
    if ctx.autoscroll is not None:
        effects.append(StopAutoScroll())
    if edge is not None:
        effects.append(StartAutoScroll(edge))
    return replace(ctx, autoscroll=edge), effects


def _on_active_move(ctx: GestureContext, ev: PointerMove, config: GestureConfig) -> tuple[GestureContext, list[Effect]]:
    if ctx.pointer_type is PointerType.TOUCH:
        elapsed = ev.t - ctx.activated_at
        jump = math.hypot(ev.x - ctx.activated_x, ev.y - ctx.activated_y)
        if elapsed < config.lock_failure_window_ms and jump > config.lock_failure_jump_px:
            failure = GestureLockFailure(jump, elapsed)
            effects = [*_teardown(ctx), AbortGesture(failure), *_release(ctx)]
            return _finish(ctx, ev.t, config), effects
    effects: list[Effect] = []
    if ev.cell is not None:
        effects.append(ApplyCell(ev.cell))
    ctx, edge_effects = _edge_effects(ctx, ev.edge)
    return ctx, effects + edge_effects


def transition(
    ctx: GestureContext, event: InputEvent, config: GestureConfig
) -> tuple[GestureContext, list[Effect]]:
    """Advance the classifier by one input event."""
    if isinstance(event, PointerDown):
        return _on_down(ctx, event, config)
    if isinstance(event, LongPressElapsed):
        return _on_long_press(ctx, event, config)
    if isinstance(event, AutoScrollTick):
        if ctx.state is not GestureState.ACTIVE or ctx.autoscroll is None or ctx.pointer_id != event.pointer_id:
            return ctx, []
        return ctx, [ScrollViewport(ctx.autoscroll * config.autoscroll_step_px), PaintAt(event.x, event.y)]
    if not _owns(ctx, event.pointer_id):
        return ctx, []
    if isinstance(event, PointerMove):
        if ctx.state is GestureState.PENDING:
            return _on_pending_move(ctx, event, config)
        return _on_active_move(ctx, event, config)
    if isinstance(event, PointerUp):
        if ctx.state is GestureState.PENDING:
            cell = ctx.anchor_cell
            if cell is None:
                return _finish(ctx, event.t, config), [CancelLongPress()]
            return _finish(ctx, event.t, config), [CancelLongPress(), ToggleCell(cell), FocusCell(cell)]
        return _finish(ctx, event.t, config), [*_teardown(ctx), EndGesture(), *_release(ctx)]
    if isinstance(event, PointerCancel):
        if ctx.state is GestureState.PENDING:
            return _finish(ctx, event.t, config), [CancelLongPress()]
        return _finish(ctx, event.t, config), [*_teardown(ctx), EndGesture(), *_release(ctx)]
    return ctx, []


class GridSurface:
    """What the host UI exposes to the controller.

    Hosts override ``cell_at`` and ``viewport_bounds`` at minimum; the rest
    default to no-ops.
    """

    def cell_at(self, x: float, y: float) -> TimeSlot | None:
        return None

    def viewport_bounds(self) -> tuple[float, float] | None:
        """Horizontal (left, right) edges of the scrollable viewport."""
        return None

    def scroll_by(self, dx: float) -> None:
        pass

    def set_scroll_locked(self, locked: bool) -> None:
        pass

    def vibrate(self, duration_ms: int) -> None:
        pass

    def show_ping(self, x: float, y: float, duration_ms: int) -> None:
        pass

    def focus(self, cell: TimeSlot) -> None:
        pass


class ScrollLock:
    """Scoped hold on native scrolling; ``release`` is safe to call twice."""

    def __init__(self, surface: GridSurface) -> None:
        self._surface = surface
        self.held = True
        surface.set_scroll_locked(True)

    def release(self) -> None:
        if self.held:
            self.held = False
            self._surface.set_scroll_locked(False)

    def __enter__(self) -> "ScrollLock":
        return self

    def __exit__(self, *exc: object) -> None:
        self.release()


@dataclass
class _Timers:
    long_press: Handle | None = None
    autoscroll: Handle | None = None


class GestureController:
    """Feeds host pointer events through ``transition`` and runs the effects."""

    def __init__(
        self,
        engine: SelectionEngine,
        surface: GridSurface,
        grid: GridSpec,
        *,
        config: GestureConfig | None = None,
        scheduler: Scheduler | None = None,
        read_only: bool = False,
        on_focus: Callable[[TimeSlot], None] | None = None,
    ) -> None:
        self.engine = engine
        self.surface = surface
        self.grid = grid
        self.config = config or GestureConfig()
        self.read_only = read_only
        self._scheduler = scheduler or LoopScheduler()
        self._on_focus = on_focus
        self._ctx = GestureContext()
        self._timers = _Timers()
        self._lock: ScrollLock | None = None
        self._last_xy: tuple[float, float] = (0.0, 0.0)

    @property
    def state(self) -> GestureState:
        return self._ctx.state

    @property
    def context(self) -> GestureContext:
        return self._ctx

    @property
    def scroll_locked(self) -> bool:
        return self._lock is not None and self._lock.held

    def _now(self, t: float | None) -> float:
        return self._scheduler.now() if t is None else t

    def _cell(self, x: float, y: float) -> TimeSlot | None:
        cell = self.surface.cell_at(x, y)
        if cell is not None and not self.grid.contains(cell):
            return None
        return cell

    def _edge(self, x: float) -> Edge | None:
        bounds = self.surface.viewport_bounds()
        if bounds is None:
            return None
        left, right = bounds
        if x < left + self.config.edge_margin_px:
            return -1
        if x > right - self.config.edge_margin_px:
            return 1
        return None

    def pointer_down(self, pointer_id: int, pointer_type: PointerType | str, x: float, y: float, t: float | None = None) -> None:
        if self.read_only:
            return
        if self._ctx.state is GestureState.IDLE:
            self._last_xy = (x, y)
        self.dispatch(PointerDown(pointer_id, PointerType(pointer_type), x, y, self._now(t), self._cell(x, y)))

    def pointer_move(self, pointer_id: int, pointer_type: PointerType | str, x: float, y: float, t: float | None = None) -> None:
        if self.read_only or self._ctx.state is GestureState.IDLE:
            return
        if pointer_id == self._ctx.pointer_id:
            self._last_xy = (x, y)
        self.dispatch(PointerMove(pointer_id, PointerType(pointer_type), x, y, self._now(t), self._cell(x, y), self._edge(x)))

    def pointer_up(self, pointer_id: int, pointer_type: PointerType | str, x: float, y: float, t: float | None = None) -> None:
        self.dispatch(PointerUp(pointer_id, PointerType(pointer_type), x, y, self._now(t)))

    def pointer_cancel(self, pointer_id: int, pointer_type: PointerType | str, t: float | None = None) -> None:
        self.dispatch(PointerCancel(pointer_id, PointerType(pointer_type), self._now(t)))

    def dispatch(self, event: InputEvent) -> None:
        ctx, effects = transition(self._ctx, event, self.config)
        self._ctx = ctx
        try:
            for effect in effects:
                self._run(effect)
        except Exception:
            logger.exception("gesture.effect_failed event=%s", type(event).__name__)
            self._reset()
            raise

    def _run(self, effect: Effect) -> None:
        if isinstance(effect, ArmLongPress):
            self._cancel_long_press()
            pointer_id = self._ctx.pointer_id
            self._timers.long_press = self._scheduler.call_later(
                effect.delay_ms, lambda: self._long_press_fired(pointer_id)
            )
        elif isinstance(effect, CancelLongPress):
            self._cancel_long_press()
        elif isinstance(effect, AcquireScrollLock):
            if self._lock is None or not self._lock.held:
                self._lock = ScrollLock(self.surface)
        elif isinstance(effect, ReleaseScrollLock):
            self._release_lock()
        elif isinstance(effect, BeginGesture):
            self.engine.begin_gesture(effect.cell)
            self.engine.apply_to_cell(effect.cell)
        elif isinstance(effect, ApplyCell):
            self.engine.apply_to_cell(effect.cell)
        elif isinstance(effect, EndGesture):
            self.engine.end_gesture()
        elif isinstance(effect, AbortGesture):
            logger.debug("gesture.abort reason=%s", effect.reason)
            self.engine.abort_gesture()
        elif isinstance(effect, ToggleCell):
            self.engine.toggle(effect.cell)
        elif isinstance(effect, FocusCell):
            self.surface.focus(effect.cell)
            if self._on_focus is not None:
                self._on_focus(effect.cell)
        elif isinstance(effect, StartAutoScroll):
            self._cancel_autoscroll()
            self._schedule_autoscroll()
        elif isinstance(effect, StopAutoScroll):
            self._cancel_autoscroll()
        elif isinstance(effect, ScrollViewport):
            self.surface.scroll_by(effect.dx)
        elif isinstance(effect, PaintAt):
            cell = self._cell(effect.x, effect.y)
            if cell is not None:
                self.engine.apply_to_cell(cell)
        elif isinstance(effect, Haptic):
            self.surface.vibrate(effect.duration_ms)
        elif isinstance(effect, ShowPing):
            self.surface.show_ping(effect.x, effect.y, effect.duration_ms)

    def _long_press_fired(self, pointer_id: int | None) -> None:
        self._timers.long_press = None
        if pointer_id is None:
            return
        self.dispatch(LongPressElapsed(pointer_id, self._scheduler.now()))

    def _schedule_autoscroll(self) -> None:
        self._timers.autoscroll = self._scheduler.call_later(self.config.autoscroll_interval_ms, self._autoscroll_tick)

    def _autoscroll_tick(self) -> None:
        self._timers.autoscroll = None
        pointer_id = self._ctx.pointer_id
        if self._ctx.autoscroll is None or pointer_id is None:
            return
        x, y = self._last_xy
        self.dispatch(AutoScrollTick(pointer_id, self._scheduler.now(), x, y))
        if self._ctx.autoscroll is not None:
            self._schedule_autoscroll()

    def _cancel_long_press(self) -> None:
        if self._timers.long_press is not None:
            self._timers.long_press.cancel()
            self._timers.long_press = None

    def _cancel_autoscroll(self) -> None:
        if self._timers.autoscroll is not None:
            self._timers.autoscroll.cancel()
            self._timers.autoscroll = None

    def _release_lock(self) -> None:
        if self._lock is not None:
            self._lock.release()
            self._lock = None

    def _reset(self) -> None:
        self._cancel_long_press()
        self._cancel_autoscroll()
        if self.engine.gesture_active:
            self.engine.abort_gesture()
        self._release_lock()
        self._ctx = GestureContext(suppress_mouse_until=self._ctx.suppress_mouse_until)

    def toggle_column(self, date: dt.date) -> None:
        if not self.read_only and self._ctx.state is GestureState.IDLE:
            self.engine.toggle_date(date, self.grid.hours)

    def toggle_row(self, hour: int) -> None:
        if not self.read_only and self._ctx.state is GestureState.IDLE:
            self.engine.toggle_hour(hour, self.grid.dates)

    def toggle_all(self) -> None:
        if not self.read_only and self._ctx.state is GestureState.IDLE:
            self.engine.toggle_all(self.grid)

    def close(self) -> None:
        """Page teardown: drop any live gesture and every timer and lock."""
        self._reset()
