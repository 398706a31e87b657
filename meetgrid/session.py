"""The event page: one participant's draft selection against live event data.

``EventSession`` wires the selection engine, the gesture controller, the
realtime bridge and the store together and owns the submission flow. A
failed submission never touches the local selection; the user can fix the
problem (password, connectivity) and submit the same draft again.
"""

import logging
from dataclasses import dataclass
from enum import Enum

import redis.asyncio as redis

from meetgrid.aggregation import BEST_TIMES_LIMIT, SlotBreakdown, heat_intensity, slot_breakdown
from meetgrid.bus import EventBus
from meetgrid.config import get_settings
from meetgrid.errors import APIError, NameLockedError, NotFoundError, RemoteFailure, ValidationError
from meetgrid.gestures import GestureConfig, GestureController, GridSurface
from meetgrid.models.meetings import Participant
from meetgrid.notify import PushNotifier
from meetgrid.realtime import ChangeFeed, EventSnapshot, RealtimeSyncBridge
from meetgrid.scheduling import Scheduler
from meetgrid.selection import SelectionEngine
from meetgrid.slots import GridSpec, TimeSlot
from meetgrid.store import EventStore

logger = logging.getLogger("meetgrid.session")


class SubmitState(str, Enum):
    IDLE = "idle"
    SUBMITTING = "submitting"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True)
class SubmitStatus:
    state: SubmitState = SubmitState.IDLE
    error: str | None = None
    message: str | None = None

    @classmethod
    def failed(cls, exc: APIError) -> "SubmitStatus":
        return cls(SubmitState.FAILED, exc.error, exc.detail)


class EventSession:
    def __init__(
        self,
        store: EventStore,
        feed: ChangeFeed,
        event_id: str,
        *,
        bus: EventBus | None = None,
        notifier: PushNotifier | None = None,
        scheduler: Scheduler | None = None,
        gesture_config: GestureConfig | None = None,
        preview: bool | None = None,
        best_times_limit: int = BEST_TIMES_LIMIT,
    ) -> None:
        self.store = store
        self.event_id = event_id
        self.bus = bus
        self.notifier = notifier
        grid = get_settings().grid
        self.gesture_config = gesture_config if gesture_config is not None else grid.gesture_config()
        if preview is None:
            preview = grid.preview
        self.engine = SelectionEngine(preview=preview, scheduler=scheduler)
        self.bridge = RealtimeSyncBridge(
            store, feed, event_id, self._apply_snapshot, best_times_limit=best_times_limit
        )
        self.controller: GestureController | None = None
        self.status = SubmitStatus()
        self.name = ""
        self.focus: TimeSlot | None = None
        self._scheduler = scheduler
        self._base_keys: set[str] = set()

    @property
    def snapshot(self) -> EventSnapshot | None:
        return self.bridge.snapshot

    @property
    def grid(self) -> GridSpec:
        if self.snapshot is None:
            raise NotFoundError(detail="Event not loaded", event_id=self.event_id)
        return self.snapshot.event.grid

    @property
    def dirty(self) -> bool:
        """The draft differs from the last stored (or loaded) selection."""
        return {s.key for s in self.engine.committed} != self._base_keys

    @property
    def can_submit(self) -> bool:
        return (
            bool(self.name.strip())
            and bool(self.engine.committed)
            and self.status.state is not SubmitState.SUBMITTING
        )

    async def open(self) -> EventSnapshot:
        snapshot = await self.bridge.start()
        if snapshot is None:
            await self.bridge.close()
            raise NotFoundError(detail="Event not found", event_id=self.event_id)
        return snapshot

    def attach(self, surface: GridSurface) -> GestureController:
        """Bind a rendered grid. Only one controller exists per session."""
        if self.controller is not None:
            self.controller.close()
        self.controller = GestureController(
            self.engine,
            surface,
            self.grid,
            config=self.gesture_config,
            scheduler=self._scheduler,
            on_focus=self._set_focus,
        )
        return self.controller

    def _set_focus(self, slot: TimeSlot) -> None:
        self.focus = slot

    def set_name(self, name: str) -> None:
        self.name = name
        if self.snapshot is not None:
            self._rebase_from(self.snapshot)

    def _own_row(self, snapshot: EventSnapshot) -> Participant | None:
        name = self.name.strip()
        if not name:
            return None
        return next((p for p in snapshot.participants if p.name == name), None)

    def _rebase(self, slots: list[TimeSlot]) -> None:
        self.engine.replace_committed(slots)
        self._base_keys = {s.key for s in self.engine.committed}

    def _rebase_from(self, snapshot: EventSnapshot) -> None:
        # Never under a live gesture or unsaved edits.
        if self.engine.gesture_active or self.dirty:
            return
        row = self._own_row(snapshot)
        if row is not None:
            self._rebase(row.availability)

    def _apply_snapshot(self, snapshot: EventSnapshot) -> None:
        logger.debug(
            "session.snapshot event_id=%s participants=%s", self.event_id, len(snapshot.participants)
        )
        self._rebase_from(snapshot)

    def heat(self, slot: TimeSlot) -> float:
        if self.snapshot is None:
            return 0.0
        return heat_intensity(self.snapshot.heatmap.get(slot.key, 0), self.snapshot.max_participants)

    def focus_breakdown(self) -> SlotBreakdown | None:
        if self.focus is None or self.snapshot is None:
            return None
        return slot_breakdown(self.snapshot.participants, self.focus)

    async def submit(
        self,
        name: str | None = None,
        *,
        email: str | None = None,
        lock: bool = False,
        password: str | None = None,
    ) -> Participant:
        """Store the draft under ``name``.

        Raises:
            ValidationError: blank name, no slots, or a lock without a password.
            NameLockedError: the name is locked and the password does not match.
            RemoteFailure: the store could not be reached.
        """
        if name is not None:
            self.name = name
        clean_name = self.name.strip()
        slots = self.engine.committed
        password = (password or "").strip() or None
        if not clean_name or not slots:
            exc = ValidationError(event_id=self.event_id)
            self.status = SubmitStatus.failed(exc)
            raise exc
        if lock and password is None:
            exc = ValidationError(
                detail="A password is required to lock a name", error_code="password_required"
            )
            self.status = SubmitStatus.failed(exc)
            raise exc

        self.status = SubmitStatus(SubmitState.SUBMITTING)
        try:
            participant, is_new = await self.store.upsert_participant(
                self.event_id,
                clean_name,
                slots,
                email=(email or "").strip() or None,
                lock=lock,
                password=password,
            )
        except (NameLockedError, RemoteFailure) as e:
            logger.info("session.submit_failed event_id=%s name=%s error=%s", self.event_id, clean_name, e.error)
            self.status = SubmitStatus.failed(e)
            raise

        self.name = clean_name
        self._rebase(participant.availability)
        self.status = SubmitStatus(SubmitState.SUCCEEDED)
        logger.info("session.submitted event_id=%s name=%s new=%s", self.event_id, clean_name, is_new)

        if self.bus is not None:
            change = EventBus.build_change(
                self.event_id, "insert" if is_new else "update", participant.model_dump(mode="json")
            )
            try:
                await self.bus.publish_change(change)
            except redis.RedisError as e:
                logger.warning("session.publish_failed event_id=%s error=%s", self.event_id, e)
        if self.notifier is not None:
            await self.notifier.notify_change(self.event_id)
        try:
            await self.bridge.refresh()
        except RemoteFailure:
            logger.warning("session.refresh_failed event_id=%s", self.event_id)
        return participant

    async def close(self) -> None:
        if self.controller is not None:
            self.controller.close()
            self.controller = None
        self.engine.close()
        await self.bridge.close()

    async def __aenter__(self) -> "EventSession":
        await self.open()
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()
