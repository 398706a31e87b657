"""Realtime sync between the event store and an open event page.

Any participant change on the event's channel triggers a full re-fetch of
event + participants and a recomputation of the heatmap and rankings. There
is no incremental patching; at this scale a re-fetch is cheap and always
correct, and a re-fetch that finds nothing new is simply a no-op.
"""

import asyncio
import inspect
import json
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Protocol

import redis.asyncio as redis

from meetgrid.aggregation import BEST_TIMES_LIMIT, SlotTally, best_times, build_heatmap
from meetgrid.bus import EventBus
from meetgrid.events import ChangeType
from meetgrid.models.meetings import Event, Participant
from meetgrid.store import EventStore

logger = logging.getLogger("meetgrid.realtime")

_CHANGE_TYPES: frozenset[str] = frozenset({"insert", "update", "delete"})


@dataclass(frozen=True)
class ParticipantChange:
    event_type: ChangeType
    row: dict[str, Any]


ChangeHandler = Callable[[ParticipantChange], Awaitable[None]]


class Subscription(Protocol):
    async def unsubscribe(self) -> None: ...


class ChangeFeed(Protocol):
    async def subscribe(self, event_id: str, on_change: ChangeHandler) -> Subscription: ...


def decode_change(data: str | bytes) -> ParticipantChange | None:
    """Parse a bus message; anything malformed yields None."""
    try:
        payload = json.loads(data)
    except (TypeError, ValueError):
        return None
    if not isinstance(payload, dict) or payload.get("type") != "participant_change":
        return None
    event_type = payload.get("event_type")
    if event_type not in _CHANGE_TYPES:
        return None
    row = payload.get("row")
    return ParticipantChange(event_type, row if isinstance(row, dict) else {})


class RedisSubscription:
    def __init__(self, pubsub: Any, channel: str, task: asyncio.Task) -> None:
        self._pubsub = pubsub
        self._channel = channel
        self._task = task
        self.active = True

    async def unsubscribe(self) -> None:
        if not self.active:
            return
        self.active = False
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        except Exception:
            logger.exception("realtime.listener_failed channel=%s", self._channel)
        finally:
            await self._pubsub.unsubscribe(self._channel)
            if hasattr(self._pubsub, "aclose"):
                await self._pubsub.aclose()
            else:
                await self._pubsub.close()


class RedisChangeFeed:
    """Participant change notifications from the Redis event bus."""

    def __init__(self, redis_client: redis.Redis) -> None:
        self.redis_client = redis_client

    async def subscribe(self, event_id: str, on_change: ChangeHandler) -> RedisSubscription:
        channel = EventBus.participants_channel(event_id)
        pubsub = self.redis_client.pubsub()
        await pubsub.subscribe(channel)
        task = asyncio.create_task(self._listen(pubsub, channel, on_change))
        logger.debug("realtime.subscribe channel=%s", channel)
        return RedisSubscription(pubsub, channel, task)

    async def _listen(self, pubsub: Any, channel: str, on_change: ChangeHandler) -> None:
        async for message in pubsub.listen():
            if message.get("type") != "message":
                continue
            change = decode_change(message["data"])
            if change is None:
                logger.warning("realtime.bad_message channel=%s", channel)
                continue
            try:
                await on_change(change)
            except Exception:
                # One failed refresh must not end the subscription.
                logger.exception("realtime.handler_failed channel=%s", channel)


@dataclass
class EventSnapshot:
    event: Event
    participants: list[Participant]
    heatmap: dict[str, int] = field(default_factory=dict)
    best_times: list[SlotTally] = field(default_factory=list)

    @property
    def fingerprint(self) -> tuple:
        return tuple(
            (p.id, p.name, p.locked, tuple(s.key for s in p.availability))
            for p in self.participants
        )

    @property
    def max_participants(self) -> int:
        return len(self.participants)


RefreshHandler = Callable[[EventSnapshot], Awaitable[None] | None]


class RealtimeSyncBridge:
    def __init__(
        self,
        store: EventStore,
        feed: ChangeFeed,
        event_id: str,
        on_refresh: RefreshHandler,
        *,
        best_times_limit: int = BEST_TIMES_LIMIT,
    ) -> None:
        self.store = store
        self.feed = feed
        self.event_id = event_id
        self.best_times_limit = best_times_limit
        self.snapshot: EventSnapshot | None = None
        self._on_refresh = on_refresh
        self._subscription: Subscription | None = None
        self._refreshing = False
        self._dirty = False

    @property
    def subscribed(self) -> bool:
        return self._subscription is not None

    async def start(self) -> EventSnapshot | None:
        """Subscribe (once) and load the initial snapshot."""
        if self._subscription is None:
            self._subscription = await self.feed.subscribe(self.event_id, self._on_change)
        return await self.refresh()

    async def _on_change(self, change: ParticipantChange) -> None:
        logger.debug(
            "realtime.change event_id=%s type=%s name=%s",
            self.event_id,
            change.event_type,
            change.row.get("name"),
        )
        await self.refresh()

    async def _load(self) -> EventSnapshot | None:
        event = await self.store.fetch_event(self.event_id)
        if event is None:
            return None
        participants = await self.store.fetch_participants(self.event_id)
        return EventSnapshot(
            event=event,
            participants=participants,
            heatmap=build_heatmap(participants),
            best_times=best_times(participants, self.best_times_limit),
        )

    async def refresh(self) -> EventSnapshot | None:
        """Re-fetch everything; overlapping calls collapse into one follow-up."""
        if self._refreshing:
            self._dirty = True
            return self.snapshot
        self._refreshing = True
        try:
            while True:
                self._dirty = False
                snapshot = await self._load()
                if snapshot is not None:
                    changed = self.snapshot is None or snapshot.fingerprint != self.snapshot.fingerprint
                    self.snapshot = snapshot
                    if changed:
                        result = self._on_refresh(snapshot)
                        if inspect.isawaitable(result):
                            await result
                if not self._dirty:
                    break
        finally:
            self._refreshing = False
        return self.snapshot

    async def close(self) -> None:
        if self._subscription is not None:
            subscription, self._subscription = self._subscription, None
            await subscription.unsubscribe()

    async def __aenter__(self) -> "RealtimeSyncBridge":
        await self.start()
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()
