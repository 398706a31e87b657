import asyncio
import datetime as dt
import json
from unittest.mock import AsyncMock, MagicMock

import fakeredis.aioredis as fakeredis
import pytest
import redis.asyncio as redis

from meetgrid.bus import EventBus
from meetgrid.realtime import ParticipantChange, RealtimeSyncBridge, RedisChangeFeed, decode_change
from meetgrid.slots import TimeSlot
from meetgrid.store import MemoryStore

from meetgrid.tests.helpers import FakeFeed

D1 = dt.date(2025, 6, 1)


class CountingStore(MemoryStore):
    def __init__(self):
        super().__init__()
        self.fetches = 0
        self.gate: asyncio.Event | None = None

    async def fetch_participants(self, event_id):
        self.fetches += 1
        if self.gate is not None:
            await self.gate.wait()
        return await super().fetch_participants(event_id)


async def _setup():
    store = CountingStore()
    event = await store.create_event(
        title="Standup", start_date=D1, end_date=D1, start_hour=9, end_hour=10, timezone="UTC"
    )
    return store, event


class TestDecodeChange:
    def test_valid_message(self):
        change = decode_change(json.dumps({"type": "participant_change", "event_type": "update", "row": {"name": "A"}}))
        assert change == ParticipantChange("update", {"name": "A"})

    @pytest.mark.parametrize(
        "data",
        [
            "not json",
            json.dumps([1, 2]),
            json.dumps({"type": "ping"}),
            json.dumps({"type": "participant_change", "event_type": "truncate"}),
        ],
    )
    def test_malformed_messages_are_ignored(self, data):
        assert decode_change(data) is None


class TestRealtimeSyncBridge:
    @pytest.mark.asyncio
    async def test_start_subscribes_once_and_loads(self):
        store, event = await _setup()
        feed = FakeFeed()
        snapshots = []
        bridge = RealtimeSyncBridge(store, feed, event.id, snapshots.append)
        await bridge.start()
        await bridge.start()
        assert feed.subscribed == 1
        assert len(snapshots) == 1
        assert snapshots[0].event.id == event.id
        await bridge.close()
        await bridge.close()
        assert feed.unsubscribed == 1

    @pytest.mark.asyncio
    async def test_change_triggers_refetch_and_recompute(self):
        store, event = await _setup()
        feed = FakeFeed()
        snapshots = []
        async with RealtimeSyncBridge(store, feed, event.id, snapshots.append):
            await store.upsert_participant(event.id, "Alice", [TimeSlot(D1, 9)])
            await feed.emit("insert", {"name": "Alice"})
        assert len(snapshots) == 2
        latest = snapshots[-1]
        assert latest.heatmap == {"2025-06-01-9": 1}
        assert latest.best_times[0].participants[0].name == "Alice"
        assert feed.unsubscribed == 1

    @pytest.mark.asyncio
    async def test_duplicate_notification_is_noop(self):
        store, event = await _setup()
        feed = FakeFeed()
        snapshots = []
        bridge = RealtimeSyncBridge(store, feed, event.id, snapshots.append)
        await bridge.start()
        await feed.emit()
        await feed.emit()
        assert store.fetches == 3
        assert len(snapshots) == 1

    @pytest.mark.asyncio
    async def test_notifications_during_refresh_coalesce(self):
        store, event = await _setup()
        feed = FakeFeed()
        snapshots = []
        bridge = RealtimeSyncBridge(store, feed, event.id, snapshots.append)
        await bridge.start()
        store.fetches = 0
        store.gate = asyncio.Event()
        first = asyncio.create_task(feed.emit())
        await asyncio.sleep(0)
        await store.upsert_participant(event.id, "Bob", [TimeSlot(D1, 10)])
        for _ in range(3):
            await feed.emit()
        store.gate.set()
        await first
        assert store.fetches == 2
        assert snapshots[-1].heatmap == {"2025-06-01-10": 1}

    @pytest.mark.asyncio
    async def test_missing_event_yields_no_snapshot(self):
        store = CountingStore()
        feed = FakeFeed()
        snapshots = []
        bridge = RealtimeSyncBridge(store, feed, "missing", snapshots.append)
        assert await bridge.start() is None
        assert snapshots == []
        await bridge.close()

    @pytest.mark.asyncio
    async def test_async_refresh_handler(self):
        store, event = await _setup()
        seen = []

        async def on_refresh(snapshot):
            seen.append(snapshot.event.id)

        bridge = RealtimeSyncBridge(store, FakeFeed(), event.id, on_refresh)
        await bridge.start()
        assert seen == [event.id]


class TestRedisChangeFeed:
    @pytest.mark.asyncio
    async def test_delivers_published_changes(self):
        redis_client = fakeredis.FakeRedis(decode_responses=True)
        feed = RedisChangeFeed(redis_client)
        bus = EventBus(redis_client)
        received = asyncio.Queue()

        async def on_change(change):
            await received.put(change)

        subscription = await feed.subscribe("evt123", on_change)
        await redis_client.publish(EventBus.participants_channel("evt123"), "garbage")
        await bus.publish_change(EventBus.build_change("evt123", "insert", {"name": "Alice"}))
        change = await asyncio.wait_for(received.get(), timeout=2)
        assert change == ParticipantChange("insert", {"name": "Alice"})
        await subscription.unsubscribe()
        await subscription.unsubscribe()
        assert received.empty()

    @pytest.mark.asyncio
    async def test_handler_errors_do_not_end_subscription(self):
        redis_client = fakeredis.FakeRedis(decode_responses=True)
        feed = RedisChangeFeed(redis_client)
        bus = EventBus(redis_client)
        calls = []
        done = asyncio.Event()

        async def on_change(change):
            calls.append(change.event_type)
            if len(calls) == 1:
                raise RuntimeError("refresh failed")
            done.set()

        subscription = await feed.subscribe("evt9", on_change)
        await bus.publish_change(EventBus.build_change("evt9", "insert", {}))
        await bus.publish_change(EventBus.build_change("evt9", "update", {}))
        await asyncio.wait_for(done.wait(), timeout=2)
        assert calls == ["insert", "update"]
        await subscription.unsubscribe()

    @pytest.mark.asyncio
    async def test_unsubscribe_after_listener_failure_releases_pubsub(self):
        pubsub = MagicMock()
        pubsub.subscribe = AsyncMock()
        pubsub.unsubscribe = AsyncMock()
        pubsub.aclose = AsyncMock()

        async def listen():
            raise redis.ConnectionError("connection lost")
            yield

        pubsub.listen = listen
        redis_client = MagicMock()
        redis_client.pubsub.return_value = pubsub
        feed = RedisChangeFeed(redis_client)

        async def on_change(change):
            pass

        subscription = await feed.subscribe("evt7", on_change)
        await asyncio.sleep(0)
        await subscription.unsubscribe()
        assert subscription.active is False
        pubsub.unsubscribe.assert_awaited_once_with(EventBus.participants_channel("evt7"))
        pubsub.aclose.assert_awaited_once()
