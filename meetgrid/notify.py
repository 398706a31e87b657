"""
Push notification hand-off.

Browsers register a web-push subscription per event. When a participant
changes, one outbox entry per subscription is queued on a Redis list for an
external delivery worker. Nothing here may fail a submission: Redis errors
are logged and swallowed.
"""
import json
import logging
from typing import Any

import redis.asyncio as redis

from meetgrid.config import PushSettings
from meetgrid.events import PushPayload

logger = logging.getLogger("meetgrid.notify")

SUBSCRIPTIONS_PREFIX = "push:subs:"
APP_NAME = "MeetGrid"


def subscriptions_key(event_id: str) -> str:
    return f"{SUBSCRIPTIONS_PREFIX}{event_id}"


def build_payload(event_id: str, title: str | None = None, body: str | None = None) -> PushPayload:
    return {
        "title": title or f"{APP_NAME} update",
        "body": body or "Someone joined or updated their availability",
        "event_id": event_id,
        "url": f"/event/{event_id}",
    }


class PushNotifier:
    def __init__(self, redis_client: redis.Redis, settings: PushSettings | None = None):
        self.redis_client = redis_client
        self.settings = settings or PushSettings()

    async def subscribe(self, event_id: str, subscription: dict[str, Any]) -> None:
        """Register (or refresh) a subscription; the endpoint is the identity."""
        key = subscriptions_key(event_id)
        await self.redis_client.hset(key, mapping={subscription["endpoint"]: json.dumps(subscription)})
        await self.redis_client.expire(key, self.settings.subscription_ttl_sec)

    async def unsubscribe(self, event_id: str, endpoint: str) -> bool:
        return bool(await self.redis_client.hdel(subscriptions_key(event_id), endpoint))

    async def subscriptions(self, event_id: str) -> list[dict[str, Any]]:
        raw = await self.redis_client.hgetall(subscriptions_key(event_id))
        subs = []
        for value in raw.values():
            try:
                subs.append(json.loads(value))
            except ValueError:
                logger.warning("notify.bad_subscription event_id=%s", event_id)
        return subs

    async def notify_change(self, event_id: str, title: str | None = None, body: str | None = None) -> int:
        """Queue a notice for every subscription of the event. Returns how many were queued."""
        payload = build_payload(event_id, title, body)
        queued = 0
        try:
            subs = await self.subscriptions(event_id)
            for sub in subs:
                await self.redis_client.rpush(
                    self.settings.outbox_key, json.dumps({"subscription": sub, "payload": payload})
                )
                queued += 1
        except redis.RedisError as e:
            logger.warning("notify.failed event_id=%s queued=%s error=%s", event_id, queued, e)
            return queued
        logger.debug("notify.queued event_id=%s count=%s", event_id, queued)
        return queued
