"""
Event bus for participant changes, backed by Redis pub/sub.
"""
import json
from typing import Any, Final

import redis.asyncio as redis

from meetgrid.events import ChangeType, ParticipantChangeEvent

CHANNEL_PARTICIPANTS_PREFIX: Final[str] = "participants:"


class EventBus:
    def __init__(self, redis_client: redis.Redis):
        self.redis_client = redis_client

    @staticmethod
    def participants_channel(event_id: str) -> str:
        return f"{CHANNEL_PARTICIPANTS_PREFIX}{event_id}"

    @staticmethod
    def build_change(event_id: str, event_type: ChangeType, row: dict[str, Any]) -> ParticipantChangeEvent:
        return {
            "type": "participant_change",
            "event_id": event_id,
            "event_type": event_type,
            "row": row,
        }

    async def publish_change(self, event: ParticipantChangeEvent) -> int:
        """Publish to the event's channel; returns the number of receivers."""
        return await self.redis_client.publish(
            self.participants_channel(event["event_id"]), json.dumps(event, default=str)
        )
