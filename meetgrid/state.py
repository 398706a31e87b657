from typing import Optional

import redis.asyncio as redis

from meetgrid.bus import EventBus
from meetgrid.notify import PushNotifier
from meetgrid.store import EventStore

# Global runtime state initialized in lifespan.setup_resources
redis_client: Optional[redis.Redis] = None
event_bus: Optional[EventBus] = None
store: Optional[EventStore] = None
notifier: Optional[PushNotifier] = None
