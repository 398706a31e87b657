"""Application startup and shutdown.

Builds the shared resources (Redis, event bus, event store, push notifier),
publishes them on :mod:`meetgrid.state` for the dependency layer, and tears
them down again on shutdown.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

import redis.asyncio as redis
from fastapi import FastAPI
from redis.asyncio import BlockingConnectionPool as RedisConnectionPool

from meetgrid import db, state
from meetgrid.bus import EventBus
from meetgrid.config import get_settings
from meetgrid.notify import PushNotifier
from meetgrid.store import EventStore, MemoryStore, PostgresStore

logger = logging.getLogger(__name__)


@dataclass
class LifespanResources:
    """Container for resources initialized during lifespan."""

    redis_client: redis.Redis | None = None
    event_bus: EventBus | None = None
    store: EventStore | None = None
    notifier: PushNotifier | None = None
    db_enabled: bool = False


async def init_redis() -> redis.Redis:
    """Initialize Redis connection with connection pool.

    Returns:
        Configured Redis client.
    """
    settings = get_settings()

    redis_pool = RedisConnectionPool(
        host=settings.redis.host,
        port=settings.redis.port,
        password=settings.redis.password if settings.redis.password else None,
        max_connections=settings.redis.max_connections,
        timeout=settings.redis.pool_timeout_sec,
        health_check_interval=settings.redis.health_check_interval,
        socket_timeout=settings.redis.socket_timeout,
        socket_connect_timeout=settings.redis.socket_connect_timeout,
        retry_on_timeout=settings.redis.retry_on_timeout,
        decode_responses=True,
    )
    return redis.Redis(connection_pool=redis_pool, decode_responses=True)


async def init_store() -> tuple[EventStore, bool]:
    """Pick the event store named by STORE_BACKEND.

    Returns:
        The store and whether the Postgres pool was opened.
    """
    settings = get_settings()
    if settings.store.backend == "memory":
        logger.info("store.backend memory")
        return MemoryStore(), False
    await db.init_pool()
    logger.info("store.backend postgres")
    return PostgresStore(id_length=settings.meetings.event_id_length), True


async def setup_resources() -> LifespanResources:
    """Set up all shared resources."""
    settings = get_settings()
    resources = LifespanResources()

    resources.redis_client = await init_redis()
    resources.event_bus = EventBus(resources.redis_client)
    resources.notifier = PushNotifier(resources.redis_client, settings.push)
    resources.store, resources.db_enabled = await init_store()

    state.redis_client = resources.redis_client
    state.event_bus = resources.event_bus
    state.store = resources.store
    state.notifier = resources.notifier

    return resources


async def cleanup_resources(resources: LifespanResources) -> None:
    """Clean up all resources on shutdown."""
    if resources.db_enabled:
        try:
            await db.close_pool()
        except Exception:
            logger.exception("db.close_pool failed")

    if resources.redis_client:
        aclose = getattr(resources.redis_client, "aclose", None)
        if callable(aclose):
            await aclose()
        else:
            close = getattr(resources.redis_client, "close", None)
            if callable(close):
                await close()

    state.redis_client = None
    state.event_bus = None
    state.store = None
    state.notifier = None


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    resources = await setup_resources()
    try:
        yield
    finally:
        await cleanup_resources(resources)
