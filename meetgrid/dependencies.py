"""Dependency injection for FastAPI endpoints.

This module provides FastAPI dependencies for accessing shared resources
like Redis, the event bus and the event store, instead of reading global
state directly.

Usage in controllers:
    from meetgrid.dependencies import Store

    @router.get("/events/{event_id}")
    async def get_event(event_id: str, store: Store):
        return await store.fetch_event(event_id)
"""

from typing import Annotated

from fastapi import Depends

from meetgrid import state
from meetgrid.bus import EventBus
from meetgrid.config import MeetingSettings, PushSettings, get_settings
from meetgrid.errors import ServiceUnavailableError
from meetgrid.notify import PushNotifier
from meetgrid.store import EventStore


def get_optional_event_bus() -> EventBus | None:
    return state.event_bus


def get_store() -> EventStore:
    """Get the event store.

    Raises:
        ServiceUnavailableError: If no store was configured at startup.
    """
    if state.store is None:
        raise ServiceUnavailableError(detail="Event store not initialized")
    return state.store


def get_notifier() -> PushNotifier | None:
    return state.notifier


def get_meeting_settings() -> MeetingSettings:
    return get_settings().meetings


def get_push_settings() -> PushSettings:
    return get_settings().push


OptionalBus = Annotated[EventBus | None, Depends(get_optional_event_bus)]
Store = Annotated[EventStore, Depends(get_store)]
Notifier = Annotated[PushNotifier | None, Depends(get_notifier)]
Meetings = Annotated[MeetingSettings, Depends(get_meeting_settings)]
Push = Annotated[PushSettings, Depends(get_push_settings)]
