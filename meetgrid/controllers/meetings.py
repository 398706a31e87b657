import logging
from datetime import date
from typing import List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import redis.asyncio as redis
from fastapi import APIRouter
from pydantic import BaseModel, Field, field_validator, model_validator

from meetgrid.aggregation import best_times, build_heatmap, slot_breakdown
from meetgrid.bus import EventBus
from meetgrid.dependencies import Meetings, Notifier, OptionalBus, Store
from meetgrid.errors import BadRequestError, NotFoundError, ValidationError
from meetgrid.models.meetings import (
    BestTimeOut,
    Event,
    EventResponse,
    GridOut,
    SlotBreakdownResponse,
    SlotOut,
    UpsertResponse,
)
from meetgrid.slots import TimeSlot, parse_slot_key
from meetgrid.store import EventStore

logger = logging.getLogger("meetgrid.meetings")
router = APIRouter()


class CreateEventRequest(BaseModel):
    title: str
    description: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    selected_dates: Optional[List[date]] = None
    start_hour: int = Field(ge=0, le=23)
    end_hour: int = Field(ge=0, le=23)
    timezone: str = "UTC"

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("title must not be empty")
        return v

    @field_validator("description")
    @classmethod
    def validate_description(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return v.strip() or None

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"unknown timezone: {v}")
        return v

    @model_validator(mode="after")
    def validate_range(self) -> "CreateEventRequest":
        if self.selected_dates:
            self.selected_dates = sorted(set(self.selected_dates))
            self.start_date = self.selected_dates[0]
            self.end_date = self.selected_dates[-1]
        elif self.start_date is None or self.end_date is None:
            raise ValueError("either selected_dates or start_date and end_date are required")
        if self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        if self.end_hour < self.start_hour:
            raise ValueError("end_hour must not be before start_hour")
        return self


class SlotIn(BaseModel):
    date: date
    hour: int = Field(ge=0, le=23)


class AvailabilityRequest(BaseModel):
    name: str
    email: Optional[str] = None
    availability: List[SlotIn]
    lock: bool = False
    password: Optional[str] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        return v.strip()

    @field_validator("email", "password")
    @classmethod
    def blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return v.strip() or None

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and len(v) > 200:
            raise ValueError("password must be at most 200 characters")
        return v


async def _require_event(store: EventStore, event_id: str) -> Event:
    event = await store.fetch_event(event_id)
    if event is None:
        logger.warning("Event not found: %s", event_id)
        raise NotFoundError(detail="Event not found", event_id=event_id)
    return event


@router.post("/events", status_code=201)
async def create_event(req: CreateEventRequest, store: Store, meetings: Meetings) -> Event:
    if len(req.title) > meetings.max_title_length:
        raise BadRequestError(detail=f"title must be at most {meetings.max_title_length} characters")
    day_count = len(req.selected_dates) if req.selected_dates else (req.end_date - req.start_date).days + 1
    if day_count > meetings.max_dates:
        raise BadRequestError(detail=f"an event may span at most {meetings.max_dates} days")
    logger.info("POST /events title=%s days=%d hours=%d-%d", req.title, day_count, req.start_hour, req.end_hour)
    event = await store.create_event(
        title=req.title,
        start_date=req.start_date,
        end_date=req.end_date,
        start_hour=req.start_hour,
        end_hour=req.end_hour,
        timezone=req.timezone,
        description=req.description,
        selected_dates=req.selected_dates,
    )
    logger.info("Created event id=%s", event.id)
    return event


@router.get("/events/{event_id}")
async def get_event(event_id: str, store: Store, meetings: Meetings) -> EventResponse:
    event = await _require_event(store, event_id)
    participants = await store.fetch_participants(event_id)
    grid = event.grid
    ranked = best_times(participants, meetings.best_times_limit)
    logger.info("Returning event %s with %d participants", event_id, len(participants))
    return EventResponse(
        event=event,
        participants=participants,
        grid=GridOut(dates=list(grid.dates), hours=list(grid.hours)),
        heatmap=build_heatmap(participants),
        best_times=[
            BestTimeOut(slot=SlotOut.of(t.slot), count=t.count, participants=[p.name for p in t.participants])
            for t in ranked
        ],
    )


@router.post("/events/{event_id}/availability")
async def submit_availability(
    event_id: str,
    req: AvailabilityRequest,
    store: Store,
    meetings: Meetings,
    bus: OptionalBus,
    notifier: Notifier,
) -> UpsertResponse:
    if not req.name or not req.availability:
        raise ValidationError(event_id=event_id)
    if len(req.name) > meetings.max_name_length:
        raise BadRequestError(detail=f"name must be at most {meetings.max_name_length} characters")
    if req.lock and not req.password:
        raise ValidationError(detail="A password is required to lock a name", error_code="password_required")
    logger.info("POST /events/%s/availability name=%s slots=%d", event_id, req.name, len(req.availability))

    event = await _require_event(store, event_id)
    grid = event.grid
    slots = [TimeSlot(s.date, s.hour) for s in req.availability]
    outside = [s.key for s in slots if not grid.contains(s)]
    if outside:
        logger.warning("Invalid slot %s for event %s", outside[0], event_id)
        raise BadRequestError(detail=f"Invalid slot: {outside[0]}", slots=outside)

    participant, is_new = await store.upsert_participant(
        event_id, req.name, slots, email=req.email, lock=req.lock, password=req.password
    )
    logger.info("Upserted availability for %s on event %s new=%s", req.name, event_id, is_new)

    if bus is not None:
        change = EventBus.build_change(event_id, "insert" if is_new else "update", participant.model_dump(mode="json"))
        try:
            await bus.publish_change(change)
        except redis.RedisError as e:
            logger.warning("publish failed event_id=%s error=%s", event_id, e)
    if notifier is not None:
        await notifier.notify_change(event_id, body=f"{participant.name} updated their availability")
    return UpsertResponse(participant=participant, is_new=is_new)


@router.get("/events/{event_id}/slots/{slot_key}")
async def get_slot(event_id: str, slot_key: str, store: Store) -> SlotBreakdownResponse:
    try:
        slot = parse_slot_key(slot_key)
    except ValueError as e:
        raise BadRequestError(detail=str(e))
    await _require_event(store, event_id)
    breakdown = slot_breakdown(await store.fetch_participants(event_id), slot)
    return SlotBreakdownResponse(
        slot=SlotOut.of(slot),
        available=[p.name for p in breakdown.available],
        unavailable=[p.name for p in breakdown.unavailable],
    )
