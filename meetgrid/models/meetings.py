from datetime import date, datetime

from pydantic import BaseModel, Field

from meetgrid.slots import GridSpec, TimeSlot


class Event(BaseModel):
    id: str
    title: str
    description: str | None = None
    start_date: date
    end_date: date
    selected_dates: list[date] | None = None
    start_hour: int = Field(ge=0, le=23)
    end_hour: int = Field(ge=0, le=23)
    timezone: str
    created_at: datetime

    @property
    def grid(self) -> GridSpec:
        return GridSpec.from_event(self)


class Participant(BaseModel):
    id: str
    event_id: str
    name: str
    email: str | None = None
    availability: list[TimeSlot] = Field(default_factory=list)
    locked: bool = False
    created_at: datetime
    updated_at: datetime | None = None


class SlotOut(BaseModel):
    key: str
    date: date
    hour: int

    @classmethod
    def of(cls, slot: TimeSlot) -> "SlotOut":
        return cls(key=slot.key, date=slot.date, hour=slot.hour)


class BestTimeOut(BaseModel):
    slot: SlotOut
    count: int
    participants: list[str]


class GridOut(BaseModel):
    dates: list[date]
    hours: list[int]


class EventResponse(BaseModel):
    event: Event
    participants: list[Participant]
    grid: GridOut
    heatmap: dict[str, int]
    best_times: list[BestTimeOut]


class SlotBreakdownResponse(BaseModel):
    slot: SlotOut
    available: list[str]
    unavailable: list[str]


class UpsertResponse(BaseModel):
    participant: Participant
    is_new: bool
