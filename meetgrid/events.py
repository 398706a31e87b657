from typing import Any, Literal, TypedDict

ChangeType = Literal["insert", "update", "delete"]


class ParticipantChangeEvent(TypedDict):
    type: Literal["participant_change"]
    event_id: str
    event_type: ChangeType
    row: dict[str, Any]


class PingEvent(TypedDict):
    type: Literal["ping"]


class PushPayload(TypedDict):
    title: str
    body: str
    event_id: str
    url: str
