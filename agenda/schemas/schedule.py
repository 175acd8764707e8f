from __future__ import annotations

import uuid
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class EventType(StrEnum):
    meeting = "meeting"
    trip = "trip"
    general = "general"


class TransportMode(StrEnum):
    flight = "flight"
    train = "train"
    car = "car"
    ship = "ship"
    other = "other"


ID_PREFIXES = {
    EventType.meeting: "MTG",
    EventType.trip: "TRIP",
    EventType.general: "EVT",
}


def new_event_id(event_type: EventType) -> str:
    return f"{ID_PREFIXES[event_type]}-{uuid.uuid4().hex[:12]}"


class ScheduledEvent(BaseModel):
    """A confirmed calendar entry produced from a completed form."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    content: str
    date: str = Field(..., description="YYYY-MM-DD")
    start_time: str = Field(..., description="HH:mm")
    end_time: str = Field(..., description="HH:mm")
    end_date: str | None = None
    type: EventType = EventType.general
    location: str = ""
    attendees: list[str] = Field(default_factory=list)
    transport: str | None = None
    reason: str | None = None
    room_type: str | None = None
    origin: str | None = None
