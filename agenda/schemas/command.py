from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from agenda.forms.fields import TaskForm
from agenda.schemas.match import MatchResult
from agenda.schemas.schedule import ScheduledEvent


class UIAction(BaseModel):
    """Opaque action for the UI layer, e.g. ``open_create_meeting_modal``."""

    name: str
    params: dict[str, Any] = Field(default_factory=dict)


class TurnRequest(BaseModel):
    session_id: str = Field(..., min_length=1)
    text: str = Field(..., min_length=1, description="Free-text user input")
    api_key: str | None = Field(
        default=None, description="Overrides the configured key; empty string forces fallback mode"
    )
    provider: str | None = None


class TurnResponse(BaseModel):
    reply: str
    workflow: str | None = None
    skill_name: str | None = None
    match: MatchResult | None = None
    form: TaskForm | None = None
    ready_to_submit: bool = False
    ui_action: UIAction | None = None


class SubmitRequest(BaseModel):
    session_id: str = Field(..., min_length=1)


class SubmitResponse(BaseModel):
    success: bool
    event: ScheduledEvent | None = None
    errors: list[str] = Field(default_factory=list)
    reply: str = ""
