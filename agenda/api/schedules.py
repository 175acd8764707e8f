from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status

from agenda.core.schedule_store import ScheduleStore
from agenda.dependencies import get_store
from agenda.schemas.schedule import ScheduledEvent

router = APIRouter()


@router.get("", response_model=list[ScheduledEvent])
async def list_schedules(store: Annotated[ScheduleStore, Depends(get_store)]):
    return store.list()


@router.get("/upcoming", response_model=list[ScheduledEvent])
async def upcoming_schedules(
    store: Annotated[ScheduleStore, Depends(get_store)],
    days: int = Query(default=7, ge=1, le=60),
):
    """Events from today through the next ``days`` days."""
    return store.upcoming(days)


@router.get("/{event_id}", response_model=ScheduledEvent)
async def get_schedule(event_id: str, store: Annotated[ScheduleStore, Depends(get_store)]):
    event = store.get(event_id)
    if event is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "Schedule not found")
    return event
