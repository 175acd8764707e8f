from __future__ import annotations

from fastapi import HTTPException, Request, status

from agenda.core.dispatcher import ConversationDispatcher
from agenda.core.schedule_store import ScheduleStore
from agenda.notifications.scheduler import NotificationScheduler
from agenda.skills.registry import SkillRegistry


def _state(request: Request, name: str):
    value = getattr(request.app.state, name, None)
    if value is None:
        raise HTTPException(status.HTTP_503_SERVICE_UNAVAILABLE, f"{name} is not initialised")
    return value


def get_registry(request: Request) -> SkillRegistry:
    return _state(request, "registry")


def get_dispatcher(request: Request) -> ConversationDispatcher:
    return _state(request, "dispatcher")


def get_store(request: Request) -> ScheduleStore:
    return _state(request, "store")


def get_scheduler(request: Request) -> NotificationScheduler:
    return _state(request, "scheduler")
