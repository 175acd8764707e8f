from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends

from agenda.config import settings
from agenda.dependencies import get_registry, get_scheduler
from agenda.notifications.scheduler import NotificationScheduler
from agenda.skills.registry import SkillRegistry

router = APIRouter()


@router.get("/health")
async def health(
    registry: Annotated[SkillRegistry, Depends(get_registry)],
    scheduler: Annotated[NotificationScheduler, Depends(get_scheduler)],
):
    return {
        "status": "ok",
        "environment": settings.environment,
        "skills": len(registry.get_all()),
        "llm_provider": settings.llm_provider,
        "notifications": scheduler.running,
    }
