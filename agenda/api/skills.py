from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status

from agenda.dependencies import get_registry
from agenda.skills.registry import SkillRegistry

router = APIRouter()


@router.get("")
async def list_skills(registry: Annotated[SkillRegistry, Depends(get_registry)]):
    """Skill metadata only; instruction bodies stay server side."""
    return {
        "skills": [
            {
                "name": m.name,
                "description": m.description,
                "tags": list(m.tags),
                "category": m.category,
                "priority": m.priority,
                "action": m.action,
            }
            for m in registry.get_all_metadata()
        ],
        "total": len(registry.get_all()),
    }


@router.get("/{name}")
async def get_skill(name: str, registry: Annotated[SkillRegistry, Depends(get_registry)]):
    skill = registry.get(name)
    if skill is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, f"Unknown skill: {name}")
    return {
        "name": skill.name,
        "description": skill.metadata.description,
        "tags": list(skill.metadata.tags),
        "category": skill.metadata.category,
        "action": skill.metadata.action,
        "instructions": skill.instruction.instructions,
    }
