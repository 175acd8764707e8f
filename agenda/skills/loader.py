from __future__ import annotations

import tomllib
from pathlib import Path

import structlog

from agenda.config import settings
from agenda.skills.types import ParsedSkill, SkillInstruction, SkillMetadata

log = structlog.get_logger()

MANIFEST_NAME = "skill.toml"
INSTRUCTION_NAME = "SKILL.md"


def parse_skill(data: dict, instructions: str, origin: str = "") -> ParsedSkill | None:
    """Build a ParsedSkill from a decoded manifest and its instruction body.

    Returns None when the manifest lacks a name or description.
    """
    skill_data = data.get("skill", {})
    name = skill_data.get("name")
    description = skill_data.get("description")
    if not name or not description:
        log.warning("skill manifest missing name/description", origin=origin)
        return None

    tags = skill_data.get("tags", [])
    priority = skill_data.get("priority", 99)
    metadata = SkillMetadata(
        name=name,
        description=description,
        tags=tuple(str(t) for t in tags) if isinstance(tags, list) else (),
        category=skill_data.get("category") or "utility",
        priority=priority if isinstance(priority, int) else 99,
        action=skill_data.get("action", ""),
    )
    instruction = SkillInstruction(name=name, instructions=instructions.strip())
    return ParsedSkill(metadata=metadata, instruction=instruction, origin=origin)


def load_skill_dir(skills_dir: Path | None = None) -> list[ParsedSkill]:
    """Scan skill folders for skill.toml + SKILL.md pairs.

    Folders without a manifest are ignored. The result is sorted by priority.
    """
    root = skills_dir or settings.skills_dir
    skills: list[ParsedSkill] = []

    if not root.is_dir():
        log.warning("skills directory not found", path=str(root))
        return skills

    for skill_dir in sorted(root.iterdir()):
        if not skill_dir.is_dir():
            continue

        toml_path = skill_dir / MANIFEST_NAME
        if not toml_path.exists():
            continue

        with open(toml_path, "rb") as f:
            data = tomllib.load(f)

        md_path = skill_dir / INSTRUCTION_NAME
        body = md_path.read_text(encoding="utf-8") if md_path.exists() else ""

        parsed = parse_skill(data, body, origin=str(skill_dir))
        if parsed is None:
            continue
        skills.append(parsed)
        log.debug("loaded skill", skill=parsed.name, path=str(skill_dir))

    skills.sort(key=lambda s: s.metadata.priority)
    log.info("skill discovery complete", count=len(skills))
    return skills
