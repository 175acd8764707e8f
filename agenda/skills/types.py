from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class SkillMetadata:
    name: str                                   # "create_meeting"
    description: str                            # one-liner used for intent matching
    tags: tuple[str, ...] = field(default_factory=tuple)   # ("会议", "开会", "meeting")
    category: str = "utility"                   # "meeting" | "trip" | "query" | ...
    priority: int = 99                          # lower sorts first
    action: str = ""                            # opaque UI action, e.g. "open_create_meeting_modal"


@dataclass(frozen=True)
class SkillInstruction:
    name: str
    instructions: str                           # Markdown body of SKILL.md


@dataclass(frozen=True)
class ParsedSkill:
    metadata: SkillMetadata
    instruction: SkillInstruction
    origin: str = ""                            # where the skill was loaded from

    @property
    def name(self) -> str:
        return self.metadata.name
