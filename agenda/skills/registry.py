from __future__ import annotations

from collections.abc import Callable, Iterable

import structlog

from agenda.skills.types import ParsedSkill, SkillInstruction, SkillMetadata

log = structlog.get_logger()

SkillSource = Callable[[], Iterable[ParsedSkill]]


class SkillRegistry:
    """Holds parsed skills for the lifetime of the process.

    Built once at startup and passed to the matchers and the dispatcher.
    ``load`` only runs its source the first time; a failing source leaves the
    registry empty rather than raising.
    """

    def __init__(self) -> None:
        self._skills: dict[str, ParsedSkill] = {}
        self._loaded = False

    @property
    def loaded(self) -> bool:
        return self._loaded

    def load(self, source: SkillSource) -> None:
        if self._loaded:
            log.debug("skill_registry.already_loaded", count=len(self._skills))
            return
        self._loaded = True

        try:
            skills = list(source())
        except Exception:
            log.exception("skill_registry.load_failed")
            self._skills.clear()
            return

        for skill in skills:
            existing = self._skills.get(skill.name)
            if existing is not None:
                log.warning(
                    "skill_registry.duplicate_name",
                    skill=skill.name,
                    replaced=existing.origin,
                    by=skill.origin,
                )
            self._skills[skill.name] = skill

        log.info("skill_registry.initialized", count=len(self._skills))

    def get_all(self) -> list[ParsedSkill]:
        return list(self._skills.values())

    def get(self, name: str) -> ParsedSkill | None:
        return self._skills.get(name)

    def has(self, name: str) -> bool:
        return name in self._skills

    def get_all_metadata(self) -> list[SkillMetadata]:
        return [s.metadata for s in self._skills.values()]

    def metadata_summary(self) -> str:
        """One ``- name: description`` line per skill."""
        return "\n".join(f"- {m.name}: {m.description}" for m in self.get_all_metadata())

    def get_instruction(self, name: str) -> SkillInstruction | None:
        skill = self._skills.get(name)
        return skill.instruction if skill else None

    def get_action(self, name: str) -> str | None:
        skill = self._skills.get(name)
        return skill.metadata.action if skill else None

    def stats(self) -> dict:
        return {"total": len(self._skills), "names": list(self._skills)}
