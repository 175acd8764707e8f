from __future__ import annotations

import structlog

from agenda.schemas.match import MatchResult
from agenda.skills.registry import SkillRegistry

log = structlog.get_logger()


class QuickMatcher:
    """Keyword/tag matcher over the registry. Runs before any network call."""

    def __init__(self, registry: SkillRegistry) -> None:
        self._registry = registry

    def match(self, user_input: str) -> MatchResult | None:
        """Best skill by share of its tags found in the input, or None without any hit.

        ``confidence = min(0.5 + 0.5 * score, 1.0)``; ties keep the first skill seen.
        """
        text = user_input.lower()
        best_name = ""
        best_score = 0.0
        best_hits: list[str] = []

        for skill in self._registry.get_all():
            tags = skill.metadata.tags
            if not tags:
                continue
            hits = [t for t in tags if t and t.lower() in text]
            score = len(hits) / len(tags)
            if score > best_score:
                best_name = skill.name
                best_score = score
                best_hits = hits

        if not best_name:
            return None

        confidence = min(0.5 + 0.5 * best_score, 1.0)
        log.debug("intent.quick_match", skill=best_name, score=best_score, hits=best_hits)
        return MatchResult(
            matched=True,
            skill_name=best_name,
            confidence=confidence,
            reasoning=f"关键词匹配: {'、'.join(best_hits)}",
        )
