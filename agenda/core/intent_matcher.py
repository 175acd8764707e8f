from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

import structlog
from pydantic import ValidationError

from agenda.config import settings
from agenda.connectors.llm import LLMConfig, LLMGateway
from agenda.core.quick_matcher import QuickMatcher
from agenda.schemas.match import MatchResult
from agenda.skills.registry import SkillRegistry

log = structlog.get_logger()

SYSTEM_INSTRUCTION = """\
You are the intent router of a scheduling assistant. Decide which skill, if any, \
handles the user's message. Answer with JSON only."""

MATCH_PROMPT_TEMPLATE = """\
## Available skills
{skills}

## User message
{user_input}

## Output format
Return a JSON object with this exact structure:
{{
  "matched": true | false,
  "skillName": "<one of the skill names above, or empty>",
  "confidence": <number between 0 and 1>,
  "reasoning": "<one short sentence>"
}}

## Rules
1. Only use a skill name listed above. Never invent one.
2. If no skill fits (small talk, unrelated questions), return matched=false with \
skillName="" and confidence=0.
3. Judge by meaning, not only by shared words.
"""


class MatchSource(StrEnum):
    quick = "quick"
    llm = "llm"
    fallback = "fallback"
    none = "none"


@dataclass
class MatchOutcome:
    result: MatchResult
    source: MatchSource
    failure: str | None = None


def build_match_prompt(registry: SkillRegistry, user_input: str) -> str:
    lines = []
    for index, meta in enumerate(registry.get_all_metadata(), start=1):
        tags = f" [{', '.join(meta.tags)}]" if meta.tags else ""
        lines.append(f"{index}. {meta.name}{tags}\n   {meta.description}")
    return MATCH_PROMPT_TEMPLATE.format(
        skills="\n".join(lines) or "(none)",
        user_input=user_input,
    )


class IntentMatchEngine:
    """Two-tier skill matching: tag matcher first, LLM only when it is unsure."""

    def __init__(
        self,
        registry: SkillRegistry,
        gateway: LLMGateway,
        threshold: float | None = None,
    ) -> None:
        self._registry = registry
        self._gateway = gateway
        self._quick = QuickMatcher(registry)
        self._threshold = settings.quick_match_threshold if threshold is None else threshold

    async def match_skill(self, user_input: str, llm_config: LLMConfig) -> MatchResult:
        return (await self.match(user_input, llm_config)).result

    async def match(self, user_input: str, llm_config: LLMConfig) -> MatchOutcome:
        quick = self._quick.match(user_input)
        if quick is not None and quick.confidence >= self._threshold:
            log.info("intent.matched", source="quick", skill=quick.skill_name, confidence=quick.confidence)
            return MatchOutcome(result=quick, source=MatchSource.quick)

        prompt = build_match_prompt(self._registry, user_input)
        response = await self._gateway.call(prompt, SYSTEM_INSTRUCTION, llm_config)
        if not response.ok:
            return self._fallback(quick, str(response.failure))

        try:
            verdict = MatchResult.model_validate(response.data)
        except ValidationError as exc:
            log.warning("intent.invalid_llm_verdict", error=str(exc))
            return self._fallback(quick, "malformed")

        if verdict.matched and not self._registry.has(verdict.skill_name):
            log.warning("intent.hallucinated_skill", skill=verdict.skill_name)
            return self._fallback(quick, "hallucination")

        log.info(
            "intent.matched",
            source="llm",
            matched=verdict.matched,
            skill=verdict.skill_name,
            confidence=verdict.confidence,
        )
        return MatchOutcome(result=verdict, source=MatchSource.llm)

    def _fallback(self, quick: MatchResult | None, failure: str) -> MatchOutcome:
        # Without a keyword hit there is nothing to fall back to.
        if quick is None:
            log.info("intent.no_match", failure=failure)
            return MatchOutcome(
                result=MatchResult.no_match("未识别到匹配的技能"),
                source=MatchSource.none,
                failure=failure,
            )
        log.info("intent.fallback", failure=failure, skill=quick.skill_name)
        return MatchOutcome(result=quick, source=MatchSource.fallback, failure=failure)
