"""Tests for two-tier intent matching."""

import pytest

from agenda.connectors.llm import LLMFailure
from agenda.core.intent_matcher import IntentMatchEngine, MatchSource, build_match_prompt


@pytest.mark.asyncio
async def test_confident_quick_match_skips_llm(registry, gateway, llm_config):
    engine = IntentMatchEngine(registry, gateway)
    outcome = await engine.match("查看日程安排", llm_config)

    assert outcome.source == MatchSource.quick
    assert outcome.result.skill_name == "query_schedule"
    assert outcome.result.confidence >= 0.8
    assert gateway.calls == []


@pytest.mark.asyncio
async def test_llm_verdict_used_when_quick_is_unsure(registry, gateway, llm_config):
    gateway.queue(
        {"matched": True, "skillName": "create_meeting", "confidence": 0.92, "reasoning": "约时间沟通"}
    )
    engine = IntentMatchEngine(registry, gateway)
    outcome = await engine.match("约个时间和张三聊聊", llm_config)

    assert outcome.source == MatchSource.llm
    assert outcome.result.matched
    assert outcome.result.skill_name == "create_meeting"
    assert outcome.result.confidence == 0.92
    assert len(gateway.calls) == 1


@pytest.mark.asyncio
async def test_hallucinated_skill_falls_back_to_quick(registry, gateway, llm_config):
    gateway.queue({"matched": True, "skillName": "book_restaurant", "confidence": 0.99, "reasoning": ""})
    engine = IntentMatchEngine(registry, gateway)
    outcome = await engine.match("明天开会", llm_config)

    assert outcome.source == MatchSource.fallback
    assert outcome.failure == "hallucination"
    assert outcome.result.skill_name == "create_meeting"
    assert registry.has(outcome.result.skill_name)


@pytest.mark.asyncio
async def test_hallucination_without_quick_hit_is_no_match(registry, gateway, llm_config):
    gateway.queue({"matched": True, "skillName": "order_pizza", "confidence": 0.8, "reasoning": ""})
    engine = IntentMatchEngine(registry, gateway)
    result = await engine.match_skill("帮我点个披萨", llm_config)

    assert not result.matched
    assert result.skill_name == ""
    assert result.confidence == 0.0


@pytest.mark.asyncio
async def test_failed_llm_without_keyword_hit_reports_none(registry, gateway, llm_config):
    engine = IntentMatchEngine(registry, gateway)
    outcome = await engine.match("帮我点个披萨", llm_config)

    assert outcome.source == MatchSource.none
    assert outcome.failure == LLMFailure.transport
    assert not outcome.result.matched


@pytest.mark.asyncio
async def test_transport_failure_degrades(registry, gateway, llm_config):
    engine = IntentMatchEngine(registry, gateway)
    outcome = await engine.match("明天开会", llm_config)

    assert outcome.source == MatchSource.fallback
    assert outcome.failure == LLMFailure.transport
    assert outcome.result.skill_name == "create_meeting"


@pytest.mark.asyncio
async def test_missing_api_key_degrades(registry, gateway, no_key_config):
    engine = IntentMatchEngine(registry, gateway)
    outcome = await engine.match("下周去上海出差", no_key_config)

    assert outcome.failure == LLMFailure.no_api_key
    assert outcome.result.skill_name == "business_trip"


@pytest.mark.asyncio
async def test_wrong_shape_is_malformed(registry, gateway, llm_config):
    gateway.queue({"matched": True, "skillName": None, "confidence": "high"})
    engine = IntentMatchEngine(registry, gateway)
    outcome = await engine.match("你好", llm_config)

    assert outcome.failure == "malformed"
    assert not outcome.result.matched


@pytest.mark.asyncio
async def test_unmatched_llm_verdict_is_normalized(registry, gateway, llm_config):
    gateway.queue({"matched": False, "skillName": "create_meeting", "confidence": 0.7, "reasoning": "闲聊"})
    engine = IntentMatchEngine(registry, gateway)
    result = await engine.match_skill("你好呀", llm_config)

    assert not result.matched
    assert result.skill_name == ""
    assert result.confidence == 0.0


@pytest.mark.asyncio
async def test_llm_confidence_clamped(registry, gateway, llm_config):
    gateway.queue({"matched": True, "skillName": "business_trip", "confidence": 1.7, "reasoning": ""})
    engine = IntentMatchEngine(registry, gateway)
    result = await engine.match_skill("要去深圳见客户", llm_config)

    assert result.skill_name == "business_trip"
    assert result.confidence == 1.0


def test_prompt_lists_every_skill(registry):
    prompt = build_match_prompt(registry, "随便说点什么")
    for skill in registry.get_all():
        assert skill.name in prompt
        assert skill.metadata.description in prompt
    assert "会议室" in prompt
    assert "随便说点什么" in prompt
