from datetime import date

import pytest

from agenda.connectors.llm import LLMConfig, LLMFailure, LLMResult
from agenda.core.dispatcher import ConversationDispatcher
from agenda.core.extraction import FieldExtractionEngine
from agenda.core.intent_matcher import IntentMatchEngine
from agenda.core.schedule_store import ScheduleStore
from agenda.skills.loader import load_skill_dir
from agenda.skills.registry import SkillRegistry

TODAY = date(2026, 2, 11)  # a Wednesday


class FakeGateway:
    """Stands in for LLMGateway: replays queued results and records prompts."""

    def __init__(self, *results: LLMResult):
        self.results = list(results)
        self.calls: list[tuple[str, str, LLMConfig]] = []

    def queue(self, data: dict | None = None, failure: LLMFailure | None = None) -> None:
        self.results.append(LLMResult(data=data, failure=failure, attempts=1))

    async def call(self, prompt, system_instruction, config):
        self.calls.append((prompt, system_instruction, config))
        if not config.api_key:
            return LLMResult(failure=LLMFailure.no_api_key)
        if not self.results:
            return LLMResult(failure=LLMFailure.transport, attempts=1)
        return self.results.pop(0)


@pytest.fixture
def today():
    return TODAY


@pytest.fixture
def registry():
    reg = SkillRegistry()
    reg.load(load_skill_dir)
    return reg


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def llm_config():
    return LLMConfig(provider="gemini", api_key="test-key")


@pytest.fixture
def no_key_config():
    return LLMConfig(provider="gemini", api_key="")


@pytest.fixture
def store():
    return ScheduleStore()


@pytest.fixture
def dispatcher(registry, gateway, store):
    return ConversationDispatcher(
        registry,
        IntentMatchEngine(registry, gateway),
        FieldExtractionEngine(gateway),
        store,
        today=lambda: TODAY,
    )
