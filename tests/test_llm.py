"""Tests for the LLM connector: JSON extraction, Gemini client and retrying gateway."""

import json

import httpx
import pytest

from agenda.connectors.llm import (
    BaseLLMClient,
    GeminiLLMClient,
    LLMConfig,
    LLMFailure,
    LLMGateway,
    create_llm_client,
    extract_json_object,
)


class ScriptedClient(BaseLLMClient):
    def __init__(self, *replies):
        self.replies = list(replies)
        self.calls = 0

    async def complete(self, prompt, system_instruction=""):
        self.calls += 1
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def fake_sleep(sleeps):
    async def _sleep(delay):
        sleeps.append(delay)

    return _sleep


def test_extract_json_from_surrounding_text():
    text = 'Sure! Here you go:\n```json\n{"title": "周会", "note": "a {brace} inside"}\n```'
    assert extract_json_object(text) == {"title": "周会", "note": "a {brace} inside"}


def test_extract_json_nested_object():
    assert extract_json_object('x {"a": {"b": 1}} y {"c": 2}') == {"a": {"b": 1}}


def test_extract_json_skips_invalid_candidate():
    assert extract_json_object("{not json} then {\"ok\": true}") == {"ok": True}


@pytest.mark.parametrize("text", [None, "", "no braces here", "{\"open\": 1", "[1, 2]"])
def test_extract_json_nothing_found(text):
    assert extract_json_object(text) is None


@pytest.mark.asyncio
async def test_gateway_without_key_makes_no_call(fake_sleep):
    factory_calls = []

    def factory(config):
        factory_calls.append(config)
        return ScriptedClient("{}")

    gateway = LLMGateway(client_factory=factory, sleep=fake_sleep)
    result = await gateway.call("p", "", LLMConfig(api_key=""))

    assert result.failure == LLMFailure.no_api_key
    assert not result.ok
    assert factory_calls == []


@pytest.mark.asyncio
async def test_gateway_retries_then_succeeds(fake_sleep, sleeps):
    client = ScriptedClient(httpx.ConnectError("down"), "not json", '{"matched": false}')
    gateway = LLMGateway(client_factory=lambda c: client, retry_delays=[1, 2, 4, 8, 16], sleep=fake_sleep)
    result = await gateway.call("p", "", LLMConfig(api_key="k"))

    assert result.ok
    assert result.data == {"matched": False}
    assert result.attempts == 3
    assert sleeps == [1, 2]


@pytest.mark.asyncio
async def test_gateway_gives_up_after_five_retries(fake_sleep, sleeps):
    client = ScriptedClient(*[RuntimeError("boom")] * 6)
    gateway = LLMGateway(client_factory=lambda c: client, retry_delays=[1, 2, 4, 8, 16], sleep=fake_sleep)
    result = await gateway.call("p", "", LLMConfig(api_key="k"))

    assert result.failure == LLMFailure.transport
    assert result.data is None
    assert client.calls == 6
    assert sleeps == [1, 2, 4, 8, 16]


@pytest.mark.asyncio
async def test_gateway_reports_malformed_last(fake_sleep):
    client = ScriptedClient("nope", "still nope")
    gateway = LLMGateway(client_factory=lambda c: client, retry_delays=[0.5], sleep=fake_sleep)
    result = await gateway.call("p", "", LLMConfig(api_key="k"))

    assert result.failure == LLMFailure.malformed
    assert result.text == "still nope"


@pytest.mark.asyncio
async def test_gemini_client_payload_and_parsing():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            json={"candidates": [{"content": {"parts": [{"text": '{"title": "周会"}'}]}}]},
        )

    config = LLMConfig(provider="gemini", api_key="secret", api_url="https://llm.test/generate")
    client = GeminiLLMClient(config, transport=httpx.MockTransport(handler))
    text = await client.complete("extract please", system_instruction="be brief")

    assert text == '{"title": "周会"}'
    assert seen["url"] == "https://llm.test/generate?key=secret"
    body = seen["body"]
    assert body["contents"] == [{"parts": [{"text": "extract please"}]}]
    assert body["systemInstruction"] == {"parts": [{"text": "be brief"}]}
    assert body["generationConfig"]["responseMimeType"] == "application/json"


@pytest.mark.asyncio
async def test_gemini_client_raises_on_http_error():
    transport = httpx.MockTransport(lambda request: httpx.Response(503, json={"error": "busy"}))
    client = GeminiLLMClient(LLMConfig(api_key="k", api_url="https://llm.test/x"), transport=transport)
    with pytest.raises(httpx.HTTPStatusError):
        await client.complete("hi")


@pytest.mark.asyncio
async def test_gemini_http_errors_flow_through_gateway(fake_sleep):
    transport = httpx.MockTransport(lambda request: httpx.Response(500))
    gateway = LLMGateway(
        client_factory=lambda c: GeminiLLMClient(c, transport=transport),
        retry_delays=[1],
        sleep=fake_sleep,
    )
    result = await gateway.call("p", "", LLMConfig(api_key="k", api_url="https://llm.test/x"))
    assert result.failure == LLMFailure.transport
    assert result.attempts == 2


def test_factory_defaults_to_gemini():
    assert isinstance(create_llm_client(LLMConfig(provider="unknown", api_key="k")), GeminiLLMClient)


def test_config_from_settings_prefers_explicit_key(monkeypatch):
    from agenda.config import settings

    monkeypatch.setattr(settings, "llm_provider", "gemini")
    monkeypatch.setattr(settings, "gemini_api_key", "from-env")
    assert LLMConfig.from_settings().api_key == "from-env"
    assert LLMConfig.from_settings(api_key="").api_key == ""
    assert LLMConfig.from_settings(api_key="override").api_key == "override"
