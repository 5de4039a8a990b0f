from __future__ import annotations

import json
from typing import List

import httpx
import pytest

from sqlchat.config import LLMConfig, RetryConfig
from sqlchat.errors import GatewayError
from sqlchat.llm_client import OfflineGateway, OpenAICompatibleGateway, as_messages, build_gateway
from sqlchat.models import ClarifyOutput
from sqlchat.output_validator import validate_model_output


def _gateway(responses: List[httpx.Response], seen: List[httpx.Request], attempts: int = 2) -> OpenAICompatibleGateway:
    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return responses.pop(0)

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="https://llm.test/v1")
    cfg = LLMConfig(model="test-model", retry=RetryConfig(attempts=attempts, backoff_seconds=0))
    return OpenAICompatibleGateway(cfg, "key", client=client)


def _completion(content: str) -> httpx.Response:
    return httpx.Response(200, json={"choices": [{"message": {"content": content}}]})


@pytest.mark.asyncio
async def test_complete_returns_message_content() -> None:
    seen: List[httpx.Request] = []
    gateway = _gateway([_completion('{"type":"clarify"}')], seen)
    text = await gateway.complete(as_messages("sys", "user"))
    assert text == '{"type":"clarify"}'
    body = json.loads(seen[0].content)
    assert seen[0].url.path == "/v1/chat/completions"
    assert body["model"] == "test-model"
    assert body["temperature"] == 0.0
    assert body["response_format"] == {"type": "json_object"}
    assert body["messages"][0] == {"role": "system", "content": "sys"}


@pytest.mark.asyncio
async def test_server_errors_are_retried() -> None:
    seen: List[httpx.Request] = []
    gateway = _gateway([httpx.Response(503), _completion("ok")], seen)
    assert await gateway.complete(as_messages("s", "u")) == "ok"
    assert len(seen) == 2


@pytest.mark.asyncio
async def test_retries_are_bounded() -> None:
    seen: List[httpx.Request] = []
    gateway = _gateway([httpx.Response(429), httpx.Response(429)], seen)
    with pytest.raises(GatewayError):
        await gateway.complete(as_messages("s", "u"))
    assert len(seen) == 2


@pytest.mark.asyncio
async def test_client_errors_fail_fast() -> None:
    seen: List[httpx.Request] = []
    gateway = _gateway([httpx.Response(401, text="bad key"), _completion("ok")], seen)
    with pytest.raises(GatewayError):
        await gateway.complete(as_messages("s", "u"))
    assert len(seen) == 1


@pytest.mark.asyncio
async def test_malformed_envelope() -> None:
    seen: List[httpx.Request] = []
    gateway = _gateway([httpx.Response(200, json={"choices": []})], seen)
    with pytest.raises(GatewayError):
        await gateway.complete(as_messages("s", "u"))


@pytest.mark.asyncio
async def test_missing_api_key_uses_offline_gateway() -> None:
    gateway = build_gateway(LLMConfig(), "")
    assert isinstance(gateway, OfflineGateway)
    output = validate_model_output(await gateway.complete(as_messages("s", "u")))
    assert isinstance(output, ClarifyOutput)
    assert "LLM_API_KEY" in output.clarifying_question


def test_unknown_provider_without_base_url() -> None:
    with pytest.raises(ValueError):
        OpenAICompatibleGateway(LLMConfig(provider="acme"), "key")
