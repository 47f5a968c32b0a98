from __future__ import annotations

import json

import httpx
import pytest
from fakes import ScriptedProvider

from kana.errors import RateLimited, UpstreamError
from kana.llm.gateway import ModelGateway, UnconfiguredProvider
from kana.llm.providers.gemini import GEMINI_BASE_URL, GeminiProvider
from kana.llm.types import ChatResponse
from kana.orchestrator.events import Turn


def _gemini(handler) -> GeminiProvider:
    client = httpx.AsyncClient(base_url=GEMINI_BASE_URL, transport=httpx.MockTransport(handler))
    return GeminiProvider("test-key", "gemini-2.0-flash", client=client)


def _candidate(*texts: str) -> dict:
    return {"candidates": [{"content": {"parts": [{"text": text} for text in texts]}}]}


def test_build_request_maps_roles_and_trims_history() -> None:
    gateway = ModelGateway(ScriptedProvider(), "persona", max_history=2)
    history = [
        Turn(role="user", content="一"),
        Turn(role="assistant", content="二"),
        Turn(role="user", content="三"),
    ]

    request = gateway.build_request("四", history)

    assert [(turn.role, turn.text) for turn in request.contents] == [
        ("model", "二"),
        ("user", "三"),
        ("user", "四"),
    ]
    assert request.system_instruction == "persona"
    assert "tools" not in request.to_payload()


def test_grounded_payload_attaches_search_tool() -> None:
    gateway = ModelGateway(ScriptedProvider(), "persona")

    payload = gateway.build_request("天気は？", [], grounded=True).to_payload()

    assert payload["tools"] == [{"google_search": {}}]
    assert payload["system_instruction"] == {"parts": [{"text": "persona"}]}


def test_response_text_is_last_non_empty_segment() -> None:
    assert ChatResponse(segments=["検索します", "答え", "  "]).text == "答え"
    assert ChatResponse().text == ""


@pytest.mark.anyio
async def test_gemini_returns_last_segment() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=_candidate("前置き", '{"display": "晴れ", "speak": "晴れ"}'))

    gateway = ModelGateway(_gemini(handler), "persona")

    text = await gateway.call("天気は？", grounded=True)

    assert text == '{"display": "晴れ", "speak": "晴れ"}'
    assert seen[0].url.path.endswith("/models/gemini-2.0-flash:generateContent")
    assert seen[0].url.params["key"] == "test-key"
    body = json.loads(seen[0].content)
    assert body["tools"] == [{"google_search": {}}]
    assert body["contents"][-1] == {"role": "user", "parts": [{"text": "天気は？"}]}
    await gateway.aclose()


@pytest.mark.anyio
async def test_gemini_rate_limit() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(429, json={"error": {"code": 429, "message": "Resource exhausted"}})

    with pytest.raises(RateLimited):
        await _gemini(handler).generate(ModelGateway(ScriptedProvider(), "p").build_request("hi", []))


@pytest.mark.anyio
async def test_gemini_other_error_is_upstream() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"error": {"code": 400, "message": "API key not valid"}})

    with pytest.raises(UpstreamError) as excinfo:
        await _gemini(handler).generate(ModelGateway(ScriptedProvider(), "p").build_request("hi", []))
    assert excinfo.value.message == "API key not valid"
    assert excinfo.value.status == 400


@pytest.mark.anyio
async def test_gemini_transport_error_is_upstream() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(UpstreamError):
        await _gemini(handler).generate(ModelGateway(ScriptedProvider(), "p").build_request("hi", []))


@pytest.mark.anyio
async def test_unconfigured_provider_raises_upstream() -> None:
    gateway = ModelGateway(UnconfiguredProvider(), "persona")

    with pytest.raises(UpstreamError):
        await gateway.call("hi")
