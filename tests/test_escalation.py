from __future__ import annotations

import pytest
from fakes import MemoryLog, ScriptedProvider

from kana.errors import IntegrationFailure
from kana.llm.escalation import (
    SearchEscalationPolicy,
    extract_marker,
    needs_search,
    strip_markers,
    suggests_lookup,
)
from kana.llm.gateway import ModelGateway


class BrokenSearch:
    async def search(self, keyword: str, limit: int = 10):
        raise IntegrationFailure("database is locked")


def test_marker_helpers() -> None:
    assert extract_marker("<search>ラーメン</search>") == "ラーメン"
    assert extract_marker("<search>  </search>") is None
    assert extract_marker("なし") is None
    assert strip_markers("前 <search>x</search> 後") == "前  後"
    assert needs_search("今日の天気は？")
    assert not needs_search("好きな色は？")
    assert suggests_lookup("ちょっと調べますね")


@pytest.mark.anyio
async def test_marker_with_history_matches_uses_history_prompt() -> None:
    log = MemoryLog()
    await log.append("s1", "user", "ラーメンが好き")
    await log.append("s1", "assistant", "いいですね！")
    provider = ScriptedProvider('{"display": "ラーメンでしたね！", "speak": "ラーメンでしたね"}')
    policy = SearchEscalationPolicy(ModelGateway(provider, "persona"), log)

    result = await policy.resolve("私の好物覚えてる？", "<search>ラーメン</search>", [])

    assert result.path == "history"
    assert result.keyword == "ラーメン"
    assert log.searches == ["ラーメン"]
    assert len(provider.requests) == 1
    request = provider.requests[0]
    assert not request.grounded
    prompt = request.contents[-1].text
    assert "【過去の会話】" in prompt
    assert "user: ラーメンが好き" in prompt
    assert "私の好物覚えてる？" in prompt


@pytest.mark.anyio
async def test_marker_without_matches_escalates_to_grounded_call() -> None:
    provider = ScriptedProvider('{"display": "見つけました", "speak": "見つけました"}')
    policy = SearchEscalationPolicy(ModelGateway(provider, "persona"), MemoryLog())

    result = await policy.resolve("東京タワーの高さは？", "<search>東京タワー</search>", [])

    assert result.path == "grounded_marker"
    assert len(provider.requests) == 1
    assert provider.requests[0].grounded
    assert provider.requests[0].contents[-1].text == "東京タワーの高さは？"


@pytest.mark.anyio
async def test_history_outage_is_treated_as_no_matches() -> None:
    provider = ScriptedProvider("ok")
    policy = SearchEscalationPolicy(ModelGateway(provider, "persona"), BrokenSearch())

    result = await policy.resolve("覚えてる？", "<search>猫</search>", [])

    assert result.path == "grounded_marker"
    assert provider.requests[0].grounded


@pytest.mark.anyio
async def test_lookup_phrase_triggers_one_grounded_call() -> None:
    provider = ScriptedProvider('{"display": "晴れです", "speak": "晴れです"}')
    policy = SearchEscalationPolicy(ModelGateway(provider, "persona"), MemoryLog())

    result = await policy.resolve("大阪の様子は？", '{"display": "調べますね！", "speak": "調べますね"}', [])

    assert result.path == "grounded_phrase"
    assert result.text == '{"display": "晴れです", "speak": "晴れです"}'
    assert len(provider.requests) == 1
    assert provider.requests[0].grounded


@pytest.mark.anyio
async def test_plain_reply_makes_no_extra_call() -> None:
    provider = ScriptedProvider()
    policy = SearchEscalationPolicy(ModelGateway(provider, "persona"), MemoryLog())

    result = await policy.resolve("やあ", "こんにちは", [])

    assert result.path == "none"
    assert result.text == "こんにちは"
    assert provider.requests == []
