from __future__ import annotations

from kana.llm.normalizer import normalize


def test_plain_json_reply() -> None:
    outcome = normalize('{"display": "こんにちは！", "speak": "こんにちは"}')

    assert outcome.display == "こんにちは！"
    assert outcome.speak == "こんにちは"


def test_fenced_json_with_chatter() -> None:
    raw = 'はい、どうぞ。\n```json\n{"display": "API使えます", "speak": "エーピーアイ使えます"}\n```\n以上です'

    outcome = normalize(raw)

    assert outcome.display == "API使えます"
    assert outcome.speak == "エーピーアイ使えます"


def test_missing_speak_falls_back_to_display() -> None:
    outcome = normalize('{"display": "表示だけ", "speak": ""}')

    assert outcome.speak == "表示だけ"


def test_unparseable_reply_is_used_verbatim() -> None:
    raw = '{"display": "壊れて", "speak": }'

    outcome = normalize(raw)

    assert outcome.display == raw
    assert outcome.speak == raw


def test_prose_reply_is_used_verbatim() -> None:
    assert normalize("ただの文章です").display == "ただの文章です"


def test_non_string_display_is_rejected() -> None:
    raw = '{"display": 3, "speak": "さん"}'

    assert normalize(raw).display == raw


def test_none_becomes_empty_outcome() -> None:
    outcome = normalize(None)

    assert outcome.display == ""
    assert outcome.speak == ""
