from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path

from kana.orchestrator.events import Outcome
from kana.telemetry.logging import get_logger

LOGGER = get_logger(__name__)

SYSTEM_PROMPT = (
    "あなたは「カナ」。ユーザーの部屋に住んでいる、明るくて少しおっちょこちょいな音声アシスタントです。"
    "口調はフレンドリーな敬語で、返事は基本2〜3文まで。"
    "必ず次のJSON形式だけで答えてください: "
    '{"display": "画面に表示する文章", "speak": "読み上げ用の文章"}。'
    "speak では英字の略語や記号をカタカナの読みに直してください（例: API→エーピーアイ、CO2→シーオーツー）。"
    "過去の会話を思い出す必要があるときは、答えの代わりに <search>キーワード</search> だけを出力してください。"
    "最新の情報が必要で分からないときは、推測せずに「調べます」と答えてください。"
)

TONE_WRAP_TEMPLATE = (
    "以下の技術的な回答をカナちゃんの口調で簡潔に伝えて。専門用語はそのまま使ってOK。JSON形式で出力して：\n\n{answer}"
)

CODE_REVIEW_TEMPLATE = (
    "標準入力の git diff をレビューして、問題点と改善案を優先度順に短くまとめてください。\n"
    "ユーザーの依頼: {request}"
)

RATE_LIMIT_REPLY = Outcome(
    display="APIのレート制限に引っかかっちゃいました…少し待ってからまた話しかけてください！",
    speak="エーピーアイのレート制限に引っかかっちゃいました。少し待ってからまた話しかけてください！",
)
UPSTREAM_SPEAK = "エーピーアイエラーが発生しちゃいました…"
GENERIC_ERROR_REPLY = Outcome.text("あれ、なんかエラーが出ちゃったみたいです…")


def upstream_error_reply(detail: str) -> Outcome:
    return Outcome(display=f"APIエラーです: {detail}", speak=UPSTREAM_SPEAK)


def load_system_prompt(path: Path | None = None) -> str:
    if path is None:
        return SYSTEM_PROMPT
    try:
        text = path.read_text(encoding="utf-8").strip()
    except OSError as exc:
        LOGGER.warning("persona.prompt.unreadable", path=str(path), error=str(exc))
        return SYSTEM_PROMPT
    return text or SYSTEM_PROMPT


def history_context_prompt(rows: Iterable[tuple[str, str]], message: str) -> str:
    context = "\n".join(f"{role}: {content}" for role, content in rows)
    return (
        f"【過去の会話】\n{context}\n\n【現在の質問】\n{message}\n\n"
        "これを踏まえてカナとして応答して。JSON形式で出力して："
    )


def tone_wrap_prompt(answer: str) -> str:
    return TONE_WRAP_TEMPLATE.format(answer=answer)


def code_review_prompt(request: str) -> str:
    return CODE_REVIEW_TEMPLATE.format(request=request)


__all__ = [
    "SYSTEM_PROMPT",
    "RATE_LIMIT_REPLY",
    "GENERIC_ERROR_REPLY",
    "upstream_error_reply",
    "load_system_prompt",
    "history_context_prompt",
    "tone_wrap_prompt",
    "code_review_prompt",
]
