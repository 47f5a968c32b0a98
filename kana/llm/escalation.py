from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Literal, Protocol

import regex as re

from kana.errors import IntegrationFailure
from kana.llm.gateway import ModelGateway
from kana.memory.store import StoredTurn
from kana.orchestrator.events import Turn
from kana.persona import history_context_prompt
from kana.telemetry.logging import get_logger

SEARCH_MARKER = re.compile(r"<search>(.+?)</search>", re.DOTALL)

# Utterances that need live information go straight to a grounded call.
SEARCH_TRIGGERS: tuple[str, ...] = (
    "今日の",
    "明日の",
    "最新",
    "現在",
    "天気",
    "ニュース",
    "調べて",
    "検索して",
    "株価",
    "為替",
)

# Phrases in a plain reply that mean the model wanted to look something up.
LOOKUP_PHRASES: tuple[str, ...] = (
    "調べます",
    "調べてみます",
    "調べてきます",
    "検索します",
    "検索してみます",
    "確認します",
    "確認してみます",
    "確認してきます",
    "お調べします",
)

EscalationPath = Literal["none", "history", "grounded_marker", "grounded_phrase"]


class HistorySearch(Protocol):
    async def search(self, keyword: str, limit: int = 10) -> list[StoredTurn]: ...


@dataclass(slots=True)
class EscalationResult:
    text: str
    path: EscalationPath
    keyword: str | None = None


def needs_search(text: str) -> bool:
    return any(trigger in text for trigger in SEARCH_TRIGGERS)


def extract_marker(text: str) -> str | None:
    match = SEARCH_MARKER.search(text)
    if match is None:
        return None
    keyword = match.group(1).strip()
    return keyword or None


def suggests_lookup(text: str) -> bool:
    return any(phrase in text for phrase in LOOKUP_PHRASES)


def strip_markers(text: str) -> str:
    return SEARCH_MARKER.sub("", text).strip()


class SearchEscalationPolicy:
    """Decides whether a plain reply gets one more, better-informed call.

    At most one extra call is made per request, whatever the second reply
    contains.
    """

    def __init__(self, gateway: ModelGateway, history_search: HistorySearch, log_search_limit: int = 10) -> None:
        self._gateway = gateway
        self._history_search = history_search
        self._log_search_limit = log_search_limit
        self._logger = get_logger(__name__)

    async def resolve(self, message: str, raw: str, history: Sequence[Turn]) -> EscalationResult:
        keyword = extract_marker(raw)
        if keyword is not None:
            try:
                rows = await self._history_search.search(keyword, limit=self._log_search_limit)
            except IntegrationFailure as exc:
                self._logger.error("escalation.history_unavailable", keyword=keyword, error=exc.message)
                rows = []
            if rows:
                self._logger.info("escalation.history", keyword=keyword, matches=len(rows))
                prompt = history_context_prompt([(row.role, row.content) for row in rows], message)
                text = await self._gateway.call(prompt, history)
                return EscalationResult(text=text, path="history", keyword=keyword)
            self._logger.info("escalation.grounded", reason="marker_without_history", keyword=keyword)
            text = await self._gateway.call(message, history, grounded=True)
            return EscalationResult(text=text, path="grounded_marker", keyword=keyword)

        if suggests_lookup(raw):
            self._logger.info("escalation.grounded", reason="lookup_phrase")
            text = await self._gateway.call(message, history, grounded=True)
            return EscalationResult(text=text, path="grounded_phrase")

        return EscalationResult(text=raw, path="none")


__all__ = [
    "SEARCH_TRIGGERS",
    "LOOKUP_PHRASES",
    "EscalationResult",
    "SearchEscalationPolicy",
    "needs_search",
    "extract_marker",
    "suggests_lookup",
    "strip_markers",
]
