from __future__ import annotations

import asyncio
from collections import deque
from uuid import uuid4

from kana.orchestrator.events import Turn
from kana.telemetry.logging import get_logger


class ConversationContext:
    """In-memory history of the single active conversation.

    The process holds exactly one instance. Concurrent requests share it; the
    only guarantee given is that ``record`` appends a user/assistant pair
    without another request's pair landing between them.
    """

    def __init__(self, max_turns: int = 20) -> None:
        self._turns: deque[Turn] = deque(maxlen=max(max_turns, 0))
        self._session_id: str | None = None
        self._lock = asyncio.Lock()
        self._logger = get_logger(__name__)

    @property
    def session_id(self) -> str | None:
        return self._session_id

    @property
    def max_turns(self) -> int:
        return self._turns.maxlen

    def ensure_session(self) -> str:
        if self._session_id is None:
            self._session_id = uuid4().hex
            self._logger.info("context.session.started", session_id=self._session_id)
        return self._session_id

    def append(self, turn: Turn) -> None:
        self.ensure_session()
        self._turns.append(turn)

    async def record(self, user_text: str, assistant_text: str) -> str:
        """Append a user/assistant pair and return the session it landed in."""
        async with self._lock:
            session_id = self.ensure_session()
            self.append(Turn(role="user", content=user_text))
            self.append(Turn(role="assistant", content=assistant_text))
        return session_id

    def window(self, limit: int | None = None) -> list[Turn]:
        turns = list(self._turns)
        if limit is None:
            return turns
        if limit <= 0:
            return []
        return turns[-limit:]

    def reset(self) -> None:
        self._logger.info("context.reset", session_id=self._session_id, turns=len(self._turns))
        self._turns.clear()
        self._session_id = None

    def __len__(self) -> int:
        return len(self._turns)


__all__ = ["ConversationContext"]
