from __future__ import annotations

from collections.abc import Sequence

from kana.errors import UpstreamError
from kana.llm.types import ChatProvider, ChatResponse, ModelRequest, ModelTurn
from kana.orchestrator.events import Turn
from kana.telemetry.logging import get_logger


class ModelGateway:
    """Single entry point for generative-language calls.

    Every call sends the persona instruction, the last ``max_history`` turns
    of the conversation and the current message. ``grounded`` attaches the
    web-search tool.
    """

    def __init__(self, provider: ChatProvider, system_prompt: str, max_history: int = 20) -> None:
        self._provider = provider
        self._system_prompt = system_prompt
        self._max_history = max_history
        self._logger = get_logger(__name__)

    @property
    def provider_name(self) -> str:
        return self._provider.name

    def build_request(self, message: str, history: Sequence[Turn], grounded: bool = False) -> ModelRequest:
        recent = list(history)[-self._max_history :] if self._max_history > 0 else []
        contents = [ModelTurn(role="user" if turn.role == "user" else "model", text=turn.content) for turn in recent]
        contents.append(ModelTurn(role="user", text=message))
        return ModelRequest(system_instruction=self._system_prompt, contents=contents, grounded=grounded)

    async def call(self, message: str, history: Sequence[Turn] = (), grounded: bool = False) -> str:
        request = self.build_request(message, history, grounded=grounded)
        self._logger.info(
            "gateway.call",
            provider=self._provider.name,
            grounded=grounded,
            context_turns=len(request.contents) - 1,
        )
        response: ChatResponse = await self._provider.generate(request)
        return response.text

    async def aclose(self) -> None:
        await self._provider.aclose()


class UnconfiguredProvider:
    """Stands in when no API key is set so the app still boots and answers with an apology."""

    name = "unconfigured"

    async def generate(self, request: ModelRequest) -> ChatResponse:
        raise UpstreamError("GEMINI_API_KEY is not set")

    async def aclose(self) -> None:
        return None


__all__ = ["ModelGateway", "UnconfiguredProvider"]
