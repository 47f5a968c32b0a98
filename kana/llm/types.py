from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, Protocol

ModelRole = Literal["user", "model"]


@dataclass(slots=True, frozen=True)
class ModelTurn:
    role: ModelRole
    text: str

    def to_content(self) -> dict[str, Any]:
        return {"role": self.role, "parts": [{"text": self.text}]}


@dataclass(slots=True)
class ModelRequest:
    system_instruction: str
    contents: list[ModelTurn]
    grounded: bool = False

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "system_instruction": {"parts": [{"text": self.system_instruction}]},
            "contents": [turn.to_content() for turn in self.contents],
        }
        if self.grounded:
            payload["tools"] = [{"google_search": {}}]
        return payload


@dataclass(slots=True)
class ChatResponse:
    segments: list[str] = field(default_factory=list)
    grounded: bool = False

    @property
    def text(self) -> str:
        # With grounding the model may emit a preamble before the tool call;
        # the last segment is the answer written after retrieval.
        for segment in reversed(self.segments):
            if segment.strip():
                return segment
        return ""


class ChatProvider(Protocol):
    name: str

    async def generate(self, request: ModelRequest) -> ChatResponse: ...

    async def aclose(self) -> None: ...


__all__ = ["ModelRole", "ModelTurn", "ModelRequest", "ChatResponse", "ChatProvider"]
