from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Literal

Role = Literal["user", "assistant"]


@dataclass(slots=True, frozen=True)
class Turn:
    role: Role
    content: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(slots=True, frozen=True)
class Outcome:
    display: str
    speak: str

    @classmethod
    def text(cls, value: str) -> "Outcome":
        return cls(display=value, speak=value)

    def to_dict(self) -> dict[str, str]:
        return {"display": self.display, "speak": self.speak}


@dataclass(slots=True)
class ChatReply:
    display: str
    speak: str
    audio: str | None = None

    def to_dict(self) -> dict[str, str]:
        payload = {"display": self.display, "speak": self.speak}
        if self.audio is not None:
            payload["audio"] = self.audio
        return payload


__all__ = ["Role", "Turn", "Outcome", "ChatReply"]
