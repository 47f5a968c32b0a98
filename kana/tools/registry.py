from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterable, Sequence
from dataclasses import dataclass

from kana.orchestrator.events import Outcome
from kana.telemetry.logging import get_logger

Detector = Callable[[str], bool]
Executor = Callable[[str], Awaitable[Outcome | None]]


def contains_any(text: str, keywords: Iterable[str], *, ignore_case: bool = False) -> bool:
    if ignore_case:
        lowered = text.lower()
        return any(keyword.lower() in lowered for keyword in keywords)
    return any(keyword in text for keyword in keywords)


@dataclass(slots=True, frozen=True)
class HandlerDescriptor:
    """One intent handler.

    ``execute`` returning ``None`` means the category matched but nothing
    specific could be done; the pipeline then asks the model instead.
    """

    name: str
    detect: Detector
    execute: Executor


class HandlerRegistry:
    """Handlers in priority order; the first detector to fire owns the utterance."""

    def __init__(self, handlers: Sequence[HandlerDescriptor] = ()) -> None:
        self._handlers: list[HandlerDescriptor] = []
        self._logger = get_logger(__name__)
        for handler in handlers:
            self.register(handler)

    def register(self, handler: HandlerDescriptor) -> None:
        if any(existing.name == handler.name for existing in self._handlers):
            raise ValueError(f"Handler '{handler.name}' already registered")
        self._handlers.append(handler)
        self._logger.info("handler.registry.registered", handler=handler.name, priority=len(self._handlers))

    def names(self) -> list[str]:
        return [handler.name for handler in self._handlers]

    def match(self, text: str) -> HandlerDescriptor | None:
        for handler in self._handlers:
            if handler.detect(text):
                return handler
        return None

    def __len__(self) -> int:
        return len(self._handlers)


__all__ = ["Detector", "Executor", "HandlerDescriptor", "HandlerRegistry", "contains_any"]
