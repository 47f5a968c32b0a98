from __future__ import annotations

from kana.orchestrator.clock import Clock
from kana.orchestrator.events import Outcome
from kana.tools.registry import HandlerDescriptor, contains_any

TIME_TRIGGERS = ("何時", "今何時", "時間教えて")
DATE_TRIGGERS = ("何曜", "何日", "今日何日", "今日は何")
YEAR_TRIGGERS = ("何年", "今年は")

WEEKDAYS = ("月", "火", "水", "木", "金", "土", "日")


class LocalFacts:
    """Clock, date and year questions, answered without any external call."""

    name = "local_facts"

    def __init__(self, clock: Clock) -> None:
        self._clock = clock

    def detect(self, text: str) -> bool:
        return (
            contains_any(text, TIME_TRIGGERS)
            or contains_any(text, DATE_TRIGGERS)
            or contains_any(text, YEAR_TRIGGERS)
        )

    async def execute(self, text: str) -> Outcome | None:
        return self.answer(text)

    def answer(self, text: str) -> Outcome | None:
        now = self._clock.now()
        if contains_any(text, TIME_TRIGGERS):
            return Outcome(
                display=f"今は{now.hour}:{now.minute:02d}ですよ！",
                speak=f"今は{now.hour}時{now.minute}分ですよ！",
            )
        if contains_any(text, DATE_TRIGGERS):
            return Outcome.text(f"今日は{now.month}月{now.day}日{WEEKDAYS[now.weekday()]}曜日ですね！")
        if contains_any(text, YEAR_TRIGGERS):
            return Outcome.text(f"{now.year}年ですよ！")
        return None

    def descriptor(self) -> HandlerDescriptor:
        return HandlerDescriptor(name=self.name, detect=self.detect, execute=self.execute)


__all__ = ["LocalFacts", "TIME_TRIGGERS", "DATE_TRIGGERS", "YEAR_TRIGGERS"]
