from __future__ import annotations

from datetime import datetime, timezone, tzinfo
from zoneinfo import ZoneInfo


class Clock:
    """Wall clock pinned to the assistant's local timezone."""

    def __init__(self, tz: str | tzinfo = "Asia/Tokyo") -> None:
        self._tz = ZoneInfo(tz) if isinstance(tz, str) else tz

    @property
    def tz(self) -> tzinfo:
        return self._tz

    def now(self) -> datetime:
        return datetime.now(timezone.utc).astimezone(self._tz)

    def start_of_day(self, moment: datetime | None = None) -> datetime:
        current = (moment or self.now()).astimezone(self._tz)
        return current.replace(hour=0, minute=0, second=0, microsecond=0)


class FixedClock(Clock):
    def __init__(self, moment: datetime) -> None:
        super().__init__(moment.tzinfo or timezone.utc)
        self._moment = moment

    def now(self) -> datetime:
        return self._moment


__all__ = ["Clock", "FixedClock"]
