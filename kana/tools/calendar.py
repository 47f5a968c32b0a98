from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Any

import httpx
from google.auth.exceptions import GoogleAuthError
from google.auth.transport import Request as AuthRequest
from google.auth.transport.requests import Request as RequestsAuthRequest
from google.oauth2.credentials import Credentials

from kana.errors import IntegrationFailure
from kana.orchestrator.clock import Clock
from kana.orchestrator.events import Outcome
from kana.telemetry.logging import get_logger
from kana.tools.registry import HandlerDescriptor, contains_any

CALENDAR_API_URL = "https://www.googleapis.com/calendar/v3"
TOKEN_URL = "https://oauth2.googleapis.com/token"

CALENDAR_TRIGGERS = ("予定", "スケジュール", "カレンダー")
CELEBRATION_KEYWORDS = ("誕生日", "記念日", "バースデー", "birthday", "anniversary")

NOT_CONFIGURED_REPLY = Outcome(
    display="カレンダーはまだ設定されていません（token.json がありません）",
    speak="カレンダーがまだ設定されてないみたいです…",
)
FAILURE_SPEAK = "カレンダーが読めなかったみたいです…"


@dataclass(slots=True, frozen=True)
class CalendarEvent:
    title: str
    start: datetime | date
    all_day: bool

    @property
    def celebratory(self) -> bool:
        lowered = self.title.lower()
        return any(keyword in lowered for keyword in CELEBRATION_KEYWORDS)


@dataclass(slots=True, frozen=True)
class DateScope:
    label: str
    start: datetime
    end: datetime
    multi_day: bool = False


def resolve_scope(text: str, clock: Clock) -> DateScope:
    today = clock.start_of_day()
    if "明後日" in text:
        start = today + timedelta(days=2)
        return DateScope("明後日", start, start + timedelta(days=1))
    if "明日" in text:
        start = today + timedelta(days=1)
        return DateScope("明日", start, start + timedelta(days=1))
    if "今週" in text:
        return DateScope("今週", today, today + timedelta(days=7), multi_day=True)
    return DateScope("今日", today, today + timedelta(days=1))


class GoogleCalendarClient:
    """Reads the primary Google Calendar with a stored OAuth token.

    The token file is produced by the one-off consent script; this client only
    uses and refreshes it. Both google-auth's ``authorized_user`` layout and a
    bare ``{access_token, refresh_token}`` token paired with the OAuth client
    file are accepted. A refreshed token is written back in google-auth's
    layout.
    """

    def __init__(
        self,
        token_path: Path,
        credentials_path: Path,
        client: httpx.AsyncClient | None = None,
        auth_request: AuthRequest | None = None,
    ) -> None:
        self._token_path = token_path
        self._credentials_path = credentials_path
        self._client = client or httpx.AsyncClient(timeout=15.0)
        self._auth_request = auth_request or RequestsAuthRequest()
        self._credentials: Credentials | None = None
        self._logger = get_logger(__name__)

    def available(self) -> bool:
        return self._token_path.exists()

    async def list_events(self, time_min: datetime, time_max: datetime) -> list[dict[str, Any]]:
        params = {
            "timeMin": time_min.isoformat(),
            "timeMax": time_max.isoformat(),
            "singleEvents": "true",
            "orderBy": "startTime",
        }
        creds = self._load_credentials()
        if not creds.valid:
            await self._refresh(creds, reason="expired")
        resp = await self._get_events(creds.token, params)
        if resp.status_code == 401:
            await self._refresh(creds, reason="unauthorized")
            resp = await self._get_events(creds.token, params)
        if resp.status_code >= 400:
            raise IntegrationFailure(f"calendar API returned {resp.status_code}")
        try:
            data = resp.json()
        except ValueError as exc:
            raise IntegrationFailure("calendar API returned invalid JSON") from exc
        items = (data.get("items") or []) if isinstance(data, dict) else None
        if not isinstance(items, list):
            raise IntegrationFailure("calendar API returned an unexpected payload")
        self._logger.info("calendar.events", count=len(items))
        return [item for item in items if isinstance(item, dict)]

    async def _get_events(self, access_token: str | None, params: dict[str, str]) -> httpx.Response:
        try:
            return await self._client.get(
                f"{CALENDAR_API_URL}/calendars/primary/events",
                params=params,
                headers={"Authorization": f"Bearer {access_token}"},
            )
        except httpx.HTTPError as exc:
            raise IntegrationFailure(str(exc) or exc.__class__.__name__) from exc

    def _load_credentials(self) -> Credentials:
        if self._credentials is not None:
            return self._credentials
        info = _read_json(self._token_path)
        try:
            if info.get("client_id") and info.get("client_secret"):
                creds = Credentials.from_authorized_user_file(str(self._token_path))
            else:
                client_id, client_secret = self._client_secrets()
                creds = Credentials(
                    token=info.get("access_token") or info.get("token"),
                    refresh_token=info.get("refresh_token"),
                    token_uri=TOKEN_URL,
                    client_id=client_id,
                    client_secret=client_secret,
                )
        except (OSError, ValueError) as exc:
            raise IntegrationFailure(f"invalid token file {self._token_path}: {exc}") from exc
        self._credentials = creds
        return creds

    def _client_secrets(self) -> tuple[str | None, str | None]:
        try:
            data = _read_json(self._credentials_path)
        except IntegrationFailure as exc:
            self._logger.warning("calendar.client_secrets.unreadable", error=exc.message)
            return None, None
        section = data.get("installed") or data.get("web") or {}
        return section.get("client_id"), section.get("client_secret")

    async def _refresh(self, creds: Credentials, reason: str) -> None:
        self._logger.info("calendar.token.refresh", reason=reason)
        if not creds.refresh_token:
            raise IntegrationFailure("token expired and no refresh_token is stored")
        try:
            await asyncio.to_thread(creds.refresh, self._auth_request)
        except GoogleAuthError as exc:
            raise IntegrationFailure(f"token refresh failed: {exc}") from exc
        try:
            self._token_path.write_text(creds.to_json(), encoding="utf-8")
        except OSError as exc:
            self._logger.warning("calendar.token.save_failed", error=str(exc))

    async def aclose(self) -> None:
        await self._client.aclose()


def _read_json(path: Path) -> dict[str, Any]:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        raise IntegrationFailure(f"cannot read {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise IntegrationFailure(f"{path} does not hold a JSON object")
    return data


def parse_event(item: dict[str, Any]) -> CalendarEvent:
    start = item.get("start")
    if not isinstance(start, dict):
        start = {}
    title = item.get("summary") or "（無題）"
    if "dateTime" in start:
        return CalendarEvent(title=title, start=datetime.fromisoformat(start["dateTime"]), all_day=False)
    return CalendarEvent(title=title, start=date.fromisoformat(start.get("date", "1970-01-01")), all_day=True)


class Calendar:
    """Lists events for today, tomorrow, the day after or the coming week."""

    name = "calendar"

    def __init__(self, client: GoogleCalendarClient | None, clock: Clock) -> None:
        self._client = client
        self._clock = clock
        self._logger = get_logger(__name__)

    def detect(self, text: str) -> bool:
        return contains_any(text, CALENDAR_TRIGGERS)

    async def execute(self, text: str) -> Outcome | None:
        if self._client is None or not self._client.available():
            return NOT_CONFIGURED_REPLY
        scope = resolve_scope(text, self._clock)
        try:
            items = await self._client.list_events(scope.start, scope.end)
        except IntegrationFailure as exc:
            self._logger.error("calendar.failed", error=exc.message)
            return Outcome(display=f"カレンダーエラー: {exc.message}", speak=FAILURE_SPEAK)
        events = [parse_event(item) for item in items]
        return self.summarize(scope, events)

    def summarize(self, scope: DateScope, events: list[CalendarEvent]) -> Outcome:
        if not events:
            return Outcome.text(f"{scope.label}の予定は特にありませんよ！")
        lines = [self._format_line(event, scope) for event in events]
        first = events[0]
        speak = f"{scope.label}の予定は{len(events)}件です。最初は{self._spoken_start(first, scope)}{first.title}ですね！"
        celebrations = [event.title for event in events if event.celebratory]
        if celebrations:
            speak += f"それと、{'、'.join(celebrations)}ですね。おめでとうございます！"
        return Outcome(display=f"{scope.label}の予定:\n" + "\n".join(lines), speak=speak)

    def _format_line(self, event: CalendarEvent, scope: DateScope) -> str:
        prefix = "🎉 " if event.celebratory else ""
        if event.all_day:
            when = "終日"
            day = event.start
        else:
            local = event.start.astimezone(self._clock.tz)
            when = f"{local.hour}:{local.minute:02d}"
            day = local.date()
        if scope.multi_day:
            when = f"{day.month}/{day.day} {when}"
        return f"{prefix}{when} {event.title}"

    def _spoken_start(self, event: CalendarEvent, scope: DateScope) -> str:
        if event.all_day:
            day = event.start
            return f"{day.month}月{day.day}日の終日で、" if scope.multi_day else "終日で、"
        local = event.start.astimezone(self._clock.tz)
        day_part = f"{local.month}月{local.day}日の" if scope.multi_day else ""
        return f"{day_part}{local.hour}時{local.minute}分から"

    def descriptor(self) -> HandlerDescriptor:
        return HandlerDescriptor(name=self.name, detect=self.detect, execute=self.execute)


__all__ = [
    "CALENDAR_TRIGGERS",
    "Calendar",
    "CalendarEvent",
    "DateScope",
    "GoogleCalendarClient",
    "parse_event",
    "resolve_scope",
]
