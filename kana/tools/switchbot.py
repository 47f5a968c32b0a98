from __future__ import annotations

import base64
import hashlib
import hmac
import time
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any
from uuid import uuid4

import httpx

from kana.errors import IntegrationFailure
from kana.orchestrator.events import Outcome
from kana.telemetry.logging import get_logger
from kana.tools.registry import HandlerDescriptor, contains_any

SWITCHBOT_BASE_URL = "https://api.switch-bot.com/v1.1"
SUCCESS_STATUS = 100

DEVICE_TRIGGERS = (
    "電気",
    "照明",
    "ライト",
    "灯り",
    "テレビ",
    "TV",
    "モニタ",
    "PC電源",
    "パソコン",
    "温度",
    "湿度",
    "室温",
    "CO2",
    "二酸化炭素",
    "つけて",
    "消して",
    "オン",
    "オフ",
)
SENSOR_KEYWORDS = ("温度", "湿度", "室温", "CO2", "二酸化炭素", "何度")
ON_PHRASES = ("つけて", "オン")
OFF_PHRASES = ("消して", "オフ")
METER_DEVICES = ("温湿度計", "CO2センサー")


@dataclass(slots=True, frozen=True)
class DeviceCategory:
    keywords: tuple[str, ...]
    device: str
    label: str
    on_reply: Outcome
    off_reply: Outcome


DEVICE_CATEGORIES: tuple[DeviceCategory, ...] = (
    DeviceCategory(
        keywords=("電気", "照明", "ライト", "灯り"),
        device="灯り",
        label="light",
        on_reply=Outcome(display="照明をつけました！", speak="はーい、つけましたよ！"),
        off_reply=Outcome(display="照明を消しました！", speak="はーい、消しましたよ！"),
    ),
    DeviceCategory(
        keywords=("テレビ", "TV"),
        device="テレビ",
        label="tv",
        on_reply=Outcome(display="テレビをつけました！", speak="はーい、テレビつけましたよ！"),
        off_reply=Outcome(display="テレビを消しました！", speak="はーい、テレビ消しましたよ！"),
    ),
    DeviceCategory(
        keywords=("モニタ", "LG"),
        device="モニタ",
        label="monitor",
        on_reply=Outcome(display="モニタをつけました！", speak="はーい、モニタつけましたよ！"),
        off_reply=Outcome(display="モニタを消しました！", speak="はーい、モニタ消しましたよ！"),
    ),
    DeviceCategory(
        keywords=("PC電源", "パソコン"),
        device="PC電源",
        label="plug",
        on_reply=Outcome(display="PC電源をONにしました！", speak="はーい、ピーシー電源オンにしましたよ！"),
        off_reply=Outcome(display="PC電源をOFFにしました！", speak="はーい、ピーシー電源オフにしましたよ！"),
    ),
)


def sign_request(token: str, secret: str, t: str, nonce: str) -> str:
    digest = hmac.new(secret.encode("utf-8"), f"{token}{t}{nonce}".encode("utf-8"), hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


@dataclass(slots=True)
class SensorReading:
    temperature: float | None
    humidity: float | None
    co2: float | None


class SwitchBotClient:
    def __init__(self, token: str, secret: str, client: httpx.AsyncClient | None = None) -> None:
        self._token = token
        self._secret = secret
        self._client = client or httpx.AsyncClient(base_url=SWITCHBOT_BASE_URL, timeout=10.0)
        self._logger = get_logger(__name__)

    def _headers(self) -> dict[str, str]:
        t = str(int(time.time() * 1000))
        nonce = str(uuid4())
        return {
            "Authorization": self._token,
            "sign": sign_request(self._token, self._secret, t, nonce),
            "t": t,
            "nonce": nonce,
            "Content-Type": "application/json",
        }

    async def request(self, method: str, endpoint: str, body: dict[str, Any] | None = None) -> dict[str, Any]:
        try:
            resp = await self._client.request(method, f"/{endpoint}", headers=self._headers(), json=body)
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            self._logger.error("switchbot.request_failed", endpoint=endpoint, error=str(exc))
            raise IntegrationFailure(str(exc) or exc.__class__.__name__) from exc
        return data if isinstance(data, dict) else {}

    async def status(self, device_id: str) -> dict[str, Any]:
        return await self.request("GET", f"devices/{device_id}/status")

    async def command(self, device_id: str, command: str, parameter: str = "default") -> dict[str, Any]:
        self._logger.info("switchbot.command", device_id=device_id, command=command)
        data = await self.request(
            "POST",
            f"devices/{device_id}/commands",
            {"command": command, "parameter": parameter, "commandType": "command"},
        )
        if data.get("statusCode") != SUCCESS_STATUS:
            raise IntegrationFailure(f"{command} rejected: {data.get('message', data.get('statusCode'))}")
        return data

    async def aclose(self) -> None:
        await self._client.aclose()


class DeviceControl:
    """Smart-home sensor reads and on/off commands via SwitchBot."""

    name = "device_control"

    def __init__(self, client: SwitchBotClient | None, devices: Mapping[str, str]) -> None:
        self._client = client
        self._devices = dict(devices)
        self._logger = get_logger(__name__)

    def detect(self, text: str) -> bool:
        return contains_any(text, DEVICE_TRIGGERS)

    async def execute(self, text: str) -> Outcome | None:
        if self._client is None:
            self._logger.info("switchbot.unconfigured")
            return None
        try:
            if contains_any(text, SENSOR_KEYWORDS):
                reading = await self.read_sensors()
                if reading is not None:
                    return self._sensor_outcome(reading)
            for category in DEVICE_CATEGORIES:
                if not contains_any(text, category.keywords):
                    continue
                device_id = self._devices.get(category.device)
                if device_id is None:
                    self._logger.warning("switchbot.device_missing", device=category.device)
                    continue
                if contains_any(text, ON_PHRASES):
                    await self._client.command(device_id, "turnOn")
                    return category.on_reply
                if contains_any(text, OFF_PHRASES):
                    await self._client.command(device_id, "turnOff")
                    return category.off_reply
            return None
        except IntegrationFailure as exc:
            return Outcome(display=f"SwitchBotエラー: {exc.message}", speak="あれ、うまくいかなかったみたいです…")

    async def read_sensors(self) -> SensorReading | None:
        device_id = next((self._devices[name] for name in METER_DEVICES if name in self._devices), None)
        if self._client is None or device_id is None:
            return None
        data = await self._client.status(device_id)
        if data.get("statusCode") != SUCCESS_STATUS:
            self._logger.warning("switchbot.status_unexpected", status=data.get("statusCode"))
            return None
        body = data.get("body")
        if not isinstance(body, dict):
            self._logger.warning("switchbot.status_malformed", body_type=type(body).__name__)
            return None
        return SensorReading(
            temperature=body.get("temperature"),
            humidity=body.get("humidity"),
            co2=body.get("CO2"),
        )

    @staticmethod
    def _sensor_outcome(reading: SensorReading) -> Outcome:
        temp, hum, co2 = reading.temperature, reading.humidity, reading.co2
        return Outcome(
            display=f"温度: {temp}℃ / 湿度: {hum}% / CO2: {co2}ppm",
            speak=f"今{temp}度で、湿度は{hum}パーセント、CO2は{co2}ピーピーエムですね！",
        )

    def descriptor(self) -> HandlerDescriptor:
        return HandlerDescriptor(name=self.name, detect=self.detect, execute=self.execute)


__all__ = [
    "DEVICE_TRIGGERS",
    "DEVICE_CATEGORIES",
    "DeviceCategory",
    "DeviceControl",
    "SensorReading",
    "SwitchBotClient",
    "sign_request",
]
