from __future__ import annotations

import base64
import hashlib
import hmac
import json

import httpx
import pytest

from kana.tools.switchbot import SWITCHBOT_BASE_URL, DeviceControl, SwitchBotClient, sign_request

DEVICES = {"灯り": "LIGHT-1", "テレビ": "TV-1", "温湿度計": "METER-1"}


class SwitchBotApi:
    def __init__(self, status_body: dict | None = None, command_status: int = 100, http_status: int = 200) -> None:
        self.requests: list[httpx.Request] = []
        self._status_body = status_body or {"temperature": 22.5, "humidity": 40, "CO2": 600}
        self._command_status = command_status
        self._http_status = http_status

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self._http_status != 200:
            return httpx.Response(self._http_status, json={"message": "boom"})
        if request.url.path.endswith("/status"):
            return httpx.Response(200, json={"statusCode": 100, "body": self._status_body})
        return httpx.Response(200, json={"statusCode": self._command_status, "message": "success"})

    def client(self) -> SwitchBotClient:
        http = httpx.AsyncClient(base_url=SWITCHBOT_BASE_URL, transport=httpx.MockTransport(self))
        return SwitchBotClient("token", "secret", client=http)


def test_sign_request_is_hmac_sha256_base64() -> None:
    expected = base64.b64encode(
        hmac.new(b"secret", b"token1700000000000abc", hashlib.sha256).digest()
    ).decode("ascii")

    assert sign_request("token", "secret", "1700000000000", "abc") == expected


@pytest.mark.anyio
async def test_turn_on_issues_single_command() -> None:
    api = SwitchBotApi()
    control = DeviceControl(api.client(), DEVICES)

    outcome = await control.execute("照明つけて")

    assert outcome is not None
    assert outcome.display == "照明をつけました！"
    assert len(api.requests) == 1
    request = api.requests[0]
    assert request.method == "POST"
    assert request.url.path.endswith("/devices/LIGHT-1/commands")
    assert json.loads(request.content)["command"] == "turnOn"
    headers = request.headers
    assert headers["Authorization"] == "token"
    assert headers["sign"] == sign_request("token", "secret", headers["t"], headers["nonce"])


@pytest.mark.anyio
async def test_turn_off_tv() -> None:
    api = SwitchBotApi()
    outcome = await DeviceControl(api.client(), DEVICES).execute("テレビ消して")

    assert outcome is not None
    assert outcome.display == "テレビを消しました！"
    assert json.loads(api.requests[0].content)["command"] == "turnOff"


@pytest.mark.anyio
async def test_sensor_question_reads_meter() -> None:
    api = SwitchBotApi()
    outcome = await DeviceControl(api.client(), DEVICES).execute("今の温度は？")

    assert outcome is not None
    assert outcome.display == "温度: 22.5℃ / 湿度: 40% / CO2: 600ppm"
    assert api.requests[0].method == "GET"
    assert api.requests[0].url.path.endswith("/devices/METER-1/status")


@pytest.mark.anyio
async def test_device_without_action_declines() -> None:
    api = SwitchBotApi()
    outcome = await DeviceControl(api.client(), DEVICES).execute("テレビって面白いよね")

    assert outcome is None
    assert api.requests == []


@pytest.mark.anyio
async def test_unknown_device_declines() -> None:
    api = SwitchBotApi()
    outcome = await DeviceControl(api.client(), DEVICES).execute("モニタつけて")

    assert outcome is None
    assert api.requests == []


@pytest.mark.anyio
async def test_rejected_command_becomes_apology() -> None:
    api = SwitchBotApi(command_status=190)
    outcome = await DeviceControl(api.client(), DEVICES).execute("電気つけて")

    assert outcome is not None
    assert outcome.display.startswith("SwitchBotエラー:")


@pytest.mark.anyio
async def test_http_failure_becomes_apology() -> None:
    api = SwitchBotApi(http_status=500)
    outcome = await DeviceControl(api.client(), DEVICES).execute("電気消して")

    assert outcome is not None
    assert outcome.speak == "あれ、うまくいかなかったみたいです…"


@pytest.mark.anyio
async def test_unconfigured_client_declines() -> None:
    assert await DeviceControl(None, DEVICES).execute("電気つけて") is None


@pytest.mark.anyio
async def test_malformed_sensor_body_declines() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"statusCode": 100, "body": ["unexpected"]})

    http = httpx.AsyncClient(base_url=SWITCHBOT_BASE_URL, transport=httpx.MockTransport(handler))
    control = DeviceControl(SwitchBotClient("token", "secret", client=http), DEVICES)

    assert await control.execute("湿度は？") is None
