from __future__ import annotations

from typing import Any

import httpx

from kana.errors import RateLimited, UpstreamError
from kana.llm.types import ChatResponse, ModelRequest
from kana.telemetry.logging import get_logger

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
RATE_LIMIT_CODE = 429


class GeminiProvider:
    def __init__(
        self,
        api_key: str,
        model: str = "gemini-2.0-flash",
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._client = client or httpx.AsyncClient(base_url=GEMINI_BASE_URL, timeout=60.0)
        self._api_key = api_key
        self._model = model
        self._logger = get_logger(__name__)
        self.name = "gemini"

    async def generate(self, request: ModelRequest) -> ChatResponse:
        try:
            resp = await self._client.post(
                f"/models/{self._model}:generateContent",
                params={"key": self._api_key},
                json=request.to_payload(),
            )
        except httpx.HTTPError as exc:
            self._logger.error("gemini.transport_error", error=str(exc))
            raise UpstreamError(str(exc) or exc.__class__.__name__) from exc

        data = self._decode(resp)
        error = data.get("error")
        if error or resp.status_code >= 400:
            self._raise_for_error(resp.status_code, error)

        segments = self._segments(data)
        self._logger.info(
            "gemini.generate",
            model=self._model,
            grounded=request.grounded,
            turns=len(request.contents),
            segments=len(segments),
        )
        return ChatResponse(segments=segments, grounded=request.grounded)

    def _raise_for_error(self, status_code: int, error: Any) -> None:
        code = status_code
        message = f"HTTP {status_code}"
        if isinstance(error, dict):
            code = int(error.get("code") or status_code)
            message = str(error.get("message") or message)
        self._logger.error("gemini.error", code=code, message=message)
        if code == RATE_LIMIT_CODE or status_code == RATE_LIMIT_CODE:
            raise RateLimited(message)
        raise UpstreamError(message, status=code)

    @staticmethod
    def _decode(resp: httpx.Response) -> dict[str, Any]:
        try:
            data = resp.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}

    @staticmethod
    def _segments(data: dict[str, Any]) -> list[str]:
        candidates = data.get("candidates") or []
        if not candidates:
            return []
        parts = (candidates[0].get("content") or {}).get("parts") or []
        return [part["text"] for part in parts if isinstance(part.get("text"), str)]

    async def aclose(self) -> None:
        await self._client.aclose()


__all__ = ["GeminiProvider"]
