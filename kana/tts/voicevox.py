from __future__ import annotations

import base64

import httpx

from kana.telemetry.logging import get_logger


class VoicevoxClient:
    def __init__(
        self,
        base_url: str = "http://localhost:50021",
        speaker: int = 8,
        speed_scale: float = 1.2,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._speaker = speaker
        self._speed_scale = speed_scale
        self._client = client or httpx.AsyncClient(base_url=base_url.rstrip("/"), timeout=httpx.Timeout(30.0, connect=5.0))
        self._logger = get_logger(__name__)

    async def synthesize(self, text: str) -> bytes | None:
        """Return WAV bytes for *text*, or ``None`` when the engine is unavailable."""
        if not text.strip():
            return None
        log_text = text if len(text) <= 80 else text[:80] + "…"
        try:
            query_resp = await self._client.post("/audio_query", params={"text": text, "speaker": self._speaker})
            query_resp.raise_for_status()
            query = query_resp.json()
            query["speedScale"] = self._speed_scale

            audio_resp = await self._client.post("/synthesis", params={"speaker": self._speaker}, json=query)
            audio_resp.raise_for_status()
        except (httpx.HTTPError, ValueError, TypeError) as exc:
            self._logger.error("voicevox.synthesis_failed", text=log_text, error=str(exc))
            return None
        self._logger.info("voicevox.synthesized", text=log_text, bytes=len(audio_resp.content))
        return audio_resp.content

    async def synthesize_base64(self, text: str) -> str | None:
        audio = await self.synthesize(text)
        if audio is None:
            return None
        return base64.b64encode(audio).decode("ascii")

    async def aclose(self) -> None:
        await self._client.aclose()


__all__ = ["VoicevoxClient"]
