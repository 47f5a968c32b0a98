from __future__ import annotations

import functools
from pathlib import Path

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class LLMSettings(BaseModel):
    gemini_api_key: str | None = None
    gemini_model: str = "gemini-2.0-flash"
    max_history: int = 20
    system_prompt_path: Path | None = None


class VoicevoxSettings(BaseModel):
    base_url: str = "http://localhost:50021"
    speaker: int = 8
    speed_scale: float = 1.2


class SwitchBotSettings(BaseModel):
    token: str | None = None
    secret: str | None = None
    devices: dict[str, str] = Field(default_factory=dict)

    @property
    def enabled(self) -> bool:
        return bool(self.token and self.secret)


class RepositorySettings(BaseModel):
    path: Path
    github_default_repo: str | None = None
    gh_cli: str = "gh"


class CalendarSettings(BaseModel):
    token_path: Path
    credentials_path: Path
    timezone: str = "Asia/Tokyo"


class CodeAssistantSettings(BaseModel):
    cli: str = "claude"
    workdir: Path


class TelemetrySettings(BaseModel):
    log_level: str = "INFO"
    json_logs: bool = True
    otlp_endpoint: str | None = None
    service_name: str = "kana-voice-chat"


class ServerSettings(BaseModel):
    host: str = "127.0.0.1"
    port: int = 3000
    static_dir: Path | None = None


class AppSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=(".env", ".env.local"), env_file_encoding="utf-8", extra="ignore")

    GEMINI_API_KEY: str | None = None
    GEMINI_MODEL: str = "gemini-2.0-flash"
    MAX_HISTORY: int = Field(default=20, ge=0)
    SYSTEM_PROMPT_PATH: Path | None = None
    VOICEVOX_URL: str = "http://localhost:50021"
    VOICEVOX_SPEAKER: int = 8
    VOICEVOX_SPEED_SCALE: float = 1.2
    SWITCHBOT_TOKEN: str | None = None
    SWITCHBOT_SECRET: str | None = None
    SWITCHBOT_DEVICES: dict[str, str] = Field(default_factory=dict)
    GIT_REPO_PATH: Path = Path(".")
    GITHUB_DEFAULT_REPO: str | None = None
    GH_CLI: str = "gh"
    GOOGLE_TOKEN_PATH: Path = Path("token.json")
    GOOGLE_CREDENTIALS_PATH: Path = Path("credentials.json")
    TIMEZONE: str = "Asia/Tokyo"
    CLAUDE_CLI: str = "claude"
    CONVERSATION_DB_URL: str = "sqlite+aiosqlite:///conversations.db"
    LOG_LEVEL: str = "INFO"
    JSON_LOGS: bool = True
    OTEL_EXPORTER_OTLP_ENDPOINT: str | None = None
    OTEL_SERVICE_NAME: str = "kana-voice-chat"
    HOST: str = "127.0.0.1"
    PORT: int = 3000
    STATIC_DIR: Path | None = None

    @property
    def llm(self) -> LLMSettings:
        return LLMSettings(
            gemini_api_key=self.GEMINI_API_KEY,
            gemini_model=self.GEMINI_MODEL,
            max_history=self.MAX_HISTORY,
            system_prompt_path=self.SYSTEM_PROMPT_PATH,
        )

    @property
    def voicevox(self) -> VoicevoxSettings:
        return VoicevoxSettings(
            base_url=self.VOICEVOX_URL,
            speaker=self.VOICEVOX_SPEAKER,
            speed_scale=self.VOICEVOX_SPEED_SCALE,
        )

    @property
    def switchbot(self) -> SwitchBotSettings:
        return SwitchBotSettings(
            token=self.SWITCHBOT_TOKEN,
            secret=self.SWITCHBOT_SECRET,
            devices=self.SWITCHBOT_DEVICES,
        )

    @property
    def repository(self) -> RepositorySettings:
        return RepositorySettings(
            path=self.GIT_REPO_PATH.expanduser(),
            github_default_repo=self.GITHUB_DEFAULT_REPO,
            gh_cli=self.GH_CLI,
        )

    @property
    def calendar(self) -> CalendarSettings:
        return CalendarSettings(
            token_path=self.GOOGLE_TOKEN_PATH.expanduser(),
            credentials_path=self.GOOGLE_CREDENTIALS_PATH.expanduser(),
            timezone=self.TIMEZONE,
        )

    @property
    def code_assistant(self) -> CodeAssistantSettings:
        return CodeAssistantSettings(cli=self.CLAUDE_CLI, workdir=self.GIT_REPO_PATH.expanduser())

    @property
    def telemetry(self) -> TelemetrySettings:
        return TelemetrySettings(
            log_level=self.LOG_LEVEL,
            json_logs=self.JSON_LOGS,
            otlp_endpoint=self.OTEL_EXPORTER_OTLP_ENDPOINT,
            service_name=self.OTEL_SERVICE_NAME,
        )

    @property
    def server(self) -> ServerSettings:
        return ServerSettings(host=self.HOST, port=self.PORT, static_dir=self.STATIC_DIR)


@functools.lru_cache(maxsize=1)
def load_settings() -> AppSettings:
    return AppSettings()


__all__ = ["AppSettings", "load_settings"]
