from __future__ import annotations

from typing import Any, Protocol

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel

from kana.config import AppSettings, load_settings
from kana.errors import KanaError, RateLimited, UpstreamError, ValidationError
from kana.llm.gateway import ModelGateway, UnconfiguredProvider
from kana.llm.providers.gemini import GeminiProvider
from kana.memory.store import ConversationStore, NullConversationStore
from kana.orchestrator.clock import Clock
from kana.orchestrator.context import ConversationContext
from kana.orchestrator.events import ChatReply, Outcome
from kana.orchestrator.pipeline import Pipeline
from kana.orchestrator.policies import PipelinePolicies, ProcessPolicies
from kana.persona import GENERIC_ERROR_REPLY, RATE_LIMIT_REPLY, load_system_prompt, upstream_error_reply
from kana.telemetry.logging import bind_request, configure_logging, get_logger
from kana.telemetry.tracing import configure_tracing
from kana.tools.calendar import Calendar, GoogleCalendarClient
from kana.tools.code_assistant import CodeAssistant
from kana.tools.git_status import RepositoryStatus
from kana.tools.github import IssueTracker
from kana.tools.local_facts import LocalFacts
from kana.tools.registry import HandlerRegistry
from kana.tools.switchbot import DeviceControl, SwitchBotClient
from kana.tts.voicevox import VoicevoxClient

MESSAGE_REQUIRED = {"error": "Message required"}

settings = load_settings()
configure_logging(settings.telemetry.log_level, json_logs=settings.telemetry.json_logs)
configure_tracing(settings.telemetry)
logger = get_logger(__name__)

app = FastAPI(title="Kana Voice Chat")


class ChatRequest(BaseModel):
    message: str | None = None


class SpeechSynthesizer(Protocol):
    async def synthesize_base64(self, text: str) -> str | None: ...


class Closeable(Protocol):
    async def aclose(self) -> None: ...


class Runtime:
    def __init__(
        self,
        pipeline: Pipeline,
        tts: SpeechSynthesizer,
        resources: list[Closeable] | None = None,
    ) -> None:
        self._pipeline = pipeline
        self._tts = tts
        self._resources = list(resources or [])
        self._logger = get_logger(__name__)

    @property
    def pipeline(self) -> Pipeline:
        return self._pipeline

    async def handle_text(self, message: str) -> tuple[int, dict[str, Any]]:
        bind_request(session_id=self._pipeline.context.session_id)
        self._logger.info("runtime.chat.start", message=message[:80])
        error: str | None = None
        status = 200
        try:
            result = await self._pipeline.handle(message)
            outcome = result.outcome
        except RateLimited as exc:
            self._logger.warning("runtime.chat.rate_limited")
            outcome, error, status = RATE_LIMIT_REPLY, exc.code, exc.http_status
        except UpstreamError as exc:
            self._logger.error("runtime.chat.upstream_error", error=exc.message, status=exc.status)
            outcome, error, status = upstream_error_reply(exc.message), f"{exc.code}: {exc.message}", exc.http_status
        except Exception as exc:  # noqa: BLE001
            self._logger.exception("runtime.chat.failed")
            outcome, error, status = GENERIC_ERROR_REPLY, str(exc) or exc.__class__.__name__, KanaError.http_status

        reply = await self._voice(outcome)
        if error is not None:
            return status, {"error": error, **reply.to_dict()}
        return status, reply.to_dict()

    async def _voice(self, outcome: Outcome) -> ChatReply:
        audio = await self._tts.synthesize_base64(outcome.speak)
        if audio is None:
            self._logger.warning("runtime.tts.unavailable")
        return ChatReply(display=outcome.display, speak=outcome.speak, audio=audio)

    def reset(self) -> None:
        self._pipeline.reset()

    async def shutdown(self) -> None:
        self._logger.info("runtime.shutdown.start")
        for resource in self._resources:
            await resource.aclose()
        self._resources.clear()
        self._logger.info("runtime.shutdown.complete")


@app.exception_handler(RequestValidationError)
async def validation_error_handler(_: Request, exc: RequestValidationError) -> JSONResponse:
    logger.info("http.validation_error", errors=len(exc.errors()))
    return JSONResponse(status_code=ValidationError.http_status, content=MESSAGE_REQUIRED)


@app.on_event("startup")
async def startup_event() -> None:
    app.state.runtime = await bootstrap_runtime(settings)


@app.on_event("shutdown")
async def shutdown_event() -> None:
    runtime = getattr(app.state, "runtime", None)
    if runtime:
        await runtime.shutdown()


@app.post("/chat")
async def chat_endpoint(request: ChatRequest) -> JSONResponse:
    message = (request.message or "").strip()
    if not message:
        return JSONResponse(status_code=ValidationError.http_status, content=MESSAGE_REQUIRED)
    runtime: Runtime | None = getattr(app.state, "runtime", None)
    if runtime is None:
        return JSONResponse(status_code=503, content={"error": "NOT_READY", **GENERIC_ERROR_REPLY.to_dict()})
    status, body = await runtime.handle_text(message)
    return JSONResponse(status_code=status, content=body)


@app.post("/reset")
async def reset_endpoint() -> dict[str, str]:
    runtime: Runtime | None = getattr(app.state, "runtime", None)
    if runtime:
        runtime.reset()
    logger.info("http.reset")
    return {"status": "ok"}


@app.get("/health")
async def health() -> dict[str, Any]:
    runtime: Runtime | None = getattr(app.state, "runtime", None)
    if runtime is None:
        return {"status": "starting"}
    context = runtime.pipeline.context
    return {"status": "ok", "session_id": context.session_id, "history": len(context)}


def build_registry(
    config: AppSettings,
    gateway: ModelGateway,
    context: ConversationContext,
    clock: Clock,
    switchbot: SwitchBotClient | None,
    calendar: GoogleCalendarClient | None,
    policies: ProcessPolicies,
) -> HandlerRegistry:
    repo = config.repository
    return HandlerRegistry(
        [
            LocalFacts(clock).descriptor(),
            DeviceControl(switchbot, config.switchbot.devices).descriptor(),
            RepositoryStatus(repo.path, policies=policies).descriptor(),
            IssueTracker(repo.github_default_repo, gh_cli=repo.gh_cli, policies=policies).descriptor(),
            Calendar(calendar, clock).descriptor(),
            CodeAssistant(
                gateway,
                context,
                workdir=config.code_assistant.workdir,
                cli=config.code_assistant.cli,
                policies=policies,
            ).descriptor(),
        ]
    )


async def bootstrap_runtime(config: AppSettings) -> Runtime:
    store: ConversationStore | NullConversationStore
    try:
        store = ConversationStore(config.CONVERSATION_DB_URL)
        await store.init()
    except Exception as exc:  # noqa: BLE001
        logger.error("store.init.failed", error=str(exc))
        store = NullConversationStore()
        await store.init()

    llm = config.llm
    if llm.gemini_api_key:
        provider: GeminiProvider | UnconfiguredProvider = GeminiProvider(llm.gemini_api_key, llm.gemini_model)
    else:
        logger.warning("gemini.unconfigured")
        provider = UnconfiguredProvider()
    gateway = ModelGateway(provider, load_system_prompt(llm.system_prompt_path), max_history=llm.max_history)
    context = ConversationContext(max_turns=llm.max_history)
    clock = Clock(config.calendar.timezone)

    switchbot_cfg = config.switchbot
    switchbot = SwitchBotClient(switchbot_cfg.token, switchbot_cfg.secret) if switchbot_cfg.enabled else None
    calendar = GoogleCalendarClient(config.calendar.token_path, config.calendar.credentials_path)

    registry = build_registry(config, gateway, context, clock, switchbot, calendar, ProcessPolicies())
    pipeline = Pipeline(
        registry,
        gateway,
        context,
        store,
        policies=PipelinePolicies(max_history=llm.max_history),
    )
    voicevox = config.voicevox
    tts = VoicevoxClient(voicevox.base_url, voicevox.speaker, voicevox.speed_scale)

    resources: list[Closeable] = [gateway, tts, calendar, store]
    if switchbot is not None:
        resources.append(switchbot)
    logger.info("runtime.started", handlers=registry.names(), provider=gateway.provider_name)
    return Runtime(pipeline, tts, resources)


if settings.server.static_dir is not None and settings.server.static_dir.is_dir():
    # Must stay below the API routes.
    app.mount("/", StaticFiles(directory=settings.server.static_dir, html=True), name="client")


def run() -> None:
    uvicorn.run("kana.main:app", host=settings.server.host, port=settings.server.port)


__all__ = ["app", "Runtime", "ChatRequest", "bootstrap_runtime", "build_registry", "run"]
