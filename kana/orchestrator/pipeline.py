from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from kana.errors import IntegrationFailure
from kana.llm.escalation import SearchEscalationPolicy, needs_search, strip_markers
from kana.llm.gateway import ModelGateway
from kana.llm.normalizer import normalize
from kana.memory.store import StoredTurn
from kana.orchestrator.context import ConversationContext
from kana.orchestrator.events import Outcome, Turn
from kana.orchestrator.policies import PipelinePolicies
from kana.telemetry.logging import get_logger
from kana.telemetry.tracing import get_tracer
from kana.tools.registry import HandlerRegistry

EMPTY_REPLY = Outcome.text("うーん、うまく答えられなかったみたいです…")


class ConversationLog(Protocol):
    async def append(self, session_id: str, role: str, content: str) -> None: ...

    async def search(self, keyword: str, limit: int = 10) -> list[StoredTurn]: ...


@dataclass(slots=True)
class PipelineResult:
    outcome: Outcome
    route: str
    session_id: str


class Pipeline:
    """Routes one utterance to exactly one outcome.

    Order: registered handlers by priority, then a grounded call for
    utterances that obviously need live data, then a plain call followed by
    the escalation policy. A handler that declines hands the utterance to a
    plain model call. Model errors propagate; history is only written when
    an outcome was produced.
    """

    def __init__(
        self,
        registry: HandlerRegistry,
        gateway: ModelGateway,
        context: ConversationContext,
        store: ConversationLog,
        policies: PipelinePolicies | None = None,
        escalation: SearchEscalationPolicy | None = None,
    ) -> None:
        self._registry = registry
        self._gateway = gateway
        self._context = context
        self._store = store
        self._policies = policies or PipelinePolicies()
        self._escalation = escalation or SearchEscalationPolicy(
            gateway, store, log_search_limit=self._policies.log_search_limit
        )
        self._logger = get_logger(__name__)
        self._tracer = get_tracer(__name__)

    @property
    def context(self) -> ConversationContext:
        return self._context

    async def handle(self, message: str) -> PipelineResult:
        with self._tracer.start_as_current_span("pipeline.handle") as span:
            history = self._context.window(self._policies.max_history)
            outcome, route = await self._route(message, history)
            span.set_attribute("kana.route", route)
            span.set_attribute("kana.history_turns", len(history))
            outcome = self._finalize(outcome)
            self._logger.info("pipeline.route", route=route, display=outcome.display[:80])
            session_id = await self._persist(message, outcome)
            return PipelineResult(outcome=outcome, route=route, session_id=session_id)

    def reset(self) -> None:
        self._context.reset()

    async def _route(self, message: str, history: list[Turn]) -> tuple[Outcome, str]:
        handler = self._registry.match(message)
        if handler is not None:
            outcome = await handler.execute(message)
            if outcome is not None:
                return outcome, handler.name
            self._logger.info("pipeline.handler_declined", handler=handler.name)
            raw = await self._gateway.call(message, history)
            return normalize(raw), f"{handler.name}>model"

        if needs_search(message):
            raw = await self._gateway.call(message, history, grounded=True)
            return normalize(raw), "grounded"

        raw = await self._gateway.call(message, history)
        escalated = await self._escalation.resolve(message, raw, history)
        route = "model" if escalated.path == "none" else f"model>{escalated.path}"
        return normalize(escalated.text), route

    @staticmethod
    def _finalize(outcome: Outcome) -> Outcome:
        display = strip_markers(outcome.display)
        speak = strip_markers(outcome.speak) or display
        if not display:
            return EMPTY_REPLY
        return Outcome(display=display, speak=speak)

    async def _persist(self, message: str, outcome: Outcome) -> str:
        session_id = await self._context.record(message, outcome.display)
        try:
            await self._store.append(session_id, "user", message)
            await self._store.append(session_id, "assistant", outcome.display)
        except IntegrationFailure as exc:
            self._logger.error("pipeline.persist_failed", session_id=session_id, error=exc.message)
        return session_id


__all__ = ["Pipeline", "PipelineResult", "ConversationLog"]
