from __future__ import annotations

from pathlib import Path

from kana.errors import IntegrationFailure
from kana.llm.gateway import ModelGateway
from kana.llm.normalizer import normalize
from kana.orchestrator.context import ConversationContext
from kana.orchestrator.events import Outcome
from kana.orchestrator.policies import ProcessPolicies
from kana.persona import code_review_prompt, tone_wrap_prompt
from kana.telemetry.logging import get_logger
from kana.tools.process import CommandRunner, run_command
from kana.tools.registry import HandlerDescriptor, contains_any

CODE_TRIGGERS = (
    "クロード",
    "claude",
    "コード書いて",
    "プログラム",
    "エラー",
    "バグ",
    "デバッグ",
    "教えてクロード",
    "実装",
    "レビュー",
)
REVIEW_KEYWORDS = ("レビュー", "review")

CLI_FAILURE_TEXT = "クロードに聞けなかったみたいです…"
NOTHING_TO_REVIEW_REPLY = Outcome.text("レビューする変更が見つかりませんでした！")


class CodeAssistant:
    """Delegates coding questions to the Claude CLI and re-voices the answer."""

    name = "code_assistant"

    def __init__(
        self,
        gateway: ModelGateway,
        context: ConversationContext,
        workdir: Path,
        cli: str = "claude",
        runner: CommandRunner = run_command,
        policies: ProcessPolicies | None = None,
    ) -> None:
        self._gateway = gateway
        self._context = context
        self._workdir = workdir
        self._cli = cli
        self._runner = runner
        self._policies = policies or ProcessPolicies()
        self._logger = get_logger(__name__)

    def detect(self, text: str) -> bool:
        return contains_any(text, CODE_TRIGGERS, ignore_case=True)

    async def execute(self, text: str) -> Outcome | None:
        try:
            if contains_any(text, REVIEW_KEYWORDS, ignore_case=True):
                answer = await self._review(text)
                if answer is None:
                    return NOTHING_TO_REVIEW_REPLY
            else:
                answer = await self._ask(text)
        except IntegrationFailure as exc:
            self._logger.error("code_assistant.failed", error=exc.message)
            answer = CLI_FAILURE_TEXT

        raw = await self._gateway.call(tone_wrap_prompt(self._truncate(answer)), self._context.window())
        return normalize(raw)

    async def _ask(self, text: str) -> str:
        result = await self._runner(
            [self._cli, "-p", text],
            timeout_s=self._policies.code_assistant_timeout_s,
            cwd=self._workdir,
        )
        return result.stdout.strip()

    async def _review(self, text: str) -> str | None:
        diff = await self._runner(["git", "diff"], timeout_s=self._policies.git_timeout_s, cwd=self._workdir)
        if not diff.stdout.strip():
            return None
        result = await self._runner(
            [self._cli, "-p", code_review_prompt(text)],
            timeout_s=self._policies.code_review_timeout_s,
            cwd=self._workdir,
            stdin=diff.stdout,
        )
        return result.stdout.strip()

    def _truncate(self, answer: str) -> str:
        limit = self._policies.max_output_chars
        return answer if len(answer) <= limit else answer[:limit] + "…"

    def descriptor(self) -> HandlerDescriptor:
        return HandlerDescriptor(name=self.name, detect=self.detect, execute=self.execute)


__all__ = ["CodeAssistant", "CODE_TRIGGERS"]
