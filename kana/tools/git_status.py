from __future__ import annotations

from pathlib import Path

from kana.errors import IntegrationFailure
from kana.orchestrator.events import Outcome
from kana.orchestrator.policies import ProcessPolicies
from kana.telemetry.logging import get_logger
from kana.tools.process import CommandRunner, run_command
from kana.tools.registry import HandlerDescriptor, contains_any

REPO_TRIGGERS = ("コミット", "commit", "git log", "git status", "作業ログ", "変更点", "ローカルリポジトリ")
COMMIT_KEYWORDS = ("コミット", "commit")
LOG_KEYWORDS = ("ログ", "log", "履歴", "コミット", "commit")
STATUS_KEYWORDS = ("変更点", "status", "ステータス")
TODAY_KEYWORDS = ("今日", "today")

RECENT_LOG_COUNT = 5


class RepositoryStatus:
    """Answers questions about the local git checkout."""

    name = "repository_status"

    def __init__(
        self,
        repo_path: Path,
        runner: CommandRunner = run_command,
        policies: ProcessPolicies | None = None,
    ) -> None:
        self._repo_path = repo_path
        self._runner = runner
        self._policies = policies or ProcessPolicies()
        self._logger = get_logger(__name__)

    def detect(self, text: str) -> bool:
        return contains_any(text, REPO_TRIGGERS, ignore_case=True)

    async def execute(self, text: str) -> Outcome | None:
        try:
            if contains_any(text, COMMIT_KEYWORDS, ignore_case=True) and contains_any(
                text, TODAY_KEYWORDS, ignore_case=True
            ):
                return await self._todays_commits()
            if contains_any(text, STATUS_KEYWORDS, ignore_case=True):
                return await self._working_tree()
            if contains_any(text, LOG_KEYWORDS, ignore_case=True):
                return await self._recent_log()
        except IntegrationFailure as exc:
            self._logger.error("git.failed", error=exc.message)
            return Outcome(display=f"gitエラー: {exc.message}", speak="ギットの情報が取れなかったみたいです…")
        return None

    async def _git(self, *args: str) -> list[str]:
        result = await self._runner(
            ["git", *args],
            timeout_s=self._policies.git_timeout_s,
            cwd=self._repo_path,
        )
        return [line for line in result.stdout.splitlines() if line.strip()]

    async def _todays_commits(self) -> Outcome:
        lines = await self._git("log", "--since=midnight", "--oneline")
        if not lines:
            return Outcome.text("今日はまだコミットがないみたいです！")
        return Outcome(
            display="今日のコミット:\n" + "\n".join(lines),
            speak=f"今日は{len(lines)}件コミットしてますよ！",
        )

    async def _recent_log(self) -> Outcome:
        lines = await self._git("log", "-n", str(RECENT_LOG_COUNT), "--oneline")
        if not lines:
            return Outcome.text("コミット履歴が見つかりませんでした…")
        latest = lines[0].split(" ", 1)[-1]
        return Outcome(
            display="最近のコミット:\n" + "\n".join(lines),
            speak=f"最新のコミットは「{latest}」ですね！",
        )

    async def _working_tree(self) -> Outcome:
        lines = await self._git("status", "--short")
        if not lines:
            return Outcome.text("作業ツリーはきれいですよ！")
        return Outcome(
            display="変更中のファイル:\n" + "\n".join(lines),
            speak=f"変更中のファイルが{len(lines)}個ありますよ！",
        )

    def descriptor(self) -> HandlerDescriptor:
        return HandlerDescriptor(name=self.name, detect=self.detect, execute=self.execute)


__all__ = ["RepositoryStatus", "REPO_TRIGGERS"]
