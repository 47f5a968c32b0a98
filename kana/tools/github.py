from __future__ import annotations

import json
from typing import Any

import regex as re

from kana.errors import IntegrationFailure
from kana.orchestrator.events import Outcome
from kana.orchestrator.policies import ProcessPolicies
from kana.telemetry.logging import get_logger
from kana.tools.process import CommandRunner, run_command
from kana.tools.registry import HandlerDescriptor, contains_any

ISSUE_TRACKER_TRIGGERS = ("イシュー", "issue", "プルリク", "pull request", "通知", "github", "ギットハブ")
ISSUE_KEYWORDS = ("イシュー", "issue")
PR_KEYWORDS = ("プルリク", "pull request")
NOTIFICATION_KEYWORDS = ("通知",)

REPO_PATTERN = re.compile(r"([A-Za-z0-9_.-]+/[A-Za-z0-9_.-]+)")
LIST_LIMIT = 10


def extract_repo(text: str) -> str | None:
    match = REPO_PATTERN.search(text)
    return match.group(1) if match else None


class IssueTracker:
    """GitHub issues, pull requests and notifications through the ``gh`` CLI."""

    name = "issue_tracker"

    def __init__(
        self,
        default_repo: str | None = None,
        gh_cli: str = "gh",
        runner: CommandRunner = run_command,
        policies: ProcessPolicies | None = None,
    ) -> None:
        self._default_repo = default_repo
        self._gh = gh_cli
        self._runner = runner
        self._policies = policies or ProcessPolicies()
        self._logger = get_logger(__name__)

    def detect(self, text: str) -> bool:
        return contains_any(text, ISSUE_TRACKER_TRIGGERS, ignore_case=True)

    async def execute(self, text: str) -> Outcome | None:
        repo = extract_repo(text) or self._default_repo
        if contains_any(text, ISSUE_KEYWORDS, ignore_case=True):
            return await self._list_items("issue", repo, label="イシュー")
        if contains_any(text, PR_KEYWORDS, ignore_case=True):
            return await self._list_items("pr", repo, label="プルリク")
        if contains_any(text, NOTIFICATION_KEYWORDS):
            return await self._notifications()
        return None

    async def _gh_json(self, args: list[str]) -> Any:
        result = await self._runner([self._gh, *args], timeout_s=self._policies.gh_timeout_s)
        try:
            return json.loads(result.stdout or "[]")
        except ValueError as exc:
            raise IntegrationFailure(f"gh returned invalid JSON: {exc}") from exc

    async def _list_items(self, kind: str, repo: str | None, label: str) -> Outcome:
        args = [kind, "list", "--state", "open", "--limit", str(LIST_LIMIT), "--json", "number,title"]
        if repo:
            args.extend(["--repo", repo])
        try:
            items = await self._gh_json(args)
        except IntegrationFailure as exc:
            self._logger.error("github.list_failed", kind=kind, repo=repo, error=exc.message)
            return Outcome(
                display=f"{label}を取得できませんでした（オープンな{label}なし、または利用不可）: {exc.message}",
                speak=f"{label}の情報が取れなかったみたいです…",
            )
        where = f"{repo}の" if repo else ""
        if not items:
            return Outcome.text(f"{where}オープンな{label}はありませんよ！")
        lines = [f"#{item.get('number')} {item.get('title', '')}" for item in items]
        return Outcome(
            display=f"{where}オープンな{label}:\n" + "\n".join(lines),
            speak=f"{where}オープンな{label}が{len(items)}件ありますよ！",
        )

    async def _notifications(self) -> Outcome:
        try:
            items = await self._gh_json(["api", "notifications"])
        except IntegrationFailure as exc:
            self._logger.error("github.notifications_failed", error=exc.message)
            return Outcome(
                display=f"通知を取得できませんでした: {exc.message}",
                speak="通知の情報が取れなかったみたいです…",
            )
        if not items:
            return Outcome.text("未読の通知はありませんよ！")
        lines = [
            f"{(item.get('repository') or {}).get('full_name', '?')}: {(item.get('subject') or {}).get('title', '')}"
            for item in items[:LIST_LIMIT]
        ]
        return Outcome(
            display="未読の通知:\n" + "\n".join(lines),
            speak=f"未読の通知が{len(items)}件ありますよ！",
        )

    def descriptor(self) -> HandlerDescriptor:
        return HandlerDescriptor(name=self.name, detect=self.detect, execute=self.execute)


__all__ = ["IssueTracker", "ISSUE_TRACKER_TRIGGERS", "extract_repo"]
