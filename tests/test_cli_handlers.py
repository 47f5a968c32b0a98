from __future__ import annotations

import json
from pathlib import Path

import pytest
from fakes import FakeRunner, ScriptedProvider

from kana.errors import IntegrationFailure
from kana.llm.gateway import ModelGateway
from kana.orchestrator.context import ConversationContext
from kana.tools.code_assistant import CLI_FAILURE_TEXT, NOTHING_TO_REVIEW_REPLY, CodeAssistant
from kana.tools.git_status import RepositoryStatus
from kana.tools.github import IssueTracker, extract_repo

REPO = Path("/srv/kana")


@pytest.mark.anyio
async def test_todays_commits() -> None:
    runner = FakeRunner("abc123 fix wake word\ndef456 add calendar\n")
    handler = RepositoryStatus(REPO, runner=runner)

    outcome = await handler.execute("今日のコミット教えて")

    assert outcome is not None
    assert "abc123 fix wake word" in outcome.display
    assert outcome.speak == "今日は2件コミットしてますよ！"
    call = runner.calls[0]
    assert call["args"] == ["git", "log", "--since=midnight", "--oneline"]
    assert call["cwd"] == REPO
    assert call["timeout_s"] == 10


@pytest.mark.anyio
async def test_working_tree_status() -> None:
    runner = FakeRunner(" M kana/main.py\n")
    outcome = await RepositoryStatus(REPO, runner=runner).execute("git statusどう？")

    assert outcome is not None
    assert runner.calls[0]["args"] == ["git", "status", "--short"]
    assert "kana/main.py" in outcome.display


@pytest.mark.anyio
async def test_repository_without_action_declines() -> None:
    runner = FakeRunner()
    handler = RepositoryStatus(REPO, runner=runner)

    assert handler.detect("ローカルリポジトリって何？")
    assert await handler.execute("ローカルリポジトリって何？") is None
    assert runner.calls == []


@pytest.mark.anyio
async def test_git_failure_becomes_apology() -> None:
    runner = FakeRunner(IntegrationFailure("not a git repository"))
    outcome = await RepositoryStatus(REPO, runner=runner).execute("最近のコミットは？")

    assert outcome is not None
    assert outcome.display == "gitエラー: not a git repository"


def test_extract_repo() -> None:
    assert extract_repo("kana-dev/voice のイシュー") == "kana-dev/voice"
    assert extract_repo("イシューある？") is None


@pytest.mark.anyio
async def test_issue_listing_with_explicit_repo() -> None:
    runner = FakeRunner(json.dumps([{"number": 7, "title": "Mic cuts out"}]))
    tracker = IssueTracker(default_repo="kana-dev/default", runner=runner)

    outcome = await tracker.execute("kana-dev/voice のイシュー見せて")

    assert outcome is not None
    assert "#7 Mic cuts out" in outcome.display
    args = runner.calls[0]["args"]
    assert args[:3] == ["gh", "issue", "list"]
    assert args[-2:] == ["--repo", "kana-dev/voice"]
    assert runner.calls[0]["timeout_s"] == 30


@pytest.mark.anyio
async def test_pull_requests_use_default_repo() -> None:
    runner = FakeRunner("[]")
    outcome = await IssueTracker(default_repo="kana-dev/default", runner=runner).execute("プルリクある？")

    assert outcome is not None
    assert outcome.display == "kana-dev/defaultのオープンなプルリクはありませんよ！"
    assert runner.calls[0]["args"][1] == "pr"


@pytest.mark.anyio
async def test_issue_failure_is_explicit() -> None:
    runner = FakeRunner(IntegrationFailure("gh could not be started"))
    outcome = await IssueTracker(runner=runner).execute("issue教えて")

    assert outcome is not None
    assert "取得できませんでした" in outcome.display


@pytest.mark.anyio
async def test_notifications() -> None:
    payload = [{"repository": {"full_name": "kana-dev/voice"}, "subject": {"title": "New review"}}]
    runner = FakeRunner(json.dumps(payload))
    outcome = await IssueTracker(runner=runner).execute("通知来てる？")

    assert outcome is not None
    assert "kana-dev/voice: New review" in outcome.display
    assert runner.calls[0]["args"] == ["gh", "api", "notifications"]


@pytest.mark.anyio
async def test_issue_tracker_without_action_declines() -> None:
    runner = FakeRunner()
    assert await IssueTracker(runner=runner).execute("githubって便利？") is None


def _assistant(runner: FakeRunner, provider: ScriptedProvider) -> CodeAssistant:
    return CodeAssistant(ModelGateway(provider, "persona"), ConversationContext(), workdir=REPO, runner=runner)


@pytest.mark.anyio
async def test_code_question_is_revoiced() -> None:
    runner = FakeRunner("Use a dict comprehension.")
    provider = ScriptedProvider('{"display": "辞書内包表記が便利ですよ！", "speak": "辞書内包表記が便利ですよ"}')

    outcome = await _assistant(runner, provider).execute("クロード、辞書の作り方教えて")

    assert outcome is not None
    assert outcome.display == "辞書内包表記が便利ですよ！"
    assert runner.calls[0]["args"] == ["claude", "-p", "クロード、辞書の作り方教えて"]
    assert runner.calls[0]["timeout_s"] == 120
    assert "Use a dict comprehension." in provider.requests[0].contents[-1].text


@pytest.mark.anyio
async def test_cli_failure_apology_is_revoiced() -> None:
    provider = ScriptedProvider('{"display": "ごめんなさい、クロードに聞けませんでした…", "speak": "ごめんなさい"}')
    outcome = await _assistant(FakeRunner(IntegrationFailure("claude timed out")), provider).execute("バグ直して")

    assert outcome is not None
    assert outcome.display == "ごめんなさい、クロードに聞けませんでした…"
    assert len(provider.requests) == 1
    assert CLI_FAILURE_TEXT in provider.requests[0].contents[-1].text
    assert "claude timed out" not in provider.requests[0].contents[-1].text


@pytest.mark.anyio
async def test_review_without_changes() -> None:
    provider = ScriptedProvider()
    runner = FakeRunner("")

    outcome = await _assistant(runner, provider).execute("コードレビューして")

    assert outcome == NOTHING_TO_REVIEW_REPLY
    assert runner.calls[0]["args"] == ["git", "diff"]


@pytest.mark.anyio
async def test_review_pipes_diff_to_cli() -> None:
    runner = FakeRunner("diff --git a/x b/x\n+print()\n", "Looks fine.")
    provider = ScriptedProvider('{"display": "よさそうです", "speak": "よさそうです"}')

    outcome = await _assistant(runner, provider).execute("レビューお願い")

    assert outcome is not None
    review = runner.calls[1]
    assert review["stdin"].startswith("diff --git")
    assert review["timeout_s"] == 180
    assert review["args"][:2] == ["claude", "-p"]
