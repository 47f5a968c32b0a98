from __future__ import annotations

import sys

import pytest

from kana.errors import IntegrationFailure
from kana.tools.process import run_command


@pytest.mark.anyio
async def test_run_command_returns_stdout() -> None:
    result = await run_command([sys.executable, "-c", "print('hello')"], timeout_s=10)

    assert result.returncode == 0
    assert result.stdout.strip() == "hello"


@pytest.mark.anyio
async def test_run_command_passes_stdin() -> None:
    script = "import sys; print(sys.stdin.read().upper())"

    result = await run_command([sys.executable, "-c", script], timeout_s=10, stdin="diff")

    assert result.stdout.strip() == "DIFF"


@pytest.mark.anyio
async def test_non_zero_exit_raises() -> None:
    with pytest.raises(IntegrationFailure):
        await run_command([sys.executable, "-c", "import sys; sys.exit(3)"], timeout_s=10)


@pytest.mark.anyio
async def test_missing_binary_raises() -> None:
    with pytest.raises(IntegrationFailure):
        await run_command(["definitely-not-a-real-binary-kana"], timeout_s=1)


@pytest.mark.anyio
async def test_timeout_kills_child() -> None:
    with pytest.raises(IntegrationFailure, match="timed out"):
        await run_command([sys.executable, "-c", "import time; time.sleep(10)"], timeout_s=0.3)
