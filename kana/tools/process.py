from __future__ import annotations

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from kana.errors import IntegrationFailure
from kana.telemetry.logging import get_logger

LOGGER = get_logger(__name__)


@dataclass(slots=True)
class ProcessResult:
    args: list[str]
    returncode: int
    stdout: str
    stderr: str


class CommandRunner(Protocol):
    async def __call__(
        self,
        args: Sequence[str],
        *,
        timeout_s: float,
        cwd: Path | None = None,
        stdin: str | None = None,
    ) -> ProcessResult: ...


async def run_command(
    args: Sequence[str],
    *,
    timeout_s: float,
    cwd: Path | None = None,
    stdin: str | None = None,
) -> ProcessResult:
    """Run an external CLI without a shell and return its stdout.

    Non-zero exit, a missing binary and the timeout all raise
    ``IntegrationFailure``. On timeout the child is killed and reaped.
    """
    argv = [str(arg) for arg in args]
    try:
        proc = await asyncio.create_subprocess_exec(
            *argv,
            cwd=str(cwd) if cwd else None,
            stdin=asyncio.subprocess.PIPE if stdin is not None else asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except (FileNotFoundError, PermissionError, NotADirectoryError) as exc:
        LOGGER.error("process.spawn_failed", cmd=argv[0], error=str(exc))
        raise IntegrationFailure(f"{argv[0]} could not be started: {exc}") from exc

    try:
        stdout, stderr = await asyncio.wait_for(
            proc.communicate(stdin.encode("utf-8") if stdin is not None else None),
            timeout=timeout_s,
        )
    except asyncio.TimeoutError as exc:
        proc.kill()
        await proc.wait()
        LOGGER.error("process.timeout", cmd=argv[0], timeout_s=timeout_s)
        raise IntegrationFailure(f"{argv[0]} timed out after {timeout_s}s") from exc

    result = ProcessResult(
        args=argv,
        returncode=proc.returncode if proc.returncode is not None else -1,
        stdout=stdout.decode("utf-8", errors="replace"),
        stderr=stderr.decode("utf-8", errors="replace"),
    )
    LOGGER.info("process.finished", cmd=argv[0], returncode=result.returncode)
    if result.returncode != 0:
        raise IntegrationFailure(f"{argv[0]} exited with {result.returncode}: {result.stderr.strip()[:200]}")
    return result


__all__ = ["ProcessResult", "CommandRunner", "run_command"]
