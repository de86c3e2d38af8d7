"""Shared utility functions.

Small helpers used across multiple modules: fire-and-forget background tasks
that still log their failures, async shell execution with a timeout, and text
truncation for chat-sized payloads.
"""

from __future__ import annotations

import asyncio
import contextlib
import os
import signal
from asyncio.subprocess import PIPE, STDOUT
from collections.abc import Coroutine
from dataclasses import dataclass
from typing import Any

from opencode_slack.logger import logger

TRUNCATION_MARKER = "...(truncated)"

# How long to wait for pipes to close after the process group is killed.
KILL_DRAIN_SECONDS = 2.0


def truncate(text: str, max_chars: int, *, marker: str = TRUNCATION_MARKER) -> str:
    """Cap ``text`` at ``max_chars``, appending ``marker`` when cut."""
    if len(text) <= max_chars:
        return text
    return text[:max_chars] + marker


def create_background_task(
    coro: Coroutine[Any, Any, Any],
    *,
    name: str | None = None,
) -> asyncio.Task[Any]:
    """Create an asyncio task that logs exceptions instead of swallowing them.

    A drop-in replacement for ``asyncio.create_task`` for long-lived loops
    (poller, event consumer) where we don't await the result but still want
    failures to appear in logs.
    """
    task = asyncio.create_task(coro, name=name)
    task.add_done_callback(_log_task_exception)
    return task


def _log_task_exception(task: asyncio.Task[Any]) -> None:
    """Callback attached to background tasks — logs unhandled exceptions."""
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        # logger.exception() won't work here because we're in a done-callback,
        # not an except handler.
        logger.error(
            "Background task failed",
            task_name=task.get_name(),
            exc_info=exc,
        )


@dataclass
class ShellResult:
    """Result of an async shell command execution."""

    returncode: int | None
    output: str  # stdout and stderr, interleaved
    timed_out: bool = False
    start_error: str | None = None
    truncated: bool = False


async def run_shell_command(
    command: str,
    *,
    cwd: str | None = None,
    timeout_seconds: float = 30,
    max_bytes: int = 1_000_000,
) -> ShellResult:
    """Run a shell command asynchronously with timeout and structured result.

    stderr is merged into stdout so the caller sees output in the order the
    process produced it.  At most ``max_bytes`` of output are kept.
    """
    try:
        process = await asyncio.create_subprocess_shell(
            command,
            cwd=cwd,
            stdout=PIPE,
            stderr=STDOUT,
            start_new_session=True,  # own process group so a timeout kills children too
        )
    except OSError as exc:
        return ShellResult(returncode=None, output="", start_error=str(exc))

    try:
        stdout, _ = await asyncio.wait_for(process.communicate(), timeout=timeout_seconds)
    except TimeoutError:
        _kill_process_group(process)
        with contextlib.suppress(Exception):
            await asyncio.wait_for(process.wait(), timeout=KILL_DRAIN_SECONDS)
        return ShellResult(returncode=None, output="", timed_out=True)
    except Exception as exc:
        return ShellResult(returncode=None, output="", start_error=str(exc))

    truncated = len(stdout) > max_bytes
    return ShellResult(
        returncode=process.returncode,
        output=stdout[:max_bytes].decode(errors="replace").strip(),
        truncated=truncated,
    )


def _kill_process_group(process: asyncio.subprocess.Process) -> None:
    """SIGKILL the whole process group started for ``process``."""
    try:
        os.killpg(process.pid, signal.SIGKILL)
    except (ProcessLookupError, PermissionError):
        with contextlib.suppress(ProcessLookupError):
            process.kill()


def log_shell_result(result: ShellResult, *, label: str, **extra: Any) -> None:
    """Log the outcome of a shell command execution."""
    if result.start_error:
        logger.error(f"Failed to start {label}", err=result.start_error, **extra)
    elif result.timed_out:
        logger.error(f"{label} timed out", **extra)
    elif result.returncode == 0:
        logger.info(f"{label} completed", exit_code=result.returncode, **extra)
    else:
        logger.warning(
            f"{label} failed",
            exit_code=result.returncode,
            output_tail=result.output[-500:] if result.output else "",
            **extra,
        )
