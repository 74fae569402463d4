"""Shared helpers: fire-and-forget tasks and non-blocking CLI invocation."""

from __future__ import annotations

import asyncio
import contextlib
from asyncio.subprocess import DEVNULL, PIPE
from collections.abc import Awaitable, Callable, Coroutine, Mapping
from dataclasses import dataclass
from typing import Any

from burrow.logger import logger

# Injectable sleep so polling loops can be driven by a fake clock in tests.
Sleep = Callable[[float], Awaitable[None]]


def create_background_task(
    coro: Coroutine[Any, Any, Any],
    *,
    name: str | None = None,
) -> asyncio.Task[Any]:
    """Create an asyncio task that logs exceptions instead of swallowing them.

    Used for the background setup flow: its failure must be visible in the
    logs but must never reach the foreground service wait.
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
        # exc_info instead of logger.exception(): we're in a done-callback,
        # not an except handler.
        logger.error(
            "Background task failed",
            task_name=task.get_name(),
            exc_info=exc,
        )


@dataclass
class CommandResult:
    """Result of an async CLI invocation."""

    returncode: int | None
    stdout: str
    stderr: str
    timed_out: bool = False
    start_error: str | None = None

    @property
    def ok(self) -> bool:
        return self.returncode == 0


async def run_command(
    *argv: str,
    input: bytes | None = None,
    env: Mapping[str, str] | None = None,
    timeout_seconds: float = 60,
) -> CommandResult:
    """Run a command without blocking the event loop and capture its output.

    Never raises for spawn failures or timeouts; both are reported through
    the result so best-effort callers can log and move on.
    """
    try:
        process = await asyncio.create_subprocess_exec(
            *argv,
            stdin=PIPE if input is not None else DEVNULL,
            stdout=PIPE,
            stderr=PIPE,
            env=dict(env) if env is not None else None,
        )
    except OSError as exc:
        return CommandResult(returncode=None, stdout="", stderr="", start_error=str(exc))

    try:
        stdout, stderr = await asyncio.wait_for(
            process.communicate(input),
            timeout=timeout_seconds,
        )
    except TimeoutError:
        with contextlib.suppress(ProcessLookupError):
            process.kill()
        with contextlib.suppress(Exception):
            await process.communicate()
        return CommandResult(returncode=None, stdout="", stderr="", timed_out=True)
    except asyncio.CancelledError:
        with contextlib.suppress(ProcessLookupError):
            process.kill()
        raise

    return CommandResult(
        returncode=process.returncode,
        stdout=stdout.decode(errors="replace").strip(),
        stderr=stderr.decode(errors="replace").strip(),
    )


def describe_failure(result: CommandResult) -> str:
    """One-line reason for a failed command, for log context."""
    if result.start_error:
        return result.start_error
    if result.timed_out:
        return "timed out"
    return result.stderr[-500:] or f"exit code {result.returncode}"
