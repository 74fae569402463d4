"""Primary service supervision.

Two ways to hand the container over to the service:

- monitored child (default): burrow stays PID 1, runs the service with
  inherited stdout/stderr, forwards signals to it, and exits with exactly
  the service's status.
- replacement: burrow execs the service, which then owns PID 1 and signal
  delivery directly.

In both modes the service's output streams are its own file descriptors,
so burrow adds no buffering.
"""

from __future__ import annotations

import asyncio
import contextlib
import os
import signal
import sys
from collections.abc import Mapping
from pathlib import Path
from typing import NoReturn

from burrow.config import Settings
from burrow.errors import ServiceNotExecutableError
from burrow.logger import logger
from burrow.types import HostLayout, ServiceExit

FORWARDED_SIGNALS = (
    signal.SIGTERM,
    signal.SIGINT,
    signal.SIGHUP,
    signal.SIGQUIT,
    signal.SIGUSR1,
    signal.SIGUSR2,
)


def validate_executable(path: Path) -> None:
    """Fail fast: an un-launchable service must never hang the container."""
    if not path.exists():
        raise ServiceNotExecutableError(str(path), missing=True)
    if not path.is_file() or not os.access(path, os.X_OK):
        raise ServiceNotExecutableError(str(path), missing=False)


def service_argv(settings: Settings) -> list[str]:
    return [str(settings.service.executable), *settings.service.args]


def service_env(
    settings: Settings,
    layout: HostLayout,
    base: Mapping[str, str] | None = None,
) -> dict[str, str]:
    """Environment handed to the service: relocated HOME plus diagnostic toggles."""
    env = dict(os.environ if base is None else base)
    env.update(settings.service.env)
    env["HOME"] = str(layout.home)
    env["PYTHONUNBUFFERED"] = "1"
    return env


def _spawn_error(path: str, exc: OSError) -> ServiceNotExecutableError:
    return ServiceNotExecutableError(path, missing=isinstance(exc, FileNotFoundError))


def _forward_signal(proc: asyncio.subprocess.Process, sig: signal.Signals) -> None:
    logger.info("Forwarding signal to service", signal=sig.name, pid=proc.pid)
    with contextlib.suppress(ProcessLookupError):
        proc.send_signal(sig)


async def run_monitored(argv: list[str], env: Mapping[str, str]) -> ServiceExit:
    """Run the service as a child and wait for it; the only foreground wait."""
    try:
        proc = await asyncio.create_subprocess_exec(*argv, env=dict(env))
    except OSError as exc:
        raise _spawn_error(argv[0], exc) from exc

    logger.info("Service started", argv=argv, pid=proc.pid)
    loop = asyncio.get_running_loop()
    for sig in FORWARDED_SIGNALS:
        loop.add_signal_handler(sig, _forward_signal, proc, sig)
    try:
        returncode = await proc.wait()
    finally:
        for sig in FORWARDED_SIGNALS:
            loop.remove_signal_handler(sig)

    result = ServiceExit(pid=proc.pid, returncode=returncode)
    log = logger.info if result.exit_status == 0 else logger.warning
    log("Service exited", pid=proc.pid, exit_status=result.exit_status)
    return result


def exec_service(argv: list[str], env: Mapping[str, str]) -> NoReturn:
    """Replace this process with the service. Returns only by raising."""
    logger.info("Handing off to service", argv=argv)
    sys.stdout.flush()
    sys.stderr.flush()
    try:
        os.execve(argv[0], argv, dict(env))
    except OSError as exc:
        raise _spawn_error(argv[0], exc) from exc
