"""Nested Docker daemon — launch and readiness polling.

The daemon is started once, detached from the event loop, and never
joined: container teardown owns its cleanup. Readiness is a bounded poll
of ``docker info`` against the control socket.
"""

from __future__ import annotations

import asyncio
import os
import subprocess
from collections.abc import Mapping

from burrow.config import Settings
from burrow.errors import DaemonNotReadyError
from burrow.logger import logger
from burrow.types import DaemonProcess, DaemonState, HostLayout
from burrow.utils import Sleep, describe_failure, run_command

# Upper bound for a single `docker info`; a wedged socket must not stall the budget.
_INFO_TIMEOUT = 5.0


def daemon_command(settings: Settings, layout: HostLayout) -> list[str]:
    d = settings.daemon
    argv = [d.binary, f"--host={d.socket}"]
    if d.tcp:
        argv.append(f"--host={d.tcp}")
    argv += [
        f"--data-root={layout.daemon_data_dir}",
        f"--config-file={layout.daemon_config_path}",
    ]
    return argv


def docker_cli_env(
    settings: Settings,
    layout: HostLayout,
    base: Mapping[str, str] | None = None,
) -> dict[str, str]:
    """Environment for docker CLI calls: relocated HOME, local control socket."""
    env = dict(os.environ if base is None else base)
    env["HOME"] = str(layout.home)
    env["DOCKER_HOST"] = settings.daemon.socket
    return env


def launch_daemon(settings: Settings, layout: HostLayout) -> DaemonProcess:
    """Start dockerd in the background and return without waiting.

    A spawn failure is logged and leaves the daemon ``failed``; the
    readiness poll then fails in the background flow while the service
    still starts.
    """
    daemon = DaemonProcess(socket=settings.daemon.socket, tcp=settings.daemon.tcp)
    argv = daemon_command(settings, layout)
    logger.info("Starting Docker daemon in background", argv=argv)
    try:
        daemon.proc = subprocess.Popen(argv, stdin=subprocess.DEVNULL)
    except OSError as exc:
        daemon.state = DaemonState.FAILED
        logger.error("Failed to start Docker daemon", binary=argv[0], err=str(exc))
        return daemon
    logger.info("Docker daemon spawned", pid=daemon.pid)
    return daemon


def adopt_daemon(settings: Settings) -> DaemonProcess:
    """Reference a daemon started by another process, by address only."""
    return DaemonProcess(socket=settings.daemon.socket, tcp=settings.daemon.tcp)


async def probe_daemon(settings: Settings, layout: HostLayout) -> bool:
    """One lightweight status query against the control socket."""
    result = await run_command(
        settings.daemon.cli,
        "info",
        env=docker_cli_env(settings, layout),
        timeout_seconds=_INFO_TIMEOUT,
    )
    if not result.ok:
        logger.debug("Docker not ready yet", reason=describe_failure(result))
    return result.ok


async def wait_for_daemon(
    daemon: DaemonProcess,
    settings: Settings,
    layout: HostLayout,
    *,
    sleep: Sleep = asyncio.sleep,
) -> int:
    """Poll until the daemon answers; return the number of attempts used.

    The budget is ``readiness_timeout`` attempts, one per ``poll_interval``.
    It is spent exactly once: on exhaustion the daemon is marked failed and
    DaemonNotReadyError is raised, with no retry.
    """
    budget = settings.daemon.readiness_timeout
    interval = settings.daemon.poll_interval
    logger.info("Waiting for Docker to be ready", timeout=budget, interval=interval)

    remaining = budget
    while True:
        if await probe_daemon(settings, layout):
            daemon.state = DaemonState.READY
            attempts = budget - remaining + 1
            logger.info("Docker is ready", attempts=attempts)
            return attempts
        remaining -= 1
        if remaining <= 0:
            daemon.state = DaemonState.FAILED
            logger.error("Docker daemon failed to become ready", attempts=budget)
            raise DaemonNotReadyError(budget)
        await sleep(interval)
