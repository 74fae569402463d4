"""Bootstrap control flow — prepare, launch, then supervise.

Order:
1. Environment preparation (synchronous; fatal on failure)
2. Service executable check (fatal; nothing else has started yet)
3. Docker daemon launch (detached, not awaited)
4. Background setup flow and the service, started together:
   readiness → buildx → registry login → credential propagation
   runs off the critical path so the service is reachable immediately.

A readiness timeout ends only the background flow; the service keeps
running with build capability degraded.
"""

from __future__ import annotations

import asyncio
import subprocess
import sys

from burrow.config import Settings
from burrow.credentials import run_propagation_loop
from burrow.daemon import adopt_daemon, launch_daemon, wait_for_daemon
from burrow.environment import prepare_environment, resolve_layout
from burrow.errors import DaemonNotReadyError
from burrow.logger import logger
from burrow.registry import create_builder, registry_login
from burrow.supervisor import (
    exec_service,
    run_monitored,
    service_argv,
    service_env,
    validate_executable,
)
from burrow.types import DaemonProcess, HostLayout
from burrow.utils import Sleep, create_background_task


async def background_setup(
    settings: Settings,
    layout: HostLayout,
    daemon: DaemonProcess,
    *,
    sleep: Sleep = asyncio.sleep,
    stop: asyncio.Event | None = None,
) -> None:
    """Everything that needs a ready daemon. Raises DaemonNotReadyError on timeout."""
    await wait_for_daemon(daemon, settings, layout, sleep=sleep)

    if settings.builder.enabled:
        await create_builder(settings, layout)

    creds = settings.registry_credentials()
    if creds is None:
        logger.info("No registry credentials configured, skipping login")
    else:
        await registry_login(settings, creds, layout)

    await run_propagation_loop(
        layout.credentials_file,
        layout.cache_root,
        interval=settings.propagation.interval,
        sleep=sleep,
        stop=stop,
    )


async def supervise_child(
    settings: Settings,
    layout: HostLayout,
    daemon: DaemonProcess,
) -> int:
    """Monitored-child mode: background setup as a task, service in the foreground."""
    setup = create_background_task(
        background_setup(settings, layout, daemon), name="background-setup"
    )
    logger.info("Starting service (Docker will be ready in background)")
    try:
        result = await run_monitored(service_argv(settings), service_env(settings, layout))
    finally:
        setup.cancel()
    return result.exit_status


def spawn_setup_process() -> subprocess.Popen[bytes]:
    """Run the background flow as ``burrow setup`` so it survives an exec."""
    argv = [sys.executable, "-m", "burrow", "setup"]
    proc = subprocess.Popen(argv, stdin=subprocess.DEVNULL)
    logger.info("Background setup process started", pid=proc.pid)
    return proc


def run(settings: Settings) -> int:
    """Full bootstrap. Returns the service's exit status (child mode only)."""
    logger.info("Bootstrapping", mode=settings.service.mode)
    layout = prepare_environment(settings)
    validate_executable(settings.service.executable)
    daemon = launch_daemon(settings, layout)

    if settings.service.mode == "replace":
        spawn_setup_process()
        exec_service(service_argv(settings), service_env(settings, layout))

    return asyncio.run(supervise_child(settings, layout, daemon))


def run_setup(settings: Settings) -> int:
    """Body of ``burrow setup``: background flow against an already-started daemon."""
    layout = resolve_layout(settings)
    daemon = adopt_daemon(settings)
    try:
        asyncio.run(background_setup(settings, layout, daemon))
    except DaemonNotReadyError as exc:
        logger.error("Background setup aborted", err=str(exc))
        return exc.exit_code
    return 0
