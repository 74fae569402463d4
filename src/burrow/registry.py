"""Post-readiness setup: buildx builder and registry login.

Both steps are best-effort. A missing builder falls back to the default
context, and some registries allow anonymous pulls, so neither failure
may block the service.
"""

from __future__ import annotations

import re

from burrow.config import Settings
from burrow.daemon import docker_cli_env
from burrow.logger import logger
from burrow.types import HostLayout, RegistryCredentials
from burrow.utils import describe_failure, run_command

_SCHEME_RE = re.compile(r"^https?://", re.IGNORECASE)


def normalize_registry_host(value: str) -> str:
    """Reduce a registry URL to ``host[:port]``.

    ``docker login`` rejects a scheme or path with a 400, so
    ``https://registry.example:5000/v2/`` becomes ``registry.example:5000``.
    """
    host = _SCHEME_RE.sub("", value.strip())
    return host.split("/", 1)[0]


async def create_builder(settings: Settings, layout: HostLayout) -> bool:
    name = settings.builder.name
    logger.info("Setting up docker buildx", builder=name)
    result = await run_command(
        settings.daemon.cli,
        "buildx",
        "create",
        "--use",
        "--name",
        name,
        env=docker_cli_env(settings, layout),
    )
    if result.ok:
        logger.info("Buildx builder ready", builder=name)
        return True
    logger.warning(
        "Buildx builder setup failed, continuing with default context",
        builder=name,
        reason=describe_failure(result),
    )
    return False


async def registry_login(
    settings: Settings,
    creds: RegistryCredentials,
    layout: HostLayout,
) -> bool:
    """Log in with the secret on stdin; writes ``layout.credentials_file``."""
    logger.info("Logging into Docker registry", registry=creds.host, username=creds.username)
    result = await run_command(
        settings.daemon.cli,
        "login",
        creds.host,
        "-u",
        creds.username,
        "--password-stdin",
        input=creds.secret.get_secret_value().encode(),
        env=docker_cli_env(settings, layout),
    )
    if result.ok:
        logger.info("Docker registry login succeeded", registry=creds.host)
        return True
    logger.warning(
        "Docker registry login failed "
        "(builds may still work if registry allows anonymous pull)",
        registry=creds.host,
        reason=describe_failure(result),
    )
    return False
