"""Type definitions shared across the bootstrap components."""

from __future__ import annotations

import subprocess
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path

from pydantic import SecretStr


class DaemonState(StrEnum):
    STARTING = "starting"
    READY = "ready"
    FAILED = "failed"


@dataclass
class DaemonProcess:
    """The nested runtime daemon, as seen by the bootstrap.

    ``proc`` is None when the daemon was started by another process (the
    ``burrow setup`` helper in replacement mode adopts it by address).
    """

    socket: str
    tcp: str | None
    proc: subprocess.Popen[bytes] | None = None
    state: DaemonState = DaemonState.STARTING

    @property
    def pid(self) -> int | None:
        return self.proc.pid if self.proc is not None else None


@dataclass(frozen=True)
class HostLayout:
    """Filesystem layout produced by environment preparation.

    Threaded explicitly into every later step instead of mutating HOME
    in the supervisor's own environment.
    """

    home: Path
    daemon_data_dir: Path
    daemon_config_path: Path
    cache_root: Path

    @property
    def credentials_file(self) -> Path:
        """Canonical registry config written by ``docker login``."""
        return self.home / ".docker" / "config.json"


@dataclass(frozen=True)
class RegistryCredentials:
    host: str  # normalized host[:port], no scheme or path
    username: str
    secret: SecretStr = field(repr=False)


@dataclass(frozen=True)
class ServiceExit:
    """Terminal state of the supervised service."""

    pid: int
    returncode: int

    @property
    def exit_status(self) -> int:
        """Shell-style status: signal deaths map to 128 + signum."""
        if self.returncode < 0:
            return 128 - self.returncode
        return self.returncode
