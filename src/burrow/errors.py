"""Fatal error taxonomy and process exit codes.

Only fatal conditions are exceptions. Best-effort steps (builder setup,
registry login, a single propagation pass) log and return instead.
"""

from __future__ import annotations

from enum import IntEnum


class ExitCode(IntEnum):
    ENVIRONMENT = 1
    DAEMON_NOT_READY = 3
    SERVICE_NOT_EXECUTABLE = 126
    SERVICE_NOT_FOUND = 127


class BootstrapError(RuntimeError):
    """Base for failures that end the bootstrap with a specific exit code."""

    exit_code: int = ExitCode.ENVIRONMENT


class EnvironmentSetupError(BootstrapError):
    """A filesystem or kernel setup step failed before anything started."""

    exit_code = ExitCode.ENVIRONMENT


class ServiceNotExecutableError(BootstrapError):
    """The primary service binary is missing or cannot be executed."""

    def __init__(self, path: str, *, missing: bool) -> None:
        reason = "not found" if missing else "not executable"
        super().__init__(f"{path} {reason}")
        self.path = path
        self.missing = missing
        self.exit_code = (
            ExitCode.SERVICE_NOT_FOUND if missing else ExitCode.SERVICE_NOT_EXECUTABLE
        )


class DaemonNotReadyError(BootstrapError):
    """The nested daemon did not answer within its readiness deadline.

    Fatal for the background setup flow only; the service keeps running.
    """

    exit_code = ExitCode.DAEMON_NOT_READY

    def __init__(self, attempts: int) -> None:
        super().__init__(f"Docker daemon did not become ready after {attempts} attempts")
        self.attempts = attempts
