"""Centralized configuration — Pydantic BaseSettings with TOML + dotenv sources.

Static settings live in burrow.toml (optional; every field has a default that
matches the stock container image). Registry secrets arrive through the
environment. Nested fields can be overridden with ``__`` as the delimiter
(e.g. ``DAEMON__READINESS_TIMEOUT=30``).

Priority (highest wins): init args > env vars > .env > burrow.toml

Usage::

    from burrow.config import get_settings

    s = get_settings()
    print(s.daemon.readiness_timeout)
    print(s.service.executable)
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import AliasChoices, BaseModel, Field, SecretStr, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    TomlConfigSettingsSource,
)

from burrow.types import RegistryCredentials

# ---------------------------------------------------------------------------
# Sub-models (each maps to a [section] in burrow.toml)
# ---------------------------------------------------------------------------


class _StrictModel(BaseModel):
    """Base for all config sub-models — reject unknown keys so typos fail loudly."""

    model_config = {"extra": "forbid"}


class StorageConfig(_StrictModel):
    data_root: Path = Path("/data")
    home: Path = Path("/root")
    overcommit_memory: int | None = 1  # None leaves the kernel setting alone
    overcommit_path: Path = Path("/proc/sys/vm/overcommit_memory")

    @property
    def daemon_data_dir(self) -> Path:
        return self.data_root / "docker"

    @property
    def home_target(self) -> Path:
        return self.data_root / "root"


class DaemonConfig(_StrictModel):
    binary: str = "dockerd"
    cli: str = "docker"
    socket: str = "unix:///var/run/docker.sock"
    tcp: str | None = "tcp://0.0.0.0:2376"
    config_path: Path = Path("/etc/docker/daemon.json")
    insecure_registries: list[str] = []
    readiness_timeout: int = 90  # attempts, one per poll_interval
    poll_interval: float = 1.0  # seconds

    @field_validator("readiness_timeout")
    @classmethod
    def validate_readiness_timeout(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("readiness_timeout must be positive")
        return v


class BuilderConfig(_StrictModel):
    enabled: bool = True
    name: str = "builder"


class RegistryConfig(_StrictModel):
    """Fixed identity used when only ``REGISTRY_TOKEN`` is supplied."""

    token_username: str | None = None
    token_host: str | None = None


class PropagationConfig(_StrictModel):
    cache_root: Path = Path("/data/cache")
    interval: float = 1.0  # seconds


class ServiceConfig(_StrictModel):
    executable: Path = Path("/usr/local/bin/notification-server")
    args: list[str] = []
    mode: Literal["child", "replace"] = "child"
    # Diagnostic toggles exported to the service, not read by burrow itself
    env: dict[str, str] = {"RUST_BACKTRACE": "1", "RUST_LOG": "info"}


class LoggingConfig(_StrictModel):
    level: str = "INFO"

    @field_validator("level")
    @classmethod
    def normalize_level(cls, v: str) -> str:
        return v.upper()


# ---------------------------------------------------------------------------
# Root Settings
# ---------------------------------------------------------------------------


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        toml_file="burrow.toml",
        env_file=".env",
        env_nested_delimiter="__",
        extra="ignore",
        populate_by_name=True,
    )

    storage: StorageConfig = StorageConfig()
    daemon: DaemonConfig = DaemonConfig()
    builder: BuilderConfig = BuilderConfig()
    registry: RegistryConfig = RegistryConfig()
    propagation: PropagationConfig = PropagationConfig()
    service: ServiceConfig = ServiceConfig()
    logging: LoggingConfig = LoggingConfig()

    # Conventional registry variables, read under their bare names
    docker_username: str | None = Field(
        default=None, validation_alias=AliasChoices("DOCKER_USERNAME", "docker_username")
    )
    docker_password: SecretStr | None = Field(
        default=None, validation_alias=AliasChoices("DOCKER_PASSWORD", "docker_password")
    )
    docker_registry: str | None = Field(
        default=None, validation_alias=AliasChoices("DOCKER_REGISTRY", "docker_registry")
    )
    registry_token: SecretStr | None = Field(
        default=None, validation_alias=AliasChoices("REGISTRY_TOKEN", "registry_token")
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Priority: init > env vars > .env > burrow.toml > file secrets."""
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            TomlConfigSettingsSource(settings_cls),
            file_secret_settings,
        )

    def registry_credentials(self) -> RegistryCredentials | None:
        """Resolve the registry identity to log in with, or None to skip login.

        Username, password and registry must all be set together. Failing
        that, a bare ``REGISTRY_TOKEN`` logs in as the fixed identity from
        ``[registry]``.
        """
        from burrow.registry import normalize_registry_host

        if self.docker_username and self.docker_password and self.docker_registry:
            return RegistryCredentials(
                host=normalize_registry_host(self.docker_registry),
                username=self.docker_username,
                secret=self.docker_password,
            )
        token_identity = self.registry.token_username and self.registry.token_host
        if self.registry_token and token_identity:
            return RegistryCredentials(
                host=normalize_registry_host(self.registry.token_host or ""),
                username=self.registry.token_username or "",
                secret=self.registry_token,
            )
        return None


# ---------------------------------------------------------------------------
# Singleton
# ---------------------------------------------------------------------------

_settings: Settings | None = None


def get_settings() -> Settings:
    """Lazy cached singleton."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Clear the cached singleton (for tests)."""
    global _settings
    _settings = None
