"""Shared test fixtures for burrow."""

from __future__ import annotations

from pathlib import Path

import pytest

# ---------------------------------------------------------------------------
# Shared helpers (plain functions, not fixtures — importable by test files)
# ---------------------------------------------------------------------------


def make_settings(**overrides):
    """Create a Settings object without reading env, .env or burrow.toml.

    Usage::

        s = make_settings(daemon=DaemonConfig(readiness_timeout=30))
        s = make_settings(docker_username="ci", docker_password=SecretStr("pw"))
    """
    from burrow.config import (
        BuilderConfig,
        DaemonConfig,
        LoggingConfig,
        PropagationConfig,
        RegistryConfig,
        ServiceConfig,
        Settings,
        StorageConfig,
    )

    defaults = {
        "storage": StorageConfig(),
        "daemon": DaemonConfig(),
        "builder": BuilderConfig(),
        "registry": RegistryConfig(),
        "propagation": PropagationConfig(),
        "service": ServiceConfig(),
        "logging": LoggingConfig(),
        "docker_username": None,
        "docker_password": None,
        "docker_registry": None,
        "registry_token": None,
    }
    defaults.update(overrides)
    return Settings.model_construct(**defaults)


def make_sandbox_settings(root: Path, **overrides):
    """Settings with every filesystem path rooted under *root*."""
    from burrow.config import DaemonConfig, PropagationConfig, ServiceConfig, StorageConfig

    defaults = {
        "storage": StorageConfig(
            data_root=root / "data",
            home=root / "root",
            overcommit_path=root / "proc" / "overcommit_memory",
        ),
        "daemon": DaemonConfig(config_path=root / "etc" / "docker" / "daemon.json"),
        "propagation": PropagationConfig(cache_root=root / "data" / "cache"),
        "service": ServiceConfig(executable=root / "bin" / "service"),
    }
    defaults.update(overrides)
    return make_settings(**defaults)


def write_executable(path: Path, body: str = "exit 0") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(f"#!/bin/sh\n{body}\n")
    path.chmod(0o755)
    return path


@pytest.fixture
def sandbox(tmp_path: Path):
    """Settings rooted in tmp_path, with the overcommit target pre-created."""
    (tmp_path / "proc").mkdir()
    (tmp_path / "proc" / "overcommit_memory").write_text("0\n")
    return make_sandbox_settings(tmp_path)
