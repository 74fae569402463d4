"""Environment preparation — runs synchronously before the daemon starts.

Relocates the home directory onto the persistent volume, tunes memory
overcommit, and writes the daemon's static config. Every step is
idempotent; any filesystem failure raises EnvironmentSetupError because
later steps assume these paths exist.
"""

from __future__ import annotations

import json
import shutil
from pathlib import Path

from burrow.config import Settings
from burrow.errors import EnvironmentSetupError
from burrow.logger import logger
from burrow.types import HostLayout


def resolve_layout(settings: Settings) -> HostLayout:
    """Compute the layout without touching the filesystem."""
    return HostLayout(
        home=settings.storage.home,
        daemon_data_dir=settings.storage.daemon_data_dir,
        daemon_config_path=settings.daemon.config_path,
        cache_root=settings.propagation.cache_root,
    )


def log_disk_usage(path: Path) -> None:
    """Informational only: a nearly full volume explains most daemon failures."""
    try:
        usage = shutil.disk_usage(path)
    except OSError as exc:
        logger.debug("Disk usage unavailable", path=str(path), err=str(exc))
        return
    gib = 1024**3
    logger.info(
        "Disk space",
        path=str(path),
        total_gib=round(usage.total / gib, 1),
        free_gib=round(usage.free / gib, 1),
    )


def set_overcommit_memory(path: Path, value: int) -> None:
    logger.info("Setting overcommit memory policy", value=value)
    path.write_text(f"{value}\n")


def relocate_home(home: Path, target: Path) -> None:
    """Replace *home* with a symlink to *target* (remove-then-link).

    Not safe while anything else references the old path, which is why
    this runs before any child process is spawned.
    """
    if home.is_symlink() and home.resolve() == target.resolve():
        logger.debug("Home already relocated", home=str(home), target=str(target))
        return
    if home.is_symlink() or home.is_file():
        home.unlink()
    elif home.exists():
        shutil.rmtree(home)
    home.symlink_to(target, target_is_directory=True)
    logger.info("Home relocated", home=str(home), target=str(target))


def write_daemon_config(path: Path, insecure_registries: list[str]) -> None:
    """Write daemon.json; an empty object when there is nothing to trust."""
    config: dict[str, list[str]] = {}
    if insecure_registries:
        config["insecure-registries"] = list(insecure_registries)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(config, indent=2) + "\n")
    logger.info(
        "Docker daemon configured", path=str(path), insecure_registries=insecure_registries
    )


def prepare_environment(settings: Settings) -> HostLayout:
    """Run every setup step in order and return the resulting layout."""
    storage = settings.storage
    layout = resolve_layout(settings)

    log_disk_usage(storage.data_root if storage.data_root.exists() else Path("/"))

    try:
        if storage.overcommit_memory is not None:
            set_overcommit_memory(storage.overcommit_path, storage.overcommit_memory)

        logger.info("Setting up volumes", data_root=str(storage.data_root))
        storage.daemon_data_dir.mkdir(parents=True, exist_ok=True)
        storage.home_target.mkdir(parents=True, exist_ok=True)
        relocate_home(storage.home, storage.home_target)

        write_daemon_config(layout.daemon_config_path, settings.daemon.insecure_registries)
    except OSError as exc:
        raise EnvironmentSetupError(f"Environment preparation failed: {exc}") from exc

    return layout
