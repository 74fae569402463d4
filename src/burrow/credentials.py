"""Credential propagation into per-job build cache directories.

Sub-builds run with a private HOME inside their own cache directory
(``<cache_root>/<build_id>/<sub_build_id>``) and cannot see the root-level
registry config. This loop copies it into each such directory once.

Seeding is copy-if-absent: a directory that already has its own
``.docker/config.json`` is never touched again, even if the canonical file
is later rotated.
"""

from __future__ import annotations

import asyncio
import shutil
from pathlib import Path

from burrow.logger import logger
from burrow.utils import Sleep

PRIVATE_CREDENTIALS = Path(".docker") / "config.json"


def _subdirs(path: Path) -> list[Path]:
    return [p for p in path.iterdir() if p.is_dir() and not p.is_symlink()]


def find_build_dirs(cache_root: Path) -> list[Path]:
    """Directories exactly two levels below *cache_root*, sorted."""
    found: list[Path] = []
    for build in _subdirs(cache_root):
        try:
            found.extend(_subdirs(build))
        except OSError as exc:
            # removed mid-scan or unreadable; the other builds still get seeded
            logger.debug("Skipping unreadable build dir", build=str(build), err=str(exc))
    return sorted(found)


def seed_build_dir(source: Path, build_dir: Path) -> bool:
    """Copy *source* into *build_dir* unless it already has credentials."""
    dest = build_dir / PRIVATE_CREDENTIALS
    if dest.exists():
        return False
    dest.parent.mkdir(exist_ok=True)
    shutil.copy2(source, dest)
    return True


def seed_build_dirs(source: Path, cache_root: Path) -> list[Path]:
    """One propagation pass. Returns the directories seeded in this pass."""
    if not source.is_file():
        return []  # registry login hasn't completed yet

    try:
        build_dirs = find_build_dirs(cache_root)
    except OSError as exc:
        logger.debug(
            "Cache scan failed, retrying next tick", cache_root=str(cache_root), err=str(exc)
        )
        return []

    seeded: list[Path] = []
    for build_dir in build_dirs:
        try:
            if seed_build_dir(source, build_dir):
                seeded.append(build_dir)
                logger.info("Copied Docker credentials into build cache", build_dir=str(build_dir))
        except FileNotFoundError:
            logger.debug("Build dir vanished before seeding", build_dir=str(build_dir))
        except OSError as exc:
            logger.warning("Failed to seed build dir", build_dir=str(build_dir), err=str(exc))
    return seeded


async def run_propagation_loop(
    source: Path,
    cache_root: Path,
    *,
    interval: float = 1.0,
    sleep: Sleep = asyncio.sleep,
    stop: asyncio.Event | None = None,
) -> None:
    """Seed new build dirs once per *interval* until *stop* is set.

    Runs for the life of the container in production; *stop* and *sleep*
    exist so the loop can be bounded and driven without real time.
    """
    logger.info(
        "Credential propagation started",
        source=str(source),
        cache_root=str(cache_root),
        interval=interval,
    )
    while stop is None or not stop.is_set():
        await asyncio.to_thread(seed_build_dirs, source, cache_root)
        await sleep(interval)
    logger.info("Credential propagation stopped")
