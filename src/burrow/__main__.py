"""Entry point for `python -m burrow` / `burrow`.

Subcommands:
    burrow              Prepare, start dockerd, and supervise the service (default)
    burrow setup        Background flow only: readiness, buildx, login, propagation
    burrow propagate    Credential propagation loop only
"""

from __future__ import annotations

import argparse
import asyncio
import os
import sys


def _propagate() -> int:
    from burrow.config import get_settings
    from burrow.credentials import run_propagation_loop
    from burrow.environment import resolve_layout

    s = get_settings()
    layout = resolve_layout(s)
    asyncio.run(
        run_propagation_loop(
            layout.credentials_file, layout.cache_root, interval=s.propagation.interval
        )
    )
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="burrow",
        description="Container entrypoint: nested Docker daemon plus one supervised service",
    )
    parser.add_argument(
        "--mode",
        choices=["child", "replace"],
        help="Supervision mode (overrides [service] mode)",
    )
    sub = parser.add_subparsers(dest="command")
    sub.add_parser("setup", help="Wait for dockerd, configure buildx/registry, propagate creds")
    sub.add_parser("propagate", help="Only run the credential propagation loop")

    args = parser.parse_args()

    from burrow.bootstrap import run, run_setup
    from burrow.config import get_settings
    from burrow.errors import BootstrapError
    from burrow.logger import LOG_LEVEL_ENV, logger, set_log_level

    s = get_settings()
    if LOG_LEVEL_ENV not in os.environ:
        set_log_level(s.logging.level)
    if args.mode:
        s.service.mode = args.mode

    try:
        match args.command:
            case "setup":
                code = run_setup(s)
            case "propagate":
                code = _propagate()
            case _:
                code = run(s)
    except BootstrapError as exc:
        logger.error("Fatal bootstrap error", err=str(exc), exit_code=int(exc.exit_code))
        sys.exit(exc.exit_code)
    sys.exit(code)


if __name__ == "__main__":
    main()
