"""Structured logging singleton.

burrow logs before its settings exist (environment preparation can fail
first), so the initial level comes from LOG_LEVEL in os.environ. Once
settings load, ``__main__`` applies ``[logging] level`` through
:func:`set_log_level` unless LOG_LEVEL was given explicitly.

Everything goes to stderr so the supervised service owns stdout. Off a
TTY the orchestrator collects the lines, so they are rendered as JSON.
Each event carries the pid: in replacement mode the ``burrow setup``
helper logs alongside the service under a different pid.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Any

import structlog

LOG_LEVEL_ENV = "LOG_LEVEL"


def _add_pid(_logger: Any, _method: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    event_dict.setdefault("pid", os.getpid())
    return event_dict


def _renderers(tty: bool) -> list[Any]:
    if tty:
        return [structlog.dev.ConsoleRenderer(colors=True)]
    return [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]


def _resolve_level(name: str) -> int:
    return getattr(logging, name.upper(), logging.INFO)


def set_log_level(name: str) -> None:
    """Apply a level name (``"DEBUG"``, ``"info"``...) to the root logger."""
    logging.getLogger().setLevel(_resolve_level(name))


def _setup_logging() -> structlog.stdlib.BoundLogger:
    level = _resolve_level(os.environ.get(LOG_LEVEL_ENV, "INFO"))

    # Root logger first so structlog's filter_by_level sees later set_log_level calls
    logging.basicConfig(level=level, format="%(message)s", stream=sys.stderr)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            _add_pid,
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            *_renderers(sys.stderr.isatty()),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    return structlog.get_logger("burrow")


logger = _setup_logging()


def _uncaught_exception_handler(
    exc_type: type[BaseException],
    exc_value: BaseException,
    exc_tb: object,
) -> None:
    if issubclass(exc_type, KeyboardInterrupt):
        sys.__excepthook__(exc_type, exc_value, exc_tb)  # type: ignore[arg-type]
        return
    logger.critical("Uncaught exception", exc_info=(exc_type, exc_value, exc_tb))
    sys.exit(1)


sys.excepthook = _uncaught_exception_handler
