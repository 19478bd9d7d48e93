"""Centralised logging setup for pkgsync."""

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

import structlog
from structlog.types import FilteringBoundLogger

from pkgsync.core.config import discover_env

_CONFIGURED = False
_HANDLERS: list[logging.Handler] = []


def sanitise_context(logger: Any, method_name: str, event_dict: dict) -> dict:
    """Drop None values and make sure ``error`` is always a string.

    Args:
        logger: The logger instance.
        method_name: The name of the method called on the logger.
        event_dict: The event dictionary to sanitise.

    Returns:
        The sanitised event dictionary.
    """
    sanitised = {k: v for k, v in event_dict.items() if v is not None}

    if "error" in sanitised and not isinstance(sanitised["error"], str):
        sanitised["error"] = str(sanitised["error"])

    return sanitised


def configure_logging(
    level: str | None = None,
    log_file: Path | None = None,
    enable_console: bool = False,
    force: bool = False,
) -> None:
    """Configure logging for pkgsync.

    Args:
        level: The logging level as a string (e.g., "DEBUG", "INFO").
            Defaults to ``PKGSYNC_LOG_LEVEL``.
        log_file: Optional path to a log file for file logging.
        enable_console: Whether to enable console logging.
        force: Replace an earlier configuration, e.g. the implicit one
            made by the first ``get_logger()`` call.
    """
    global _CONFIGURED
    if _CONFIGURED and not force:
        return

    for handler in _HANDLERS:
        logging.root.removeHandler(handler)
        handler.close()
    _HANDLERS.clear()

    env = discover_env()
    level = (level or env.log_level).upper()

    if log_file is None:
        env.log_dir.mkdir(parents=True, exist_ok=True)
        log_file = env.log_dir / "pkgsync.log"

    file_handler = RotatingFileHandler(log_file, maxBytes=2_000_000, backupCount=2)
    file_handler.setLevel(getattr(logging, level))
    _HANDLERS.append(file_handler)

    if enable_console:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(getattr(logging, level))
        console_handler.setFormatter(logging.Formatter("%(message)s"))
        _HANDLERS.append(console_handler)
        renderers = [structlog.processors.ExceptionRenderer(), structlog.dev.ConsoleRenderer(colors=True)]
    else:
        renderers = [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]

    structlog.configure(
        processors=[
            sanitise_context,
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            *renderers,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, level)),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    for handler in _HANDLERS:
        logging.root.addHandler(handler)
    logging.root.setLevel(getattr(logging, level))

    _CONFIGURED = True


def get_logger(name: str = "pkgsync") -> FilteringBoundLogger:
    """Get a structlog logger instance.

    Args:
        name: Optional name for the logger, typically the module name.

    Returns:
        A structlog FilteringBoundLogger instance.

    Usage:
        log = get_logger(__name__)
        log.info("install_complete", manager="pacman", count=3, duration_ms=123)

    Standard context keys:
        - manager (str): Backend tag, e.g. "homebrew" or "flatpak"
        - package (str): Name of the package
        - command (str): Command line that was executed
        - returncode (int): Exit code of an external command
        - duration_ms (int): Operation duration in milliseconds
        - error (str): Error message if applicable
    """
    if not _CONFIGURED:
        configure_logging()
    return structlog.get_logger(name)
