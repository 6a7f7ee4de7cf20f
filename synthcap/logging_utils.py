"""Logging setup shared by the library modules and the CLI."""

from __future__ import annotations

import logging
from pathlib import Path

ROOT_LOGGER_NAME = "synthcap"
LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def configure_logging(verbose: bool = False, log_file: str | Path | None = None) -> None:
    """Log to stderr, and additionally to ``log_file`` when one is given.

    Per-record detail is only emitted at DEBUG, so ``verbose`` on a busy feed
    produces one line per written record.
    """

    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file is not None:
        handlers.append(logging.FileHandler(log_file, encoding="utf-8", delay=True))

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
        handlers=handlers,
    )


def get_logger(name: str | None = None) -> logging.Logger:
    return logging.getLogger(name or ROOT_LOGGER_NAME)


__all__ = ["configure_logging", "get_logger"]
