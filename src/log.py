"""Logging utilities for the cookstyle runner."""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Optional

_LOGGER_NAME = "cookstyle_runner"


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return a module-scoped logger under the cookstyle_runner hierarchy."""
    full_name = f"{_LOGGER_NAME}.{name}" if name else _LOGGER_NAME
    return logging.getLogger(full_name)


def configure_logging(*, verbose: bool = False, log_file: Optional[Path] = None) -> logging.Logger:
    """Configure console output (and an optional file sink) for a run."""
    level = logging.DEBUG if verbose else logging.INFO
    logger = logging.getLogger(_LOGGER_NAME)
    logger.setLevel(level)
    logger.propagate = False

    # Reset handlers so repeated main() calls do not duplicate output.
    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    stream_handler = logging.StreamHandler()
    stream_handler.setLevel(level)
    console_format = logging.Formatter(
        "%(asctime)s [%(levelname)s] (%(threadName)s) %(message)s", "%Y-%m-%dT%H:%M:%SZ"
    )
    console_format.converter = time.gmtime
    stream_handler.setFormatter(console_format)
    logger.addHandler(stream_handler)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(threadName)s %(name)s: %(message)s")
        )
        logger.addHandler(file_handler)

    return logger


__all__ = ["configure_logging", "get_logger"]
