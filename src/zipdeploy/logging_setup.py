"""Logging configuration for the zipdeploy entry point.

Modules log through ``logging.getLogger("zipdeploy.<module>")``; this wires
those loggers to a rich console handler and, optionally, a log file.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

_console_handler: Optional[RichHandler] = None


def setup_logging(
    verbose: bool = False,
    log_file: Optional[str | Path] = None,
    console: Optional[Console] = None,
) -> logging.Logger:
    """Configure the ``zipdeploy`` logger. Safe to call more than once."""
    global _console_handler

    logger = logging.getLogger("zipdeploy")
    logger.setLevel(logging.DEBUG)
    logger.propagate = False

    level = logging.DEBUG if verbose else logging.INFO
    if _console_handler is None or _console_handler not in logger.handlers:
        _console_handler = RichHandler(
            console=console or Console(stderr=True),
            show_path=False,
            markup=False,
        )
        logger.addHandler(_console_handler)
    _console_handler.setLevel(level)

    if log_file is not None:
        log_path = str(Path(log_file).resolve())
        if not any(
            isinstance(h, logging.FileHandler) and getattr(h, "baseFilename", None) == log_path
            for h in logger.handlers
        ):
            Path(log_path).parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_path)
            file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
            file_handler.setLevel(logging.DEBUG)
            logger.addHandler(file_handler)

    return logger
