"""Logging for wralph: rich console output plus a debug log under ~/.wralph/logs."""

import logging
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

ROOT_LOGGER_NAME = "wralph"
LOG_FILE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _configure_root_logger() -> logging.Logger:
    """Install the console and file handlers on the wralph root logger once."""
    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    if root_logger.handlers:
        return root_logger

    root_logger.setLevel(logging.DEBUG)

    console_handler = RichHandler(
        console=Console(stderr=True),
        show_time=True,
        show_path=False,
        rich_tracebacks=True,
    )
    console_handler.setLevel(logging.INFO)
    root_logger.addHandler(console_handler)

    log_dir = Path.home() / ".wralph" / "logs"
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_dir / "wralph.log")
    except OSError as e:
        root_logger.debug(f"File logging disabled, cannot write to {log_dir}: {e}")
        return root_logger

    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(LOG_FILE_FORMAT))
    root_logger.addHandler(file_handler)
    return root_logger


def get_logger(name: str) -> logging.Logger:
    """Logger for a wralph module; records propagate to the root handlers."""
    _configure_root_logger()
    return logging.getLogger(name)


def enable_verbose_logging() -> None:
    """Show DEBUG records on the console as well."""
    root_logger = _configure_root_logger()
    for handler in root_logger.handlers:
        if not isinstance(handler, logging.FileHandler):
            handler.setLevel(logging.DEBUG)

    root_logger.debug("Verbose logging enabled")
