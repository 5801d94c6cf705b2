"""Logging configuration for phaseflow runners and tools.

Sessions are driven on worker threads, so every record carries its thread
name; concurrent sessions can be told apart in a shared log.
"""

from __future__ import annotations

import logging
from pathlib import Path

CONSOLE_FORMAT = "%(levelname)-8s | %(threadName)s | %(name)s | %(message)s"
FILE_FORMAT = "%(asctime)s | " + CONSOLE_FORMAT

QUIET_LOGGERS = ("asyncio", "markdown_it")


def setup_logging(
    log_file: str | Path | None = None,
    verbose: bool = False,
    logger_name: str = "phaseflow",
) -> logging.Logger:
    """
    Send phaseflow logs to the console and, optionally, a debug log file.

    Calling it again replaces the handlers installed by the previous call
    instead of stacking duplicates.

    Args:
        log_file: Debug log destination; parent directories are created
        verbose: DEBUG on the console instead of INFO
        logger_name: Root of the logger tree to configure

    Returns:
        The configured logger
    """
    logger = logging.getLogger(logger_name)
    logger.setLevel(logging.DEBUG)
    for handler in [h for h in logger.handlers if getattr(h, "_phaseflow", False)]:
        logger.removeHandler(handler)
        handler.close()

    console = logging.StreamHandler()
    console.setLevel(logging.DEBUG if verbose else logging.INFO)
    console.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    _install(logger, console)

    if log_file is not None:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path, mode="w")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(
            logging.Formatter(FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
        )
        _install(logger, file_handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    return logger


def _install(logger: logging.Logger, handler: logging.Handler) -> None:
    handler._phaseflow = True  # type: ignore[attr-defined]
    logger.addHandler(handler)
