"""Loguru sinks for the pricer; every line carries the route being priced"""

import sys
from pathlib import Path
from typing import Optional

from loguru import logger

from .config import LOG_RETENTION, LOG_ROTATION

NO_ROUTE = "-"
CONSOLE_FORMAT = (
    "<green>{time:HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
    "<magenta>{extra[route]}</magenta> | <level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {extra[route]} | {name}:{function}:{line} | {message}"


def console_level(verbose: bool, quiet: bool) -> str:
    if verbose:
        return "DEBUG"
    return "WARNING" if quiet else "INFO"


def setup_logging(verbose: bool = False, log_file: Optional[Path] = None, quiet: bool = False) -> None:
    """
    Configure loguru sinks for CLI and batch runs.

    Console output goes to stderr so stdout stays clean for the JSON result.
    Concurrent queries are told apart by the ``route`` field, which the pricer
    binds with ``logger.contextualize``.

    Args:
        verbose: Debug-level console output (selector attempts, strategy
            hits, state transitions); wins over quiet
        log_file: Optional file path; the file sink always records DEBUG
        quiet: Only warnings and errors on the console
    """
    logger.remove()
    logger.configure(extra={"route": NO_ROUTE})

    logger.add(sys.stderr, format=CONSOLE_FORMAT, level=console_level(verbose, quiet), colorize=True)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_file,
            format=FILE_FORMAT,
            level="DEBUG",
            rotation=LOG_ROTATION,
            retention=LOG_RETENTION,
            compression="zip",
            enqueue=True,
        )
        logger.debug(f"Logging to file: {log_file}")
