"""
Logging setup for the emulator and its CLI.

Console output goes through rich's RichHandler. An optional log file gets
everything at DEBUG with a plain formatter, one line per record.
"""

from __future__ import annotations
import logging
from pathlib import Path
from typing import Optional, Union

from rich.logging import RichHandler

PACKAGE_LOGGER = "x86_emulator"

FILE_FORMAT = "%(asctime)s | %(levelname)-7s | %(name)s | %(funcName)s:%(lineno)d | %(message)s"


def verbosity_to_level(verbose: int, quiet: bool = False) -> int:
    """Map -v counts to a console level: 0=WARNING, 1=INFO, 2+=DEBUG."""
    if quiet:
        return logging.ERROR
    if verbose >= 2:
        return logging.DEBUG
    if verbose == 1:
        return logging.INFO
    return logging.WARNING


def setup_logging(
    console_level: int = logging.WARNING,
    log_file: Optional[Union[str, Path]] = None,
    name: str = PACKAGE_LOGGER,
) -> logging.Logger:
    """Configure and return the package logger.

    Calling it again replaces the handlers instead of stacking new ones.
    """
    logger = logging.getLogger(name)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.DEBUG if log_file else console_level)

    ch = RichHandler(
        level=console_level,
        show_time=True,
        show_path=False,
        markup=False,
        rich_tracebacks=True,
    )
    logger.addHandler(ch)

    if log_file:
        fh = logging.FileHandler(str(log_file), encoding="utf-8")
        fh.setLevel(logging.DEBUG)
        fh.setFormatter(logging.Formatter(FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
        logger.addHandler(fh)
        logger.debug("Log file: %s", log_file)

    return logger
