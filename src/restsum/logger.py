"""Logging setup shared by the CLI and library modules."""

import logging
import sys
from pathlib import Path
from typing import Optional

LOGGER_NAME = "restsum"

# Batches log from worker threads, so the file log records which one
FILE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(threadName)s - %(message)s"


def _console_level(verbose: bool, quiet: bool) -> int:
    if quiet:
        return logging.ERROR
    if verbose:
        return logging.DEBUG
    return logging.INFO


def setup_logging(
    verbose: bool = False,
    quiet: bool = False,
    log_file: Optional[Path] = None
) -> logging.Logger:
    """(Re)configure the ``restsum`` logger.

    The stderr handler follows ``verbose``/``quiet``; a ``log_file``, if
    given, receives everything down to DEBUG regardless of either flag.
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.handlers = []
    console_level = _console_level(verbose, quiet)
    logger.setLevel(logging.DEBUG if log_file else min(console_level, logging.INFO))

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(logging.Formatter(
        "%(levelname)s: %(message)s" if verbose else "%(message)s"
    ))
    logger.addHandler(console_handler)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
        logger.addHandler(file_handler)

    return logger


def get_logger() -> logging.Logger:
    return logging.getLogger(LOGGER_NAME)
