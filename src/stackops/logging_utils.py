#!/usr/bin/env python3
"""
Logging setup and coloured console helpers.

Two output channels are used:

- the ``logging`` module for the refresh workflow, with an optional
  timestamped log file that also receives docker compose output (DEBUG);
- small print helpers (info/success/warn/error/header) for interactive
  commands such as ``cron`` and ``secrets``.
"""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path
from typing import Optional

# Color codes for output
BLUE = '\033[94m'
GREEN = '\033[92m'
YELLOW = '\033[93m'
RED = '\033[91m'
CYAN = '\033[96m'
RESET = '\033[0m'

CONSOLE_FORMAT = '[%(levelname)s] %(message)s'
FILE_FORMAT = '[%(asctime)s] %(levelname)s: %(message)s'
FILE_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

LEVEL_MAP = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "WARN": logging.WARNING,
    "ERROR": logging.ERROR,
}

logger = logging.getLogger("stackops")


def resolve_level(log_level: Optional[str]) -> int:
    return LEVEL_MAP.get(str(log_level or "INFO").upper(), logging.INFO)


def configure_logging(log_level: str = "INFO", log_file: Optional[Path] = None) -> None:
    """
    Configure the ``stackops`` logger hierarchy.

    The console shows records at ``log_level``. When ``log_file`` is given, a
    file handler is attached at DEBUG so command output captured at DEBUG
    reaches the file without cluttering the console.
    """
    level = resolve_level(log_level)

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    logger.setLevel(logging.DEBUG)
    logger.propagate = False

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(level)
    console.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    logger.addHandler(console)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, mode='a', encoding='utf-8')
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt=FILE_DATE_FORMAT))
        logger.addHandler(file_handler)

    logger.debug(f"Logging configured: {logging.getLevelName(level)}")


def use_color() -> bool:
    if os.environ.get("NO_COLOR"):
        return False
    return sys.stdout.isatty()


def _emit(color: str, tag: str, msg: str, **context) -> None:
    if use_color():
        print(f"{color}[{tag}]{RESET} {msg}", flush=True)
    else:
        print(f"[{tag}] {msg}", flush=True)

    for key, value in context.items():
        print(f"  {key}: {value}", flush=True)


def info(msg, **context):
    """Print info message with optional context lines."""
    _emit(BLUE, "INFO", msg, **context)


def success(msg, **context):
    _emit(GREEN, "SUCCESS", msg, **context)


def warn(msg, **context):
    _emit(YELLOW, "WARN", msg, **context)


def error(msg, **context):
    """Print error message. Does not exit; callers decide the exit status."""
    _emit(RED, "ERROR", msg, **context)


def header(msg):
    _emit(CYAN, "CHECK", msg)
