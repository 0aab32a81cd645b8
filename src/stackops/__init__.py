"""stackops package."""

from __future__ import annotations

import os

__version__ = os.getenv("STACKOPS_BUILD_VERSION", "0.1.0")

from .cli import main, parse_arguments  # noqa: E402
from .config import Settings, load_settings  # noqa: E402
from .lock import PidLock  # noqa: E402
from .refresh import RefreshRunner, run_refresh  # noqa: E402

__all__ = [
    "PidLock",
    "RefreshRunner",
    "Settings",
    "load_settings",
    "main",
    "parse_arguments",
    "run_refresh",
]
