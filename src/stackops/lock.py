#!/usr/bin/env python3
"""
PID-file guard that keeps a single refresh running per host.

The lock file holds the owner's PID. A lock whose PID no longer exists is
stale and gets removed; a lock whose PID is alive means another refresh
is in progress.
"""

from __future__ import annotations

import errno
import logging
import os
from pathlib import Path
from typing import Optional

from .errors import LockHeldError

logger = logging.getLogger("stackops.lock")


def _read_raw(path: Path) -> Optional[str]:
    try:
        return Path(path).read_text(encoding="utf-8")
    except FileNotFoundError:
        return None


def _parse_pid(raw: Optional[str]) -> Optional[int]:
    try:
        pid = int((raw or "").strip())
    except ValueError:
        return None
    return pid if pid > 0 else None


def read_pid(path: Path) -> Optional[int]:
    """Return the PID stored in ``path``, or None if missing or unparsable."""
    return _parse_pid(_read_raw(path))


def pid_alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        # Process exists but belongs to another user
        return True
    except OSError as e:
        return e.errno == errno.EPERM
    return True


class PidLock:
    def __init__(self, path: Path, pid: Optional[int] = None):
        self.path = Path(path)
        self.pid = pid or os.getpid()
        self.acquired = False

    def held_by(self) -> Optional[int]:
        """PID of a live owner, or None when the lock is free or stale."""
        pid = read_pid(self.path)
        if pid is not None and pid_alive(pid):
            return pid
        return None

    def acquire(self) -> None:
        """
        Take the lock or raise LockHeldError.

        A stale lock (dead PID, empty or garbage content) is removed with a
        warning before the new PID is written with exclusive create.
        """
        stale = _read_raw(self.path)
        if stale is not None:
            owner = _parse_pid(stale)
            if owner is not None and pid_alive(owner):
                raise LockHeldError(owner, str(self.path))
            logger.warning(f"Stale lock file found, removing it: {self.path}")
            self._remove_stale(stale)

        self.path.parent.mkdir(parents=True, exist_ok=True)
        try:
            fd = os.open(self.path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o644)
        except FileExistsError:
            # Another process created it between our check and create
            raise LockHeldError(read_pid(self.path), str(self.path))

        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(f"{self.pid}\n")

        self.acquired = True
        logger.debug(f"Lock acquired: {self.path} (PID {self.pid})")

    def _remove_stale(self, stale: Optional[str]) -> None:
        # Another process may have replaced the stale lock with its own since we read it
        current = _read_raw(self.path)
        if current is not None and current != stale:
            raise LockHeldError(read_pid(self.path), str(self.path))
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass

    def release(self) -> None:
        """Remove the lock file if it still records our PID."""
        if not self.acquired:
            return
        self.acquired = False

        if read_pid(self.path) != self.pid:
            logger.warning(f"Lock file {self.path} no longer owned by PID {self.pid}, leaving it")
            return

        try:
            self.path.unlink()
        except FileNotFoundError:
            pass
        logger.debug(f"Lock released: {self.path}")

    def __enter__(self) -> "PidLock":
        self.acquire()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()
