"""Exception hierarchy for stackops."""

from __future__ import annotations

from typing import Optional


class StackOpsError(Exception):
    """Base class for all errors reported to the operator."""

    hint: Optional[str] = None


class ConfigError(StackOpsError):
    """Settings file could not be read or has invalid values."""


class PrerequisiteError(StackOpsError):
    """A required tool, file or permission is missing."""

    def __init__(self, message: str, hint: Optional[str] = None):
        super().__init__(message)
        self.hint = hint


class LockHeldError(StackOpsError):
    """Another refresh process owns the lock file."""

    def __init__(self, pid: Optional[int], path: str):
        if pid is None:
            message = f"Another refresh process is already running (lock: {path})"
        else:
            message = f"Another refresh process is already running (PID: {pid})"
        super().__init__(message)
        self.pid = pid
        self.path = path


class ComposeCommandError(StackOpsError):
    """A docker compose invocation exited non-zero."""

    def __init__(self, command: list[str], returncode: int, output: str = ''):
        super().__init__(
            f"Command failed with exit code {returncode}: {' '.join(command)}"
        )
        self.command = command
        self.returncode = returncode
        self.output = output


class CrontabError(StackOpsError):
    """The crontab could not be read or installed."""


class ScheduleError(StackOpsError):
    """A schedule argument is out of range or not a valid cron expression."""


class CredentialsError(StackOpsError):
    """Generated credentials or the env file failed validation."""
