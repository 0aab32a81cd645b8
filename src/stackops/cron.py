#!/usr/bin/env python3
"""
Crontab management for the refresh job.

The job is installed as a managed block appended to the user's crontab:

    <blank line>
    # Docker Compose Refresh - Auto-managed by stackops
    # docker-compose-refresh: Daily refresh at 2:00 AM
    PATH=/usr/local/sbin:/usr/local/bin:...
    0 2 * * * cd /srv/homelab && /usr/bin/python3 -m stackops refresh

Installing is remove-then-add, so running it repeatedly leaves exactly one
managed block. Lines are matched by the job id, the managed comment, or
the refresh command marker.
"""

from __future__ import annotations

import shlex
import subprocess
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from croniter import croniter

from .config_constants import (
    CRON_COMMENT,
    CRON_COMMENT_PREFIX,
    CRON_JOB_ID,
    LEGACY_REFRESH_MARKER,
    REFRESH_COMMAND_MARKER,
)
from .errors import CrontabError, ScheduleError

WEEKDAYS = ("Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday")

CRONTAB_TIMEOUT = 30


@dataclass(frozen=True)
class Schedule:
    expression: str
    description: str


# --- Crontab I/O ---

def read_crontab() -> str:
    """Return the current user's crontab; an absent crontab reads as empty."""
    try:
        result = subprocess.run(
            ["crontab", "-l"],
            capture_output=True,
            text=True,
            timeout=CRONTAB_TIMEOUT,
        )
    except FileNotFoundError as e:
        raise CrontabError("crontab command not found; install cron first") from e
    except subprocess.TimeoutExpired as e:
        raise CrontabError("crontab -l timed out") from e

    if result.returncode != 0:
        return ""
    return result.stdout


def write_crontab(content: str) -> None:
    """Install ``content`` as the user's crontab (via stdin)."""
    if content and not content.endswith("\n"):
        content += "\n"

    try:
        result = subprocess.run(
            ["crontab", "-"],
            input=content,
            capture_output=True,
            text=True,
            timeout=CRONTAB_TIMEOUT,
        )
    except FileNotFoundError as e:
        raise CrontabError("crontab command not found; install cron first") from e
    except subprocess.TimeoutExpired as e:
        raise CrontabError("crontab install timed out") from e

    if result.returncode != 0:
        details = result.stderr.strip() or result.stdout.strip() or "unknown error"
        raise CrontabError(f"Failed to install crontab: {details}")


# --- Schedules ---

def validate_expression(expression: str) -> str:
    expression = " ".join(str(expression or "").split())
    if len(expression.split()) != 5:
        raise ScheduleError(
            f"Invalid cron schedule '{expression}': expected 5 fields (minute hour day month weekday)"
        )
    if not croniter.is_valid(expression):
        raise ScheduleError(f"Invalid cron schedule: '{expression}'")
    return expression


def _parse_int(value, label: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ScheduleError(f"Invalid {label}: {value!r}")


def daily(hour=2) -> Schedule:
    hour = _parse_int(hour, "hour")
    if not 0 <= hour <= 23:
        raise ScheduleError("Invalid hour. Use 0-23")
    return Schedule(f"0 {hour} * * *", f"Daily refresh at {hour}:00")


def weekly(day=0, hour: int = 3) -> Schedule:
    day = _parse_int(day, "day")
    if not 0 <= day <= 6:
        raise ScheduleError("Invalid day. Use 0-6 (0=Sunday)")
    return Schedule(f"0 {hour} * * {day}", f"Weekly refresh on {WEEKDAYS[day]} at {hour}:00")


def monthly(day=1, hour: int = 4) -> Schedule:
    day = _parse_int(day, "day")
    if not 1 <= day <= 31:
        raise ScheduleError("Invalid day. Use 1-31")
    return Schedule(f"0 {hour} {day} * *", f"Monthly refresh on day {day} at {hour}:00")


def custom(expression: str) -> Schedule:
    if not expression:
        raise ScheduleError("Custom schedule required, e.g. '0 */6 * * *'")
    expression = validate_expression(expression)
    return Schedule(expression, f"Custom schedule: {expression}")


# --- Managed block ---

def refresh_command(project_dir: Path, python: Optional[str] = None) -> str:
    python = python or sys.executable
    return f"cd {shlex.quote(str(project_dir))} && {shlex.quote(python)} {REFRESH_COMMAND_MARKER}"


def is_refresh_line(line: str) -> bool:
    return REFRESH_COMMAND_MARKER in line or LEGACY_REFRESH_MARKER in line


def strip_managed_job(crontab: str, job_id: str = CRON_JOB_ID, comment: str = CRON_COMMENT) -> str:
    """
    Remove the managed refresh job from crontab text.

    Drops every line mentioning the job id, the managed comment or the
    refresh command, plus a PATH= line sitting between the block's comment
    lines and its job line. The blank separator line preceding a removed
    block is dropped too.
    """
    kept: List[str] = []
    in_block = False

    for line in crontab.splitlines():
        stripped = line.strip()
        if is_refresh_line(line):
            # The job line closes the block
            in_block = False
            if kept and not kept[-1].strip():
                kept.pop()
            continue
        if job_id in line or stripped == comment.strip() or stripped.startswith(CRON_COMMENT_PREFIX):
            in_block = True
            if kept and not kept[-1].strip():
                kept.pop()
            continue
        if in_block and stripped.startswith("PATH="):
            continue
        in_block = False
        kept.append(line)

    while kept and not kept[-1].strip():
        kept.pop()

    return "\n".join(kept) + ("\n" if kept else "")


def build_managed_block(schedule: Schedule, cron_path: str, command: str,
                        job_id: str = CRON_JOB_ID, comment: str = CRON_COMMENT) -> List[str]:
    return [
        "",
        comment,
        f"# {job_id}: {schedule.description}",
        f"PATH={cron_path}",
        f"{schedule.expression} {command}",
    ]


def upsert_job(crontab: str, schedule: Schedule, cron_path: str, command: str,
               job_id: str = CRON_JOB_ID, comment: str = CRON_COMMENT) -> str:
    """Return crontab text with exactly one managed job using ``schedule``."""
    base = strip_managed_job(crontab, job_id, comment).rstrip("\n")
    block = build_managed_block(schedule, cron_path, command, job_id, comment)
    lines = ([base] if base else []) + block
    text = "\n".join(lines).lstrip("\n")
    return text + "\n"


def install_job(schedule: Schedule, cron_path: str, command: str,
                job_id: str = CRON_JOB_ID, comment: str = CRON_COMMENT) -> str:
    new_crontab = upsert_job(read_crontab(), schedule, cron_path, command, job_id, comment)
    write_crontab(new_crontab)
    return new_crontab


def remove_job(job_id: str = CRON_JOB_ID, comment: str = CRON_COMMENT) -> bool:
    """Remove the managed job. Returns True when something was removed."""
    current = read_crontab()
    cleaned = strip_managed_job(current, job_id, comment)
    if cleaned.strip() == current.strip():
        return False
    write_crontab(cleaned)
    return True


def managed_lines(crontab: str) -> List[str]:
    """Lines that look related to the refresh job (for status listings)."""
    return [
        line for line in crontab.splitlines()
        if "docker-compose" in line or "refresh" in line
    ]
