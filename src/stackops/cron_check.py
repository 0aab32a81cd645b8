#!/usr/bin/env python3
"""
Inspection of the installed refresh cron job.

Quick status answers "is it installed, when does it run, when did it last
run". Detailed status also validates the job line: cron format, the
interpreter it calls, the working directory and the PATH line.
"""

from __future__ import annotations

import os
import shlex
import shutil
import subprocess
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from croniter import croniter

from . import logging_utils as out
from .config import Settings
from .config_constants import REFRESH_LOG_GLOB
from .cron import is_refresh_line, read_crontab
from .platform_profile import PlatformProfile


@dataclass(frozen=True)
class CronJobLine:
    raw: str
    schedule: str
    command: str
    working_dir: Optional[str]
    executable: Optional[str]

    @classmethod
    def parse(cls, line: str) -> "CronJobLine":
        fields = line.split()
        schedule = " ".join(fields[:5])
        command = " ".join(fields[5:])

        working_dir = None
        if "cd " in command and " &&" in command:
            working_dir = command.split("cd ", 1)[1].split(" &&", 1)[0].strip()
            working_dir = _unquote(working_dir)

        executable = None
        tail = command.split("&& ", 1)[1] if "&& " in command else command
        try:
            tokens = shlex.split(tail)
        except ValueError:
            tokens = tail.split()
        if tokens:
            executable = tokens[0]

        return cls(raw=line, schedule=schedule, command=command,
                   working_dir=working_dir, executable=executable)

    @property
    def field_count(self) -> int:
        return len(self.raw.split())


def _unquote(value: str) -> str:
    try:
        parts = shlex.split(value)
    except ValueError:
        return value
    return parts[0] if len(parts) == 1 else value


def find_job_line(crontab: str) -> Optional[str]:
    """First non-comment line that runs the refresh command."""
    for line in crontab.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        if is_refresh_line(stripped):
            return stripped
    return None


def job_installed(crontab: str, job_id: str) -> bool:
    return job_id in crontab or find_job_line(crontab) is not None


# --- Validation checks ---

def check_format(job: CronJobLine) -> bool:
    if job.field_count < 6:
        return False
    return croniter.is_valid(job.schedule)


def check_executable_exists(job: CronJobLine) -> bool:
    if not job.executable:
        return False
    if os.path.isabs(job.executable):
        return Path(job.executable).is_file()
    return shutil.which(job.executable) is not None


def check_executable_runnable(job: CronJobLine) -> bool:
    if not check_executable_exists(job):
        return False
    path = job.executable if os.path.isabs(job.executable) else shutil.which(job.executable)
    return os.access(path, os.X_OK)


def check_working_directory(job: CronJobLine, compose_name: str) -> bool:
    if not job.working_dir:
        return False
    work_dir = Path(job.working_dir)
    return work_dir.is_dir() and (work_dir / compose_name).is_file()


def check_cron_path(crontab: str, cron_path: str) -> bool:
    return f"PATH={cron_path}" in crontab


def last_execution(log_dir: Path, now: Optional[datetime] = None) -> str:
    """Human readable age of the newest refresh log."""
    log_dir = Path(log_dir)
    if not log_dir.is_dir():
        return "No log directory found"

    logs = [p for p in log_dir.glob(REFRESH_LOG_GLOB) if p.is_file()]
    if not logs:
        return "No logs found"

    last_run = max(p.stat().st_mtime for p in logs)
    current = (now or datetime.now()).timestamp()
    diff = int(current - last_run)

    if diff < 3600:
        return "Less than 1 hour ago"
    if diff < 86400:
        return f"{diff // 3600} hours ago"
    return f"{diff // 86400} days ago"


def cron_service_status(profile: PlatformProfile) -> str:
    if profile.is_linux:
        if not shutil.which("systemctl"):
            return "Unknown (systemctl not available)"
        try:
            result = subprocess.run(
                ["systemctl", "is-active", "--quiet", "cron"],
                capture_output=True, text=True, timeout=10,
            )
        except subprocess.TimeoutExpired:
            return "Unknown (systemctl timed out)"
        return "Running" if result.returncode == 0 else "Not running"

    if profile.is_macos:
        try:
            result = subprocess.run(["launchctl", "list"], capture_output=True, text=True, timeout=10)
        except FileNotFoundError:
            return "Running (default)"
        if "com.vixie.cron" in result.stdout:
            return "Running (launchd)"
        return "Running (default)"

    return "Unknown OS"


def next_run(schedule: str, now: Optional[datetime] = None) -> Optional[datetime]:
    if not croniter.is_valid(schedule):
        return None
    return croniter(schedule, now or datetime.now()).get_next(datetime)


# --- Reports ---

def quick_status(settings: Settings, crontab: Optional[str] = None) -> int:
    """Print quick status. Returns 0 when installed, 1 otherwise."""
    crontab = read_crontab() if crontab is None else crontab

    if not job_installed(crontab, settings.cron_job_id):
        out.error("Cron job is NOT installed")
        return 1

    out.success("Cron job is installed")
    line = find_job_line(crontab)
    if line:
        job = CronJobLine.parse(line)
        print(f"   Schedule: {job.schedule}")
        upcoming = next_run(job.schedule)
        if upcoming:
            print(f"   Next run: {upcoming:%Y-%m-%d %H:%M}")
    print(f"   Last run: {last_execution(settings.log_dir)}")
    return 0


def detailed_status(settings: Settings, profile: PlatformProfile, crontab: Optional[str] = None) -> int:
    """Print detailed analysis. Returns 0 when every hard check passes."""
    crontab = read_crontab() if crontab is None else crontab

    out.header("Detailed Cron Job Analysis")
    print("")

    line = find_job_line(crontab)
    if not line:
        out.error("No cron job details found")
        return 1

    job = CronJobLine.parse(line)
    print("Cron Job Details:")
    print(f"   Schedule: {job.schedule}")
    print(f"   Command: {job.command}")
    print("")

    print("Validation Checks:")
    results: List[bool] = []
    checks = (
        (check_format(job), "Cron format is valid", "Cron format is invalid"),
        (check_executable_exists(job), "Interpreter path exists", "Interpreter path does not exist"),
        (check_executable_runnable(job), "Interpreter is executable", "Interpreter is not executable"),
        (check_working_directory(job, settings.compose_file.name),
         "Working directory is valid", "Working directory is invalid"),
    )
    for ok, good, bad in checks:
        results.append(ok)
        if ok:
            out.success(good)
        else:
            out.error(bad)

    if check_cron_path(crontab, profile.cron_path):
        out.success("PATH is set correctly")
    else:
        out.warn("PATH may not be set correctly")

    print("")
    print("Additional Information:")
    upcoming = next_run(job.schedule)
    if upcoming:
        print(f"   Next run: {upcoming:%Y-%m-%d %H:%M}")
    print(f"   Last execution: {last_execution(settings.log_dir)}")
    print(f"   Cron service: {cron_service_status(profile)}")
    print(f"   OS: {profile.name}")

    return 0 if all(results) else 1
