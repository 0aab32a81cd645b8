#!/usr/bin/env python3
"""
Cron environment diagnostics.

Cron starts jobs with a stripped environment (minimal PATH, no login
shell), which is the usual reason a refresh works by hand but not from
cron. These checks show what the job will see and write a timestamped
report to <log_dir>/cron-test-YYYYmmdd-HHMMSS.log.
"""

from __future__ import annotations

import getpass
import os
import platform
import shutil
import subprocess
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable, List, Optional

from .config import Settings
from .config_constants import cron_test_log_name
from .cron import refresh_command
from .platform_profile import PlatformProfile
from .prereqs import (
    check_runtime_dependencies,
    command_succeeds,
    docker_daemon_active,
    user_in_docker_group,
)
from .refresh import disk_usage_percent, memory_usage_percent

OK = "ok"
WARN = "warn"
FAIL = "fail"
NOTE = "info"

MARKS = {OK: "✅", WARN: "⚠️ ", FAIL: "❌", NOTE: "ℹ️ "}


@dataclass
class CheckResult:
    name: str
    level: str
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.level in (OK, NOTE)

    def render(self) -> str:
        text = f"{MARKS[self.level]} {self.name}"
        return f"{text}: {self.detail}" if self.detail else text


def _capture(cmd: List[str], timeout: int = 15) -> Optional[str]:
    try:
        result = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout)
    except (FileNotFoundError, subprocess.TimeoutExpired):
        return None
    if result.returncode != 0:
        return None
    return result.stdout.strip()


def minimal_cron_env(profile: PlatformProfile) -> dict:
    """Environment roughly equal to what cron hands a job."""
    return {
        "PATH": profile.cron_path,
        "HOME": os.environ.get("HOME", str(Path.home())),
        "USER": getpass.getuser(),
    }


class CronEnvironmentCheck:
    def __init__(self, settings: Settings, profile: PlatformProfile,
                 now: Optional[Callable[[], datetime]] = None):
        self.settings = settings
        self.profile = profile
        self.now = now or datetime.now
        self.results: List[CheckResult] = []

    def add(self, name: str, level: str, detail: str = "") -> CheckResult:
        result = CheckResult(name, level, detail)
        self.results.append(result)
        return result

    def check_user_and_path(self) -> None:
        self.add("User", NOTE, getpass.getuser())
        self.add("PATH", NOTE, os.environ.get("PATH", ""))

    def check_docker(self) -> None:
        version = _capture(["docker", "--version"])
        if version:
            self.add("Docker command found", OK, version)
        else:
            self.add("Docker command NOT found", FAIL)

        compose_version = _capture(["docker", "compose", "version", "--short"])
        if compose_version:
            self.add("Docker Compose available", OK, compose_version)
        else:
            self.add("Docker Compose NOT available", FAIL)

    def check_dependencies(self) -> None:
        missing = check_runtime_dependencies()
        for _, name, hint in missing:
            self.add(f"{name} missing", WARN, hint)
        if not missing:
            self.add("Runtime dependencies installed", OK)

    def check_socket(self) -> None:
        socket_path = Path(self.profile.docker_socket)
        if socket_path.is_socket():
            mode = oct(socket_path.stat().st_mode & 0o777)
            self.add("Docker socket accessible", OK, f"{socket_path} ({mode})")
        else:
            self.add("Docker socket NOT accessible", FAIL, str(socket_path))

    def check_group(self) -> None:
        if not self.profile.is_linux:
            self.add("Docker group check skipped", NOTE, f"not needed on {self.profile.name}")
            return
        if user_in_docker_group():
            self.add("User is in 'docker' group", OK)
        else:
            self.add("User NOT in 'docker' group", WARN, self.profile.docker_access_hint)

    def check_docker_ps(self) -> bool:
        listing = _capture(["docker", "ps", "--format", "table {{.Names}}\t{{.Status}}"])
        if listing is None:
            self.add("Docker ps FAILED", FAIL, "This usually means permission issues")
            return False
        self.add("Docker ps works", OK)
        for row in listing.splitlines():
            self.add("Container", NOTE, row)
        return True

    def check_project(self) -> bool:
        self.add("Working directory", NOTE, str(Path.cwd()))
        compose_file = self.settings.compose_file
        if compose_file.is_file():
            self.add("docker-compose.yml found", OK, str(compose_file))
            return True
        self.add("docker-compose.yml NOT found", FAIL, str(compose_file))
        return False

    def check_system(self) -> None:
        self.add("System info", NOTE, " ".join(platform.uname()))

        if self.profile.is_linux:
            active = docker_daemon_active()
            if active:
                self.add("Docker daemon is running", OK)
            elif active is None:
                self.add("Docker daemon status unknown", WARN, "systemctl not available")
            else:
                self.add("Docker daemon is NOT running", FAIL, "Run: sudo systemctl start docker")
        else:
            self.add("Docker daemon check skipped", NOTE, f"Docker Desktop on {self.profile.name}")

        try:
            self.add("Disk usage", NOTE, f"{disk_usage_percent(self.settings.project_dir)}%")
        except OSError as e:
            self.add("Disk usage", NOTE, f"not available ({e.strerror or e})")
        memory = memory_usage_percent()
        if memory is None:
            self.add("Memory usage", NOTE, "not available on this system")
        else:
            self.add("Memory usage", NOTE, f"{memory}%")

    def check_minimal_environment(self) -> None:
        docker = shutil.which("docker", path=self.profile.cron_path)
        if docker and command_succeeds([docker, "ps"], env=minimal_cron_env(self.profile)):
            self.add("Docker works in minimal cron environment", OK)
        else:
            self.add("Docker does NOT work in minimal cron environment", FAIL,
                     "This may cause issues with the cron job")

    def run(self) -> bool:
        """Run every check. Returns True when the host is ready for cron."""
        self.results = []
        self.add(f"Testing cron environment on {self.profile.name}", NOTE)
        self.check_user_and_path()
        self.check_docker()
        self.check_dependencies()
        self.check_socket()
        self.check_group()
        docker_ok = self.check_docker_ps()
        project_ok = self.check_project()
        self.check_system()
        self.check_minimal_environment()
        return docker_ok and project_ok

    def summary_lines(self, ready: bool) -> List[str]:
        lines = ["", "=== SUMMARY ==="]
        if ready:
            command = refresh_command(self.settings.project_dir)
            lines += [
                "✅ READY FOR CRON: All tests passed!",
                "Recommended cron entry (install with: stackops cron daily):",
                f"   0 {self.settings.daily_hour} * * * {command}",
            ]
        else:
            lines += [
                "❌ NOT READY FOR CRON: fix the failures above",
                "Docker access and docker-compose.yml are both required",
            ]
        return lines

    def write_report(self, lines: List[str]) -> Path:
        stamp = self.now()
        log_path = Path(self.settings.log_dir) / cron_test_log_name(stamp.strftime("%Y%m%d-%H%M%S"))
        log_path.parent.mkdir(parents=True, exist_ok=True)
        prefix = stamp.strftime("[%Y-%m-%d %H:%M:%S]")
        with open(log_path, "w", encoding="utf-8") as f:
            for line in lines:
                f.write(f"{prefix} {line}\n" if line else "\n")
        return log_path


def run_environment_check(settings: Settings, profile: PlatformProfile) -> int:
    check = CronEnvironmentCheck(settings, profile)
    ready = check.run()

    lines = [result.render() for result in check.results] + check.summary_lines(ready)
    for line in lines:
        print(line)

    log_path = check.write_report(lines)
    print(f"Test completed. Check log: {log_path}")
    return 0 if ready else 1
