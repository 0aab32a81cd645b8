#!/usr/bin/env python3
"""
Prerequisite checks shared by refresh, cron setup and diagnostics.

Hard checks raise PrerequisiteError (with a remediation hint); soft
checks return a warning string or None.
"""

from __future__ import annotations

import grp
import os
import shutil
import stat
import subprocess
from pathlib import Path
from typing import List, Optional, Tuple

from .errors import PrerequisiteError
from .platform_profile import PlatformProfile

DOCKER_TIMEOUT = 30


def _run(cmd: List[str], timeout: int = DOCKER_TIMEOUT, env: Optional[dict] = None) -> subprocess.CompletedProcess:
    return subprocess.run(cmd, capture_output=True, text=True, timeout=timeout, env=env)


def command_succeeds(cmd: List[str], timeout: int = DOCKER_TIMEOUT, env: Optional[dict] = None) -> bool:
    """Return True when ``cmd`` exits 0; missing binaries and timeouts count as failure."""
    try:
        return _run(cmd, timeout=timeout, env=env).returncode == 0
    except (FileNotFoundError, subprocess.TimeoutExpired):
        return False


def check_compose_file(compose_file: Path) -> None:
    if not Path(compose_file).is_file():
        raise PrerequisiteError(
            f"docker-compose.yml not found at {compose_file}",
            hint="Run from your stack directory or pass --project-dir",
        )


def check_docker_binary() -> str:
    docker = shutil.which("docker")
    if not docker:
        raise PrerequisiteError("Docker command not found in PATH", hint="Please install Docker first")
    return docker


def check_compose_plugin() -> None:
    if not command_succeeds(["docker", "compose", "version"]):
        raise PrerequisiteError("Docker Compose not available", hint="Please install Docker Compose v2")


def check_docker_socket(profile: PlatformProfile) -> None:
    try:
        mode = os.stat(profile.docker_socket).st_mode
    except OSError:
        mode = None

    if mode is None or not stat.S_ISSOCK(mode):
        raise PrerequisiteError(
            f"Docker socket not found at {profile.docker_socket}",
            hint=profile.docker_access_hint,
        )


def check_docker_access(profile: PlatformProfile) -> None:
    if not command_succeeds(["docker", "ps"]):
        raise PrerequisiteError(
            "Cannot access Docker. User may need proper permissions",
            hint=profile.docker_access_hint,
        )


def user_in_docker_group() -> bool:
    try:
        docker_gid = grp.getgrnam("docker").gr_gid
    except KeyError:
        return False
    return docker_gid in os.getgroups() or os.getgid() == docker_gid


def docker_daemon_active() -> Optional[bool]:
    """Return daemon state from systemd, or None when systemctl is unavailable."""
    if not shutil.which("systemctl"):
        return None
    return command_succeeds(["systemctl", "is-active", "--quiet", "docker"])


def linux_warnings(profile: PlatformProfile) -> List[Tuple[str, str]]:
    """Soft checks that only matter on Linux. Returns (message, hint) pairs."""
    if not profile.is_linux:
        return []

    warnings = []
    if not user_in_docker_group():
        warnings.append((
            "User not in 'docker' group. This may cause permission issues.",
            profile.docker_access_hint,
        ))
    if docker_daemon_active() is False:
        warnings.append(("Docker daemon is not running", "Run: sudo systemctl start docker"))
    return warnings


def check_docker_prerequisites(profile: PlatformProfile, compose_file: Path, require_socket: bool = True) -> None:
    """
    Run the hard checks in order: compose file, docker binary, compose plugin,
    socket (optional), docker access.
    """
    check_compose_file(compose_file)
    check_docker_binary()
    check_compose_plugin()
    if require_socket:
        check_docker_socket(profile)
    check_docker_access(profile)


def check_runtime_dependencies() -> List[Tuple[str, str, str]]:
    """
    Validate that required runtime dependencies are installed.

    Returns a list of (command/module, name, install hint) for everything missing.
    """
    missing = []

    if not command_succeeds(["docker", "--version"], timeout=5):
        missing.append(('docker', 'Docker Engine', 'https://docs.docker.com/engine/install/'))

    if not command_succeeds(["docker", "compose", "version"], timeout=5):
        missing.append(('docker compose', 'Docker Compose v2', 'https://docs.docker.com/compose/install/'))

    if not shutil.which("crontab"):
        missing.append(('crontab', 'cron', 'Install cron (e.g. sudo apt-get install cron)'))

    try:
        import jinja2  # noqa: F401 - Import check only
    except ImportError:
        missing.append(('jinja2', 'Jinja2 template engine', 'pip install jinja2'))

    try:
        import tomli_w  # noqa: F401 - Import check only
    except ImportError:
        missing.append(('tomli_w', 'TOML writer library', 'pip install tomli_w'))

    try:
        import croniter  # noqa: F401 - Import check only
    except ImportError:
        missing.append(('croniter', 'Cron expression parser', 'pip install croniter'))

    return missing
