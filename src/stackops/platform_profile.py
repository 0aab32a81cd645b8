#!/usr/bin/env python3
"""
Platform profile: the per-OS values the refresh and cron tooling depend on.

Cron runs jobs with a minimal PATH and, on Linux, without a TTY, so both
the PATH written into the crontab and the variables exported before
running docker compose differ between macOS and Linux.
"""

from __future__ import annotations

import getpass
import os
import sys
from dataclasses import dataclass, field
from typing import Dict, MutableMapping, Optional

MACOS = "macOS"
LINUX = "Linux"
UNKNOWN = "Unknown"

MACOS_CRON_PATH = "/usr/local/bin:/usr/bin:/bin:/usr/sbin:/sbin"
LINUX_CRON_PATH = "/usr/local/sbin:/usr/local/bin:/usr/sbin:/usr/bin:/sbin:/bin"
LINUX_DOCKER_SOCKET = "/var/run/docker.sock"

# Keep compose non-interactive and on the classic builder when run from cron
LINUX_ENV_VARS = {
    "COMPOSE_INTERACTIVE_NO_CLI": "1",
    "DOCKER_BUILDKIT": "0",
    "COMPOSE_DOCKER_CLI_BUILD": "0",
}


@dataclass(frozen=True)
class PlatformProfile:
    name: str
    docker_socket: str
    cron_path: str
    env_vars: Dict[str, str] = field(default_factory=dict)

    @property
    def is_linux(self) -> bool:
        return self.name == LINUX

    @property
    def is_macos(self) -> bool:
        return self.name == MACOS

    @property
    def docker_access_hint(self) -> str:
        if self.is_linux:
            return "Run: sudo usermod -aG docker $USER && newgrp docker"
        return "Ensure Docker Desktop is running and accessible"


def detect_platform(system: Optional[str] = None, user: Optional[str] = None) -> PlatformProfile:
    """
    Build the profile for the running OS.

    Args:
        system: ``sys.platform`` style identifier (default: current platform)
        user: login name used for the Docker Desktop socket path on macOS

    Returns:
        PlatformProfile for macOS, Linux or Unknown (Unknown uses Linux values)
    """
    system = system or sys.platform

    if system.startswith("darwin"):
        user = user or getpass.getuser()
        return PlatformProfile(
            name=MACOS,
            docker_socket=f"/Users/{user}/.docker/run/docker.sock",
            cron_path=MACOS_CRON_PATH,
        )

    name = LINUX if system.startswith("linux") else UNKNOWN
    return PlatformProfile(
        name=name,
        docker_socket=LINUX_DOCKER_SOCKET,
        cron_path=LINUX_CRON_PATH,
        env_vars=dict(LINUX_ENV_VARS),
    )


def apply_environment(profile: PlatformProfile, environ: Optional[MutableMapping[str, str]] = None) -> Dict[str, str]:
    """
    Prepend the cron PATH and export the profile's extra variables.

    Returns the extra variables that were set (PATH excluded).
    """
    if environ is None:
        environ = os.environ

    current_path = environ.get("PATH", "")
    environ["PATH"] = f"{profile.cron_path}:{current_path}" if current_path else profile.cron_path

    for key, value in profile.env_vars.items():
        environ[key] = value

    return dict(profile.env_vars)
