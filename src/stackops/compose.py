#!/usr/bin/env python3
"""
Thin wrapper around the ``docker compose`` CLI.

All commands run from the project directory against an explicit compose
file. Command output is logged at DEBUG on the ``stackops.compose``
logger, so it ends up in the refresh log file but not on the console.
"""

from __future__ import annotations

import json
import logging
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from .errors import ComposeCommandError

logger = logging.getLogger("stackops.compose")

COMMAND_TIMEOUT = 900

HEALTHY = "healthy"
UNHEALTHY = "unhealthy"
STARTING = "starting"
RUNNING = "running"
FAILED_STATES = {"exited", "dead"}


class Compose:
    def __init__(self, project_dir: Path, compose_file: Path, env: Optional[Dict[str, str]] = None,
                 timeout: int = COMMAND_TIMEOUT):
        self.project_dir = Path(project_dir)
        self.compose_file = Path(compose_file)
        self.env = env
        self.timeout = timeout

    def command(self, *args: str) -> List[str]:
        return ["docker", "compose", "-f", str(self.compose_file), *args]

    def run(self, *args: str, check: bool = True) -> subprocess.CompletedProcess:
        """
        Run ``docker compose <args>`` and log its combined output.

        Raises:
            ComposeCommandError: If the command is missing, times out, or
                exits non-zero while ``check`` is set
        """
        cmd = self.command(*args)
        logger.debug(f"Running: {' '.join(cmd)}")

        try:
            result = subprocess.run(
                cmd,
                cwd=self.project_dir,
                capture_output=True,
                text=True,
                env=self.env,
                timeout=self.timeout,
            )
        except FileNotFoundError as e:
            raise ComposeCommandError(cmd, 127, str(e)) from e
        except subprocess.TimeoutExpired as e:
            raise ComposeCommandError(cmd, -1, f"timed out after {self.timeout}s") from e

        for stream in (result.stdout, result.stderr):
            for line in (stream or "").splitlines():
                if line.strip():
                    logger.debug(f"  [COMPOSE] {line.rstrip()}")

        if check and result.returncode != 0:
            output = "\n".join(part for part in (result.stdout, result.stderr) if part)
            raise ComposeCommandError(cmd, result.returncode, output.strip())

        return result

    def running_container_ids(self) -> List[str]:
        result = self.run("ps", "-q")
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]

    def down(self, timeout: int = 30) -> None:
        self.run("down", "--timeout", str(timeout))

    def pull(self) -> None:
        self.run("pull")

    def up_detached(self) -> None:
        self.run("up", "-d")

    def ps_table(self) -> str:
        return self.run("ps", check=False).stdout

    def ps_entries(self) -> List[dict]:
        return parse_ps_output(self.run("ps", "--format", "json").stdout)


def parse_ps_output(text: str) -> List[dict]:
    """
    Parse ``docker compose ps --format json`` output.

    Compose >= 2.21 prints one JSON object per line; older releases print
    a single JSON array. Both are accepted; unparsable lines are skipped
    with a warning.
    """
    text = (text or "").strip()
    if not text:
        return []

    if text.startswith("["):
        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            logger.warning(f"Failed to parse container status: {text[:100]}")
            return []
        return [entry for entry in data if isinstance(entry, dict)]

    entries = []
    for line in text.splitlines():
        line = line.strip()
        if not line:
            continue
        try:
            entry = json.loads(line)
        except json.JSONDecodeError:
            logger.warning(f"Failed to parse container status: {line[:100]}")
            continue
        if isinstance(entry, dict):
            entries.append(entry)
    return entries


@dataclass(frozen=True)
class ServiceState:
    name: str
    state: str
    health: str

    @property
    def status(self) -> str:
        return self.health or self.state

    @property
    def converged(self) -> bool:
        if self.health:
            return self.health == HEALTHY
        # No healthcheck defined: running is as good as it gets
        return self.state == RUNNING

    @property
    def failed(self) -> bool:
        return self.health == UNHEALTHY or self.state in FAILED_STATES


def service_state(entry: dict) -> ServiceState:
    name = entry.get("Service") or entry.get("Name") or "unknown"
    state = str(entry.get("State") or "unknown").lower()
    health = str(entry.get("Health") or "").lower()
    return ServiceState(name=name, state=state, health=health)


@dataclass
class HealthSummary:
    converged: List[ServiceState] = field(default_factory=list)
    pending: List[ServiceState] = field(default_factory=list)
    failed: List[ServiceState] = field(default_factory=list)

    @property
    def all_converged(self) -> bool:
        return not self.pending and not self.failed


def summarize(entries: List[dict]) -> HealthSummary:
    summary = HealthSummary()
    for entry in entries:
        svc = service_state(entry)
        if svc.converged:
            summary.converged.append(svc)
        elif svc.failed:
            summary.failed.append(svc)
        else:
            summary.pending.append(svc)
    return summary
