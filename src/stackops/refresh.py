#!/usr/bin/env python3
"""
Docker Compose refresh workflow.

Steps (fail-fast on 1-5, health verification only warns):
1. Acquire the single-instance lock
2. Prepare the environment and verify Docker prerequisites
3. Prune old refresh logs and report disk/memory usage
4. Gracefully stop running services
5. Pull latest images and start services in the background
6. Poll container health until every service converges (bounded)
"""

from __future__ import annotations

import logging
import platform
import shutil
import time
from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable, Optional

from .compose import Compose, summarize
from .config import Settings
from .config_constants import REFRESH_LOG_GLOB, refresh_log_name
from .errors import ComposeCommandError, LockHeldError, PrerequisiteError
from .lock import PidLock
from .logging_utils import configure_logging
from .platform_profile import PlatformProfile, apply_environment, detect_platform
from .prereqs import check_docker_prerequisites, linux_warnings

logger = logging.getLogger("stackops.refresh")

MEMINFO_PATH = Path("/proc/meminfo")


def refresh_log_path(log_dir: Path, now: Optional[datetime] = None) -> Path:
    now = now or datetime.now()
    return Path(log_dir) / refresh_log_name(now.strftime("%Y%m%d"))


def disk_usage_percent(path: Path) -> int:
    usage = shutil.disk_usage(path)
    if usage.total == 0:
        return 0
    return round(usage.used * 100 / usage.total)


def memory_usage_percent(meminfo_path: Path = MEMINFO_PATH) -> Optional[int]:
    """
    Used memory percentage from /proc/meminfo (MemTotal - MemAvailable).

    Returns None when the file is unavailable (non-Linux) or incomplete.
    """
    values = {}
    try:
        with open(meminfo_path) as f:
            for line in f:
                key, _, rest = line.partition(':')
                parts = rest.split()
                if parts:
                    values[key.strip()] = int(parts[0])
    except (OSError, ValueError):
        return None

    total = values.get('MemTotal')
    available = values.get('MemAvailable')
    if available is None and 'MemFree' in values:
        available = values['MemFree'] + values.get('Buffers', 0) + values.get('Cached', 0)
    if not total or available is None:
        return None
    return round((total - available) * 100 / total)


class RefreshRunner:
    def __init__(
        self,
        settings: Settings,
        profile: Optional[PlatformProfile] = None,
        compose: Optional[Compose] = None,
        sleep: Callable[[float], None] = time.sleep,
        now: Optional[Callable[[], datetime]] = None,
    ):
        self.settings = settings
        self.profile = profile or detect_platform()
        self.compose = compose or Compose(settings.project_dir, settings.compose_file)
        self.sleep = sleep
        self.now = now or datetime.now
        self.log_file = refresh_log_path(settings.log_dir, self.now())

    def setup_environment(self) -> None:
        logger.info(f"Setting up environment for {self.profile.name}...")

        exported = apply_environment(self.profile)
        if exported:
            joined = " ".join(f"{k}={v}" for k, v in exported.items())
            logger.info(f"Set environment variables: {joined}")

        check_docker_prerequisites(self.profile, self.settings.compose_file)

        for message, hint in linux_warnings(self.profile):
            logger.warning(message)
            logger.warning(hint)

    def cleanup_logs(self) -> int:
        """Delete refresh logs older than max_log_days. Returns the number removed."""
        cutoff = (self.now() - timedelta(days=self.settings.max_log_days)).timestamp()
        removed = 0
        log_dir = Path(self.settings.log_dir)
        if not log_dir.is_dir():
            return 0

        for path in log_dir.glob(REFRESH_LOG_GLOB):
            try:
                if path.is_file() and path.stat().st_mtime < cutoff:
                    path.unlink()
                    removed += 1
            except OSError as e:
                logger.debug(f"Could not remove old log {path}: {e}")

        if removed:
            logger.info(f"Removed {removed} log file(s) older than {self.settings.max_log_days} days")
        return removed

    def check_system_resources(self) -> None:
        logger.info("Checking system resources...")

        disk = disk_usage_percent(self.settings.project_dir)
        if disk > self.settings.disk_warn_percent:
            logger.warning(f"Disk usage is high: {disk}%")
        else:
            logger.info(f"Disk usage: {disk}%")

        if self.profile.is_linux:
            memory = memory_usage_percent()
            if memory is None:
                return
            if memory > self.settings.memory_warn_percent:
                logger.warning(f"Memory usage is high: {memory}%")
            else:
                logger.info(f"Memory usage: {memory}%")

    def graceful_shutdown(self) -> None:
        logger.info("Gracefully shutting down Docker Compose services...")

        if not self.compose.running_container_ids():
            logger.warning("No running containers found")
            return

        logger.info(f"Stopping containers with {self.settings.shutdown_timeout} second timeout...")
        self.compose.down(timeout=self.settings.shutdown_timeout)
        logger.info("SUCCESS: Containers stopped gracefully")

    def pull_latest_images(self) -> None:
        logger.info("Pulling latest Docker images...")
        self.compose.pull()
        logger.info("SUCCESS: Latest images pulled successfully")

    def restart_services(self) -> None:
        logger.info("Starting services in background...")
        self.compose.up_detached()
        logger.info("SUCCESS: Services started in background")

        self.sleep(self.settings.settle_seconds)

        logger.info("Service status:")
        for line in self.compose.ps_table().splitlines():
            logger.debug(f"  {line}")

    def verify_services(self) -> bool:
        """
        Poll service health up to health_attempts times.

        Returns True once every service is healthy (or running without a
        healthcheck). Returns False after the last attempt; that is logged
        as a warning and does not fail the refresh.
        """
        logger.info("Verifying service health...")
        attempts = self.settings.health_attempts

        for attempt in range(1, attempts + 1):
            try:
                summary = summarize(self.compose.ps_entries())
            except ComposeCommandError as e:
                logger.warning(f"Failed to query container status: {e}")
                summary = None

            if summary is not None and summary.all_converged:
                logger.info("SUCCESS: All services are healthy!")
                return True

            if summary is not None:
                for svc in summary.failed:
                    logger.warning(f"  {svc.name}: {svc.status}")
                for svc in summary.pending:
                    logger.debug(f"  {svc.name}: {svc.status}")

            logger.info(f"Waiting for services to become healthy (attempt {attempt}/{attempts})...")
            if attempt < attempts:
                self.sleep(self.settings.health_interval)

        logger.warning(f"Some services may not be fully healthy after {attempts} attempts")
        try:
            table = self.compose.ps_table()
        except ComposeCommandError as e:
            logger.warning(f"Failed to query container status: {e}")
            return False
        for line in table.splitlines():
            logger.debug(f"  {line}")
        return False

    def run(self) -> int:
        """Execute the full refresh. Returns the process exit status."""
        self.settings.log_dir.mkdir(parents=True, exist_ok=True)
        configure_logging(self.settings.log_level, log_file=self.log_file)

        logger.info(f"Starting Docker Compose refresh process on {self.profile.name}...")

        lock = PidLock(self.settings.lock_file)
        try:
            lock.acquire()
        except LockHeldError as e:
            logger.error(str(e))
            return 1

        try:
            return self._run_locked()
        finally:
            lock.release()

    def _run_locked(self) -> int:
        try:
            self.setup_environment()
        except PrerequisiteError as e:
            logger.error(str(e))
            if e.hint:
                logger.error(e.hint)
            return 1

        self.cleanup_logs()
        self.check_system_resources()

        steps = (
            (self.graceful_shutdown, "Graceful shutdown failed"),
            (self.pull_latest_images, "Image pull failed"),
            (self.restart_services, "Service restart failed"),
        )
        for step, failure in steps:
            try:
                step()
            except ComposeCommandError as e:
                logger.error(str(e))
                if e.output:
                    logger.debug(e.output)
                logger.error(failure)
                return 1

        self.verify_services()

        logger.info(f"SUCCESS: Docker Compose refresh completed successfully on {self.profile.name}!")
        logger.info(f"Log file: {self.log_file}")
        logger.info("Check service status with: docker compose ps")
        logger.info("Monitor logs with: docker compose logs -f")
        logger.info(f"View logs with: tail -f {self.log_file}")
        logger.info(f"System info: {' '.join(platform.uname())}")
        return 0


def run_refresh(settings: Settings, profile: Optional[PlatformProfile] = None) -> int:
    # Compose inherits os.environ at call time, after setup_environment() ran
    return RefreshRunner(settings, profile=profile).run()
