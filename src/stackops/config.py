#!/usr/bin/env python3
"""
Layered settings for stackops.

Resolution order (later wins, key-level deep merge):
1. defaults.toml shipped inside the package
2. <project_dir>/stackops.toml (optional, operator-owned)
3. STACKOPS_LOG_LEVEL environment variable / --log-level flag
"""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass
from importlib import resources
from pathlib import Path
from typing import Any, Optional

from .config_constants import DOCKER_COMPOSE_FILE, SETTINGS_DEFAULTS, SETTINGS_OVERRIDES
from .errors import ConfigError

PROJECT_DIR_ENV = "STACKOPS_PROJECT_DIR"
LOG_LEVEL_ENV = "STACKOPS_LOG_LEVEL"


@dataclass
class Settings:
    project_dir: Path
    compose_file: Path
    env_file: Path
    log_dir: Path
    lock_file: Path
    shutdown_timeout: int = 30
    settle_seconds: int = 5
    health_attempts: int = 30
    health_interval: int = 10
    max_log_days: int = 7
    disk_warn_percent: int = 90
    memory_warn_percent: int = 90
    cron_job_id: str = "docker-compose-refresh"
    cron_comment: str = "# Docker Compose Refresh - Auto-managed by stackops"
    daily_hour: int = 2
    weekly_hour: int = 3
    monthly_hour: int = 4
    db_password_length: int = 25
    admin_password_length: int = 20
    min_db_password_length: int = 16
    min_admin_password_length: int = 12
    default_domain: str = "n8n.localhost"
    admin_user: str = "admin"
    timezone: str = "UTC"
    log_level: str = "INFO"


def load_default_config() -> dict:
    """Parse the packaged defaults.toml."""
    text = resources.files("stackops").joinpath(SETTINGS_DEFAULTS).read_text(encoding="utf-8")
    return parse_toml_string(text, SETTINGS_DEFAULTS)


def parse_toml_string(toml_text: str, source: str) -> dict:
    """
    Parse TOML from a string with fail-fast error context.
    """
    try:
        return tomllib.loads(toml_text)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Failed to parse TOML from {source}: {e}") from e


def deep_merge_configs(base: dict, override: dict) -> dict:
    """
    Deep merge two config dicts (key-level). Values in ``override`` win;
    nested tables are merged rather than replaced.
    """
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge_configs(merged[key], value)
        else:
            merged[key] = value
    return merged


def find_project_dir(start: Path, compose_name: str = DOCKER_COMPOSE_FILE) -> Path:
    """
    Walk up from ``start`` to the first directory holding the compose file.

    Falls back to ``start`` itself so later checks report the missing file
    against the directory the operator asked for.
    """
    start = start.resolve()
    current = start
    while True:
        if (current / compose_name).exists():
            return current
        if current.parent == current:
            return start
        current = current.parent


def resolve_project_dir(explicit: Optional[Path] = None, cwd: Optional[Path] = None) -> Path:
    if explicit is not None:
        return Path(explicit).expanduser().resolve()

    from_env = os.environ.get(PROJECT_DIR_ENV)
    if from_env:
        return Path(from_env).expanduser().resolve()

    return find_project_dir(cwd or Path.cwd())


def _resolve_path(project_dir: Path, value: str) -> Path:
    path = Path(value).expanduser()
    if not path.is_absolute():
        path = project_dir / path
    return path


def _typed(section: dict, key: str, kind: type, source: str) -> Any:
    value = section[key]
    # bool is an int subclass; reject it for numeric settings
    if kind is int and (isinstance(value, bool) or not isinstance(value, int)):
        raise ConfigError(f"{source}: '{key}' must be an integer, got {value!r}")
    if kind is str and not isinstance(value, str):
        raise ConfigError(f"{source}: '{key}' must be a string, got {value!r}")
    return value


def build_settings(config: dict, project_dir: Path, source: str = SETTINGS_OVERRIDES) -> Settings:
    """Turn a merged config dict into a Settings instance."""
    try:
        paths = config["paths"]
        refresh = config["refresh"]
        cron = config["cron"]
        secrets_cfg = config["secrets"]
        logging_cfg = config["logging"]
    except KeyError as e:
        raise ConfigError(f"{source}: missing section [{e.args[0]}]") from e

    try:
        return Settings(
            project_dir=project_dir,
            compose_file=_resolve_path(project_dir, _typed(paths, "compose_file", str, source)),
            env_file=_resolve_path(project_dir, _typed(paths, "env_file", str, source)),
            log_dir=_resolve_path(project_dir, _typed(paths, "log_dir", str, source)),
            lock_file=_resolve_path(project_dir, _typed(paths, "lock_file", str, source)),
            shutdown_timeout=_typed(refresh, "shutdown_timeout", int, source),
            settle_seconds=_typed(refresh, "settle_seconds", int, source),
            health_attempts=_typed(refresh, "health_attempts", int, source),
            health_interval=_typed(refresh, "health_interval", int, source),
            max_log_days=_typed(refresh, "max_log_days", int, source),
            disk_warn_percent=_typed(refresh, "disk_warn_percent", int, source),
            memory_warn_percent=_typed(refresh, "memory_warn_percent", int, source),
            cron_job_id=_typed(cron, "job_id", str, source),
            cron_comment=_typed(cron, "comment", str, source),
            daily_hour=_typed(cron, "daily_hour", int, source),
            weekly_hour=_typed(cron, "weekly_hour", int, source),
            monthly_hour=_typed(cron, "monthly_hour", int, source),
            db_password_length=_typed(secrets_cfg, "db_password_length", int, source),
            admin_password_length=_typed(secrets_cfg, "admin_password_length", int, source),
            min_db_password_length=_typed(secrets_cfg, "min_db_password_length", int, source),
            min_admin_password_length=_typed(secrets_cfg, "min_admin_password_length", int, source),
            default_domain=_typed(secrets_cfg, "default_domain", str, source),
            admin_user=_typed(secrets_cfg, "admin_user", str, source),
            timezone=_typed(secrets_cfg, "timezone", str, source),
            log_level=_typed(logging_cfg, "level", str, source),
        )
    except KeyError as e:
        raise ConfigError(f"{source}: missing key '{e.args[0]}'") from e


def load_settings(project_dir: Optional[Path] = None, log_level: Optional[str] = None) -> Settings:
    """
    Load settings for a project directory.

    Args:
        project_dir: stack directory (resolved via resolve_project_dir when None)
        log_level: explicit log level, wins over file and environment

    Returns:
        Settings with all paths made absolute

    Raises:
        ConfigError: If stackops.toml is malformed or has wrong value types
    """
    project_dir = resolve_project_dir(project_dir)
    config = load_default_config()

    override_path = project_dir / SETTINGS_OVERRIDES
    if override_path.exists():
        override = parse_toml_string(override_path.read_text(encoding="utf-8"), str(override_path))
        config = deep_merge_configs(config, override)

    settings = build_settings(config, project_dir, source=str(override_path))

    env_level = os.environ.get(LOG_LEVEL_ENV)
    if log_level:
        settings.log_level = log_level
    elif env_level:
        settings.log_level = env_level

    return settings


def write_config_template(project_dir: Path) -> Optional[Path]:
    """
    Write the packaged defaults to <project_dir>/stackops.toml using tomli_w.

    Returns the written path, or None when an override already exists.
    """
    import tomli_w

    output_path = Path(project_dir) / SETTINGS_OVERRIDES
    if output_path.exists():
        return None

    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, 'wb') as f:
        tomli_w.dump(load_default_config(), f)
    return output_path
