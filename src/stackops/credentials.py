#!/usr/bin/env python3
"""
Deployment secrets for the n8n stack.

Generates the database and admin passwords, derives the Caddy TLS mode
from the domain, and writes the stack's .env from a Jinja2 template.

Idempotent: an existing .env with real credentials is left alone unless
regeneration is forced. Whenever an existing file is replaced, a
timestamped backup (.env.backup.YYYYmmdd_HHMMSS) is written first.
"""

from __future__ import annotations

import os
import re
import secrets
import shutil
from dataclasses import dataclass
from datetime import datetime
from importlib import resources
from pathlib import Path
from typing import Callable, List, Optional

from . import logging_utils as out
from .config import Settings
from .config_constants import (
    ENV_BACKUP_PREFIX,
    ENV_TEMPLATE,
    MASKED_ENV_KEYS,
    PLACEHOLDER_PASSWORD,
)
from .errors import CredentialsError

# No look-alike characters (I, L, O, i, l, o, 0, 1); no quotes, so values
# can be single-quoted in the env file.
PASSWORD_ALPHABET = (
    "ABCDEFGHJKMNPQRSTUVWXYZ"
    "abcdefghjkmnpqrstuvwxyz"
    "23456789"
    "!@#%^&*_+-=[]|;:,<>?~"
)

IPV4_PATTERN = re.compile(r"^[0-9]+\.[0-9]+\.[0-9]+\.[0-9]+$")

TLS_INTERNAL = "internal"
TLS_LETSENCRYPT = ""

ENV_MISSING = "missing"
ENV_INCOMPLETE = "incomplete"
ENV_PLACEHOLDER = "placeholder"
ENV_READY = "ready"


@dataclass
class Credentials:
    db_password: str
    admin_password: str
    admin_user: str
    domain: str
    caddy_tls: str

    @property
    def access_url(self) -> str:
        return f"https://{self.domain}"


@dataclass
class SetupResult:
    env_file: Path
    written: bool
    credentials: Optional[Credentials] = None
    backup: Optional[Path] = None


def generate_password(length: int) -> str:
    """
    Generate a random password from PASSWORD_ALPHABET using ``secrets``.

    Raises:
        ValueError: If length is less than 1
    """
    if length < 1:
        raise ValueError("Password length must be at least 1")
    return ''.join(secrets.choice(PASSWORD_ALPHABET) for _ in range(length))


def tls_mode_for_domain(domain: str) -> str:
    """'internal' for localhost/IP domains, '' (Let's Encrypt) for real domains."""
    if "localhost" in domain or "127.0.0.1" in domain or IPV4_PATTERN.match(domain):
        return TLS_INTERNAL
    return TLS_LETSENCRYPT


def assess_env_file(env_file: Path) -> str:
    env_file = Path(env_file)
    if not env_file.is_file():
        return ENV_MISSING

    content = env_file.read_text(encoding="utf-8")
    if "POSTGRES_PASSWORD=" not in content:
        return ENV_INCOMPLETE
    if PLACEHOLDER_PASSWORD in content:
        return ENV_PLACEHOLDER
    return ENV_READY


def backup_env_file(env_file: Path, now: Optional[datetime] = None) -> Path:
    env_file = Path(env_file)
    stamp = (now or datetime.now()).strftime("%Y%m%d_%H%M%S")
    backup = env_file.parent / f"{ENV_BACKUP_PREFIX}{stamp}"
    counter = 1
    while backup.exists():
        backup = env_file.parent / f"{ENV_BACKUP_PREFIX}{stamp}_{counter}"
        counter += 1
    shutil.copy2(env_file, backup)
    os.chmod(backup, 0o600)
    return backup


def render_env(credentials: Credentials, settings: Settings) -> str:
    """Render templates/env.j2 with the generated credentials."""
    from jinja2 import StrictUndefined, Template

    template_text = (
        resources.files("stackops").joinpath("templates", ENV_TEMPLATE).read_text(encoding="utf-8")
    )
    template = Template(template_text, undefined=StrictUndefined, keep_trailing_newline=True)
    return template.render(
        caddy_tls=credentials.caddy_tls,
        postgres_database="n8n",
        postgres_user="n8n_user",
        db_password=credentials.db_password,
        postgres_port=5432,
        postgres_schema="public",
        domain=credentials.domain,
        timezone=settings.timezone,
        admin_user=credentials.admin_user,
        admin_password=credentials.admin_password,
    )


def write_env_file(env_file: Path, content: str) -> None:
    """Write atomically (tmp + replace) with mode 0600."""
    env_file = Path(env_file)
    env_file.parent.mkdir(parents=True, exist_ok=True)
    tmp = env_file.with_name(env_file.name + '.tmp')

    fd = os.open(tmp, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, 'w', encoding='utf-8') as f:
        f.write(content)
    os.chmod(tmp, 0o600)
    os.replace(tmp, env_file)


def validate_credentials(credentials: Credentials, settings: Settings) -> None:
    if len(credentials.db_password) < settings.min_db_password_length:
        raise CredentialsError("Database password is too short")
    if len(credentials.admin_password) < settings.min_admin_password_length:
        raise CredentialsError("n8n password is too short")


def show_credentials(env_file: Path) -> List[str]:
    """
    Masked view of the credential keys in the env file.

    Raises:
        CredentialsError: If the env file does not exist
    """
    env_file = Path(env_file)
    if not env_file.is_file():
        raise CredentialsError(f"No .env file found at {env_file}")

    masked = []
    for line in env_file.read_text(encoding="utf-8").splitlines():
        key = line.split("=", 1)[0].strip()
        if "=" in line and key in MASKED_ENV_KEYS:
            masked.append(f"{key}=***HIDDEN***")
    return masked


def ask_domain(default: str, prompt: Callable[[str], str] = input) -> str:
    print("Please enter your domain name:")
    print(f"  - For localhost development: {default} (default - just hit Enter)")
    print("  - For production: your-domain.com")
    print("  - For IP access: your-server-ip")
    try:
        answer = prompt(f"Domain [{default}]: ").strip()
    except EOFError:
        answer = ""
    return answer or default


def setup_credentials(
    settings: Settings,
    force: bool = False,
    domain: Optional[str] = None,
    assume_yes: bool = False,
    prompt: Callable[[str], str] = input,
    now: Optional[datetime] = None,
) -> SetupResult:
    """
    Create or regenerate the stack's .env.

    Args:
        settings: resolved settings (env_file, password lengths, defaults)
        force: regenerate even when the existing file looks ready
        domain: domain to use; prompts when None and not assume_yes
        assume_yes: non-interactive, use the default domain when none given
        prompt: input function (injectable for tests)
        now: timestamp for the backup name

    Returns:
        SetupResult; ``written`` is False when the file was already ready
    """
    env_file = settings.env_file
    state = assess_env_file(env_file)

    if state == ENV_READY and not force:
        out.success(f".env file contains required credentials: {env_file}")
        out.info("To regenerate credentials, run: stackops secrets --force")
        out.info("To view current credentials: stackops secrets --show")
        return SetupResult(env_file=env_file, written=False)

    if state == ENV_MISSING:
        out.info(f"Creating new .env file at {env_file}...")
    elif state == ENV_PLACEHOLDER:
        out.warn("Placeholder values detected, regenerating...")
    elif state == ENV_INCOMPLETE:
        out.warn(".env file is missing required credentials, regenerating...")
    else:
        out.warn("Force regeneration requested, proceeding...")

    if domain is None:
        domain = settings.default_domain if assume_yes else ask_domain(settings.default_domain, prompt)
    domain = domain.strip() or settings.default_domain

    credentials = Credentials(
        db_password=generate_password(settings.db_password_length),
        admin_password=generate_password(settings.admin_password_length),
        admin_user=settings.admin_user,
        domain=domain,
        caddy_tls=tls_mode_for_domain(domain),
    )
    validate_credentials(credentials, settings)

    backup = None
    if state != ENV_MISSING:
        backup = backup_env_file(env_file, now)
        out.info(f"Backup created: {backup}")

    write_env_file(env_file, render_env(credentials, settings))
    out.success(f".env file written with secure permissions (600): {env_file}")

    return SetupResult(env_file=env_file, written=True, credentials=credentials, backup=backup)


def print_credentials_report(result: SetupResult) -> None:
    creds = result.credentials
    if creds is None:
        return

    print("")
    print("IMPORTANT: Save these credentials securely!")
    print("============================================")
    print("n8n Admin Login:")
    print(f"   Username: {creds.admin_user}")
    print(f"   Password: {creds.admin_password}")
    print("")
    print("Domain & TLS Configuration:")
    print(f"   Domain: {creds.domain}")
    if creds.caddy_tls == TLS_INTERNAL:
        print("   TLS Mode: internal (for localhost/IP development)")
    else:
        print("   TLS Mode: Let's Encrypt (for production domains)")
    print(f"   Access URL: {creds.access_url}")
    print("")
    print(f"Database Password: {creds.db_password}")
    print("")
    print("Next steps:")
    print("1. Run: docker compose up -d")
    print(f"2. Access n8n at: {creds.access_url}")
    if creds.caddy_tls == TLS_INTERNAL:
        print("   (or http://localhost:5678 for direct access)")
        print("3. For production, update DOMAIN in .env to your real domain")
    else:
        print("3. Ensure your domain DNS points to this server")
