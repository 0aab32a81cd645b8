#!/usr/bin/env python3
"""
Secret generation and .env management tests.
"""

import stat
from datetime import datetime
from pathlib import Path
import sys

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))
from stackops import credentials  # noqa: E402
from stackops.config import build_settings, load_default_config  # noqa: E402
from stackops.credentials import (  # noqa: E402
    PASSWORD_ALPHABET,
    assess_env_file,
    generate_password,
    setup_credentials,
    show_credentials,
    tls_mode_for_domain,
)
from stackops.errors import CredentialsError  # noqa: E402

READY_ENV = "POSTGRES_PASSWORD='already-a-real-secret'\nN8N_BASIC_AUTH_USER=admin\n"


@pytest.fixture
def settings(tmp_path):
    return build_settings(load_default_config(), tmp_path)


def _env_values(env_file):
    values = {}
    for line in env_file.read_text().splitlines():
        if "=" in line and not line.startswith("#"):
            key, value = line.split("=", 1)
            values[key] = value
    return values


class TestPasswords:
    def test_length_and_alphabet(self):
        password = generate_password(25)

        assert len(password) == 25
        assert set(password) <= set(PASSWORD_ALPHABET)

    def test_no_ambiguous_or_quote_characters(self):
        assert not set("IlOo01'\"") & set(PASSWORD_ALPHABET)

    def test_zero_length_rejected(self):
        with pytest.raises(ValueError):
            generate_password(0)


class TestTlsMode:
    @pytest.mark.parametrize("domain", ["n8n.localhost", "localhost", "127.0.0.1", "192.168.1.10"])
    def test_internal(self, domain):
        assert tls_mode_for_domain(domain) == "internal"

    def test_real_domain_uses_letsencrypt(self):
        assert tls_mode_for_domain("n8n.example.com") == ""


class TestAssessEnvFile:
    def test_states(self, tmp_path):
        env_file = tmp_path / ".env"
        assert assess_env_file(env_file) == "missing"

        env_file.write_text("DOMAIN=x\n")
        assert assess_env_file(env_file) == "incomplete"

        env_file.write_text("POSTGRES_PASSWORD=your_secure_password_here\n")
        assert assess_env_file(env_file) == "placeholder"

        env_file.write_text(READY_ENV)
        assert assess_env_file(env_file) == "ready"


class TestSetupCredentials:
    def test_creates_env_file(self, settings):
        result = setup_credentials(settings, assume_yes=True)

        assert result.written
        assert result.backup is None
        values = _env_values(settings.env_file)
        assert values["DOMAIN"] == "n8n.localhost"
        assert values["CADDY_TLS"] == "internal"
        assert values["POSTGRES_USER"] == "n8n_user"
        assert values["N8N_BASIC_AUTH_USER"] == "admin"
        assert values["POSTGRES_PASSWORD"] == f"'{result.credentials.db_password}'"
        assert len(result.credentials.db_password) == 25
        assert len(result.credentials.admin_password) == 20
        assert stat.S_IMODE(settings.env_file.stat().st_mode) == 0o600

    def test_prompted_domain(self, settings):
        result = setup_credentials(settings, prompt=lambda _: "n8n.example.com")

        assert result.credentials.access_url == "https://n8n.example.com"
        assert _env_values(settings.env_file)["CADDY_TLS"] == ""

    def test_empty_answer_uses_default(self, settings):
        result = setup_credentials(settings, prompt=lambda _: "   ")

        assert result.credentials.domain == "n8n.localhost"

    def test_ready_file_left_alone(self, settings):
        settings.env_file.write_text(READY_ENV)

        result = setup_credentials(settings, assume_yes=True)

        assert not result.written
        assert settings.env_file.read_text() == READY_ENV

    def test_force_backs_up_and_regenerates(self, settings):
        settings.env_file.write_text(READY_ENV)

        result = setup_credentials(settings, force=True, domain="10.0.0.5",
                                   now=datetime(2026, 3, 1, 12, 30, 45))

        assert result.written
        assert result.backup == settings.project_dir / ".env.backup.20260301_123045"
        assert result.backup.read_text() == READY_ENV
        assert stat.S_IMODE(result.backup.stat().st_mode) == 0o600
        assert "already-a-real-secret" not in settings.env_file.read_text()
        assert _env_values(settings.env_file)["DOMAIN"] == "10.0.0.5"

    def test_placeholder_regenerated_without_force(self, settings):
        settings.env_file.write_text("POSTGRES_PASSWORD=your_secure_password_here\n")

        result = setup_credentials(settings, assume_yes=True, now=datetime(2026, 3, 1))

        assert result.written
        assert result.backup is not None
        assert "your_secure_password_here" not in settings.env_file.read_text()

    def test_short_password_settings_rejected(self, settings):
        settings.db_password_length = 8

        with pytest.raises(CredentialsError, match="Database password is too short"):
            setup_credentials(settings, assume_yes=True)

        assert not settings.env_file.exists()


class TestShowCredentials:
    def test_masks_values(self, settings):
        setup_credentials(settings, assume_yes=True)

        lines = show_credentials(settings.env_file)

        assert lines == [
            "CADDY_TLS=***HIDDEN***",
            "POSTGRES_PASSWORD=***HIDDEN***",
            "N8N_BASIC_AUTH_USER=***HIDDEN***",
            "N8N_BASIC_AUTH_PASSWORD=***HIDDEN***",
        ]

    def test_missing_file(self, settings):
        with pytest.raises(CredentialsError, match="No .env file found"):
            show_credentials(settings.env_file)


def test_report_prints_credentials(settings, capsys):
    result = setup_credentials(settings, domain="n8n.example.com")

    credentials.print_credentials_report(result)

    output = capsys.readouterr().out
    assert result.credentials.admin_password in output
    assert "Let's Encrypt" in output
    assert "Access URL: https://n8n.example.com" in output


def test_backups_in_same_second_do_not_overwrite(settings):
    now = datetime(2026, 3, 1, 12, 30, 45)
    settings.env_file.write_text(READY_ENV)

    first = setup_credentials(settings, force=True, assume_yes=True, now=now)
    second = setup_credentials(settings, force=True, assume_yes=True, now=now)

    assert first.backup.name == ".env.backup.20260301_123045"
    assert second.backup.name == ".env.backup.20260301_123045_1"
    assert first.backup.read_text() == READY_ENV
    assert second.backup.read_text() != READY_ENV
