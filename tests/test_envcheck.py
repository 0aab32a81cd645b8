#!/usr/bin/env python3
"""
Cron environment diagnostics tests.
"""

from datetime import datetime
from pathlib import Path
from unittest.mock import patch
import sys

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))
from stackops.config import build_settings, load_default_config  # noqa: E402
from stackops.envcheck import (  # noqa: E402
    FAIL,
    OK,
    CheckResult,
    CronEnvironmentCheck,
    minimal_cron_env,
    run_environment_check,
)
from stackops.platform_profile import LINUX_CRON_PATH, detect_platform  # noqa: E402

FIXED_NOW = datetime(2026, 1, 2, 3, 4, 5)


@pytest.fixture
def settings(tmp_path):
    return build_settings(load_default_config(), tmp_path)


def test_check_result_render():
    assert CheckResult("Docker ps works", OK).render() == "✅ Docker ps works"
    assert CheckResult("Docker socket NOT accessible", FAIL, "/x").render() == "❌ Docker socket NOT accessible: /x"
    assert not CheckResult("x", FAIL).ok


def test_minimal_cron_env():
    env = minimal_cron_env(detect_platform("linux"))

    assert env["PATH"] == LINUX_CRON_PATH
    assert set(env) == {"PATH", "HOME", "USER"}


class TestSummary:
    def test_ready(self, settings):
        check = CronEnvironmentCheck(settings, detect_platform("linux"))

        lines = check.summary_lines(True)

        assert "✅ READY FOR CRON: All tests passed!" in lines
        assert any(line.strip().startswith("0 2 * * * cd ") for line in lines)

    def test_not_ready(self, settings):
        lines = CronEnvironmentCheck(settings, detect_platform("linux")).summary_lines(False)

        assert any("NOT READY FOR CRON" in line for line in lines)

    def test_write_report(self, settings):
        check = CronEnvironmentCheck(settings, detect_platform("linux"), now=lambda: FIXED_NOW)

        path = check.write_report(["first", "", "second"])

        assert path == settings.log_dir / "cron-test-20260102-030405.log"
        assert path.read_text() == "[2026-01-02 03:04:05] first\n\n[2026-01-02 03:04:05] second\n"


class TestRun:
    def test_docker_unavailable_is_not_ready(self, settings, capsys):
        settings.compose_file.write_text("services: {}\n")

        with patch("stackops.envcheck._capture", return_value=None), \
                patch("stackops.envcheck.check_runtime_dependencies", return_value=[]), \
                patch("stackops.envcheck.command_succeeds", return_value=False), \
                patch("stackops.envcheck.docker_daemon_active", return_value=None):
            assert run_environment_check(settings, detect_platform("linux")) == 1

        output = capsys.readouterr().out
        assert "❌ Docker ps FAILED" in output
        assert "✅ docker-compose.yml found" in output
        assert list(settings.log_dir.glob("cron-test-*.log"))

    def test_ready_when_docker_and_project_ok(self, settings):
        settings.compose_file.write_text("services: {}\n")

        def fake_capture(cmd, timeout=15):
            return "n8n\tUp 2 hours" if cmd[:2] == ["docker", "ps"] else "Docker version 27.0.0"

        with patch("stackops.envcheck._capture", side_effect=fake_capture), \
                patch("stackops.envcheck.check_runtime_dependencies", return_value=[]), \
                patch("stackops.envcheck.command_succeeds", return_value=True), \
                patch("stackops.envcheck.docker_daemon_active", return_value=True):
            check = CronEnvironmentCheck(settings, detect_platform("darwin", user="ops"))
            assert check.run() is True

        names = [r.name for r in check.results]
        assert "Docker ps works" in names
        assert "Docker group check skipped" in names

    def test_missing_project_dir_reports_not_ready(self, tmp_path, capsys):
        settings = build_settings(load_default_config(), tmp_path / "missing")

        with patch("stackops.envcheck._capture", return_value=None), \
                patch("stackops.envcheck.check_runtime_dependencies", return_value=[]), \
                patch("stackops.envcheck.command_succeeds", return_value=False), \
                patch("stackops.envcheck.docker_daemon_active", return_value=None):
            assert run_environment_check(settings, detect_platform("linux")) == 1

        output = capsys.readouterr().out
        assert "Disk usage: not available" in output
        assert "NOT READY FOR CRON" in output
        assert list(settings.log_dir.glob("cron-test-*.log"))
