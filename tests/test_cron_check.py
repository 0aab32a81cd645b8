#!/usr/bin/env python3
"""
Installed cron job inspection tests.
"""

import os
import sys
from datetime import datetime
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))
from stackops import cron_check  # noqa: E402
from stackops.config import build_settings, load_default_config  # noqa: E402
from stackops.cron_check import CronJobLine  # noqa: E402
from stackops.platform_profile import LINUX_CRON_PATH, detect_platform  # noqa: E402


@pytest.fixture
def settings(tmp_path):
    return build_settings(load_default_config(), tmp_path)


def _crontab(project_dir, python=sys.executable):
    return (
        "# Docker Compose Refresh - Auto-managed by stackops\n"
        "# docker-compose-refresh: Daily refresh at 2:00\n"
        f"PATH={LINUX_CRON_PATH}\n"
        f"0 2 * * * cd {project_dir} && {python} -m stackops refresh\n"
    )


class TestCronJobLine:
    def test_parse(self):
        job = CronJobLine.parse("0 2 * * * cd /srv/stack && /usr/bin/python3 -m stackops refresh")

        assert job.schedule == "0 2 * * *"
        assert job.command == "cd /srv/stack && /usr/bin/python3 -m stackops refresh"
        assert job.working_dir == "/srv/stack"
        assert job.executable == "/usr/bin/python3"
        assert job.field_count == 12

    def test_parse_quoted_directory(self):
        job = CronJobLine.parse("0 2 * * * cd '/srv/my stack' && /usr/bin/python3 -m stackops refresh")

        assert job.working_dir == "/srv/my stack"

    def test_find_job_line_skips_comments(self, tmp_path):
        line = cron_check.find_job_line(_crontab(tmp_path))

        assert line.startswith("0 2 * * * cd ")

    def test_job_installed(self, tmp_path):
        assert cron_check.job_installed(_crontab(tmp_path), "docker-compose-refresh")
        assert not cron_check.job_installed("15 * * * * /usr/bin/backup\n", "docker-compose-refresh")


class TestChecks:
    def test_valid_job(self, tmp_path):
        (tmp_path / "docker-compose.yml").write_text("services: {}\n")
        job = CronJobLine.parse(cron_check.find_job_line(_crontab(tmp_path)))

        assert cron_check.check_format(job)
        assert cron_check.check_executable_exists(job)
        assert cron_check.check_executable_runnable(job)
        assert cron_check.check_working_directory(job, "docker-compose.yml")

    def test_invalid_job(self, tmp_path):
        job = CronJobLine.parse(f"0 2 * 13 * cd {tmp_path} && /nonexistent/python -m stackops refresh")

        assert not cron_check.check_format(job)
        assert not cron_check.check_executable_exists(job)
        assert not cron_check.check_executable_runnable(job)
        assert not cron_check.check_working_directory(job, "docker-compose.yml")

    def test_too_few_fields(self):
        assert not cron_check.check_format(CronJobLine.parse("0 2 * * *"))

    def test_cron_path(self, tmp_path):
        assert cron_check.check_cron_path(_crontab(tmp_path), LINUX_CRON_PATH)
        assert not cron_check.check_cron_path("0 2 * * * x", LINUX_CRON_PATH)


class TestLastExecution:
    def test_no_log_directory(self, tmp_path):
        assert cron_check.last_execution(tmp_path / "logs") == "No log directory found"

    def test_no_logs(self, tmp_path):
        assert cron_check.last_execution(tmp_path) == "No logs found"

    @pytest.mark.parametrize("age,expected", [
        (600, "Less than 1 hour ago"),
        (5 * 3600 + 10, "5 hours ago"),
        (3 * 86400 + 10, "3 days ago"),
    ])
    def test_age(self, tmp_path, age, expected):
        log = tmp_path / "refresh-20260301.log"
        log.write_text("x")
        stamp = datetime(2026, 3, 1, 12, 0).timestamp()
        os.utime(log, (stamp, stamp))

        now = datetime.fromtimestamp(stamp + age)
        assert cron_check.last_execution(tmp_path, now) == expected


class TestStatus:
    def test_next_run(self):
        assert cron_check.next_run("0 2 * * *", datetime(2026, 1, 1, 0, 0)) == datetime(2026, 1, 1, 2, 0)

    def test_next_run_invalid(self):
        assert cron_check.next_run("bogus") is None

    def test_cron_service_status_unknown_os(self):
        assert cron_check.cron_service_status(detect_platform("freebsd13")) == "Unknown OS"

    def test_quick_status_installed(self, settings, capsys):
        assert cron_check.quick_status(settings, crontab=_crontab(settings.project_dir)) == 0

        output = capsys.readouterr().out
        assert "Cron job is installed" in output
        assert "Schedule: 0 2 * * *" in output
        assert "Last run: No log directory found" in output

    def test_quick_status_missing(self, settings, capsys):
        assert cron_check.quick_status(settings, crontab="") == 1
        assert "NOT installed" in capsys.readouterr().out

    def test_detailed_status_missing(self, settings):
        assert cron_check.detailed_status(settings, detect_platform("freebsd13"), crontab="") == 1

    def test_detailed_status_valid(self, settings, capsys):
        settings.compose_file.write_text("services: {}\n")
        crontab = _crontab(settings.project_dir)

        assert cron_check.detailed_status(settings, detect_platform("freebsd13"), crontab=crontab) == 0

        output = capsys.readouterr().out
        assert "Cron format is valid" in output
        assert "Working directory is valid" in output
        assert "Cron service: Unknown OS" in output
