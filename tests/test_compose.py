#!/usr/bin/env python3
"""
docker compose wrapper tests: command execution and health parsing.
"""

import subprocess
from pathlib import Path
from unittest.mock import MagicMock, patch
import sys

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))
from stackops.compose import Compose, parse_ps_output, service_state, summarize  # noqa: E402
from stackops.errors import ComposeCommandError  # noqa: E402


def _completed(returncode=0, stdout="", stderr=""):
    return MagicMock(returncode=returncode, stdout=stdout, stderr=stderr)


class TestComposeRun:
    def test_command_uses_compose_file(self, tmp_path):
        compose = Compose(tmp_path, tmp_path / "docker-compose.yml")

        assert compose.command("pull") == [
            "docker", "compose", "-f", str(tmp_path / "docker-compose.yml"), "pull"
        ]

    @patch("subprocess.run")
    def test_runs_in_project_dir(self, mock_run, tmp_path):
        mock_run.return_value = _completed(stdout="abc\ndef\n")
        compose = Compose(tmp_path, tmp_path / "docker-compose.yml")

        assert compose.running_container_ids() == ["abc", "def"]
        assert mock_run.call_args.kwargs["cwd"] == tmp_path

    @patch("subprocess.run")
    def test_nonzero_exit_raises(self, mock_run, tmp_path):
        mock_run.return_value = _completed(returncode=1, stderr="pull access denied")
        compose = Compose(tmp_path, tmp_path / "docker-compose.yml")

        with pytest.raises(ComposeCommandError) as excinfo:
            compose.pull()

        assert excinfo.value.returncode == 1
        assert "pull access denied" in excinfo.value.output
        assert "Command failed with exit code 1" in str(excinfo.value)

    @patch("subprocess.run", side_effect=FileNotFoundError("docker"))
    def test_missing_binary(self, mock_run, tmp_path):
        compose = Compose(tmp_path, tmp_path / "docker-compose.yml")

        with pytest.raises(ComposeCommandError) as excinfo:
            compose.up_detached()

        assert excinfo.value.returncode == 127

    @patch("subprocess.run", side_effect=subprocess.TimeoutExpired(cmd="docker", timeout=1))
    def test_timeout(self, mock_run, tmp_path):
        compose = Compose(tmp_path, tmp_path / "docker-compose.yml", timeout=1)

        with pytest.raises(ComposeCommandError) as excinfo:
            compose.down(timeout=30)

        assert excinfo.value.returncode == -1

    @patch("subprocess.run")
    def test_ps_table_does_not_raise(self, mock_run, tmp_path):
        mock_run.return_value = _completed(returncode=1, stdout="partial")
        compose = Compose(tmp_path, tmp_path / "docker-compose.yml")

        assert compose.ps_table() == "partial"


class TestParsePsOutput:
    def test_ndjson(self):
        text = (
            '{"Service": "n8n", "State": "running", "Health": "healthy"}\n'
            '{"Service": "caddy", "State": "running", "Health": ""}\n'
        )
        entries = parse_ps_output(text)

        assert [e["Service"] for e in entries] == ["n8n", "caddy"]

    def test_json_array(self):
        text = '[{"Service": "n8n", "State": "running"}, {"Service": "db", "State": "exited"}]'

        assert len(parse_ps_output(text)) == 2

    def test_empty_and_garbage(self):
        assert parse_ps_output("") == []
        assert parse_ps_output("not json\n{\"Service\": \"n8n\"}") == [{"Service": "n8n"}]


class TestHealth:
    def test_unhealthy_is_not_healthy(self):
        svc = service_state({"Service": "n8n", "State": "running", "Health": "unhealthy"})

        assert not svc.converged
        assert svc.failed
        assert svc.status == "unhealthy"

    def test_running_without_healthcheck_converges(self):
        svc = service_state({"Name": "stack-caddy-1", "State": "running", "Health": ""})

        assert svc.converged
        assert svc.name == "stack-caddy-1"

    def test_summarize(self):
        summary = summarize([
            {"Service": "n8n", "State": "running", "Health": "healthy"},
            {"Service": "db", "State": "running", "Health": "starting"},
            {"Service": "worker", "State": "exited", "Health": ""},
        ])

        assert [s.name for s in summary.converged] == ["n8n"]
        assert [s.name for s in summary.pending] == ["db"]
        assert [s.name for s in summary.failed] == ["worker"]
        assert not summary.all_converged

    def test_empty_summary_converged(self):
        assert summarize([]).all_converged
