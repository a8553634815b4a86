"""Tests for container bring-up."""

import subprocess
from pathlib import Path

import pytest

from nwlab import compose
from nwlab.errors import BringUpError


def test_compose_up_command(monkeypatch):
    calls = []

    def fake_run(cmd, **kwargs):
        calls.append((cmd, kwargs))
        return subprocess.CompletedProcess(cmd, 0, "", "")

    monkeypatch.setattr(compose.subprocess, "run", fake_run)

    compose.compose_up(["neo4j"], Path("docker-compose.yml"))

    (cmd, kwargs), = calls
    assert cmd == ["docker", "compose", "-f", "docker-compose.yml", "up", "-d", "neo4j"]
    assert kwargs["check"] is True


def test_docker_missing(monkeypatch):
    def fake_run(cmd, **kwargs):
        raise FileNotFoundError("docker")

    monkeypatch.setattr(compose.subprocess, "run", fake_run)

    with pytest.raises(BringUpError, match="not found") as exc_info:
        compose.compose_up(["mongodb"], Path("docker-compose.yml"))
    assert exc_info.value.stage == "bring-up"


def test_compose_failure_reports_last_stderr_line(monkeypatch):
    def fake_run(cmd, **kwargs):
        raise subprocess.CalledProcessError(
            1, cmd, output="", stderr="pulling postgres\nError: port 5432 already allocated\n"
        )

    monkeypatch.setattr(compose.subprocess, "run", fake_run)

    with pytest.raises(BringUpError, match="port 5432 already allocated"):
        compose.compose_up(["postgresql_db"], Path("docker-compose.yml"))


def test_compose_timeout(monkeypatch):
    def fake_run(cmd, **kwargs):
        raise subprocess.TimeoutExpired(cmd, kwargs["timeout"])

    monkeypatch.setattr(compose.subprocess, "run", fake_run)

    with pytest.raises(BringUpError, match="timed out after 5s"):
        compose.compose_up(["neo4j"], Path("docker-compose.yml"), timeout=5)
