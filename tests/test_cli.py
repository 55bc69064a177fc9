"""Tests for the command line health check."""

from __future__ import annotations

from pathlib import Path

import pytest

from ingestdb import cli
from ingestdb.supervisor import SCHEMA_VERSION_QUERY


@pytest.fixture
def config_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, registry) -> Path:
    for variable in ("INGESTDB_DB_HOST", "INGESTDB_DB_PORT", "INGESTDB_DB_PASSWORD"):
        monkeypatch.delenv(variable, raising=False)
    monkeypatch.setattr("ingestdb.supervisor.default_registry", lambda: registry)
    path = tmp_path / "config.toml"
    path.write_text(
        """
backend = "fake"

[database]
host = "db.internal"
port = 5433
database = "lega"
sslmode = "disable"

[retry]
connect_timeout = 0.05
fast_connect_rate = 0.01
"""
    )
    return path


def test_reports_schema_version(config_file: Path, backend, capsys: pytest.CaptureFixture[str]) -> None:
    exit_code = cli.main(["--config", str(config_file)])

    out = capsys.readouterr().out
    assert exit_code == 0
    assert "connected to db.internal:5433/lega (fake)" in out
    assert "schema version: 4" in out
    assert "file registration: available" in out
    assert backend.handle.closed is True


def test_reports_old_schema(config_file: Path, backend, capsys: pytest.CaptureFixture[str]) -> None:
    backend.results[SCHEMA_VERSION_QUERY] = 3

    exit_code = cli.main(["--config", str(config_file)])

    assert exit_code == 0
    assert "unavailable (requires schema v4)" in capsys.readouterr().out


def test_fails_when_backend_unreachable(config_file: Path, backend, capsys: pytest.CaptureFixture[str]) -> None:
    backend.reachable = False

    exit_code = cli.main(["--config", str(config_file), "--timeout", "0.05"])

    assert exit_code == 1
    assert "failed to connect within reconnect time" in capsys.readouterr().err


def test_fails_on_unknown_backend(config_file: Path, capsys: pytest.CaptureFixture[str]) -> None:
    exit_code = cli.main(["--config", str(config_file), "--backend", "mysql"])

    assert exit_code == 1
    assert "mysql" in capsys.readouterr().err


def test_fails_on_invalid_config(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    path = tmp_path / "config.toml"
    path.write_text("backend = [")

    exit_code = cli.main(["--config", str(path)])

    assert exit_code == 1
    assert "error:" in capsys.readouterr().err
