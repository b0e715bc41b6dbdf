"""Tests for sqlstore.cli -- CLI command smoke tests via CliRunner.

SQLite databases live in tmp_path so no server is needed.
"""

from __future__ import annotations

import json

import pytest
from typer.testing import CliRunner

from sqlstore.cli.app import app

runner = CliRunner()


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    for key in ("DRIVER", "ADDR", "USERNAME", "PASSWORD", "DATABASE"):
        monkeypatch.delenv(f"SQLSTORE_{key}", raising=False)
    monkeypatch.chdir(tmp_path)


def _json_line(output: str) -> dict:
    lines = [line for line in output.splitlines() if line.startswith("{")]
    return json.loads(lines[-1])


class TestRoot:
    def test_version(self):
        result = runner.invoke(app, ["--version"])

        assert result.exit_code == 0
        assert result.output.startswith("sqlstore ")

    def test_db_help(self):
        result = runner.invoke(app, ["db", "--help"])

        assert result.exit_code == 0
        for command in ("create", "ping", "url"):
            assert command in result.output


class TestDbUrl:
    """``sqlstore db url``."""

    def test_password_masked(self):
        result = runner.invoke(
            app,
            [
                "db", "url",
                "--driver", "mysql",
                "--addr", "db:3306",
                "--username", "root",
                "--password", "s3cret",
                "--database", "store",
            ],
        )

        assert result.exit_code == 0
        assert result.output.startswith("mysql+mysqlconnector://root:***@db:3306/store")
        assert "s3cret" not in result.output

    def test_env_settings(self, monkeypatch):
        monkeypatch.setenv("SQLSTORE_DRIVER", "postgres")
        monkeypatch.setenv("SQLSTORE_ADDR", "pg:5433")

        result = runner.invoke(app, ["db", "url", "--database", "store"])

        assert result.exit_code == 0
        assert result.output.startswith("postgresql+psycopg2://postgres@pg:5433/store")

    def test_invalid_driver(self):
        result = runner.invoke(app, ["db", "url", "--driver", "oracle"])

        assert result.exit_code == 2


class TestDbPing:
    """``sqlstore db ping``."""

    def test_sqlite_ping(self, tmp_path):
        database = str(tmp_path / "store.db")

        result = runner.invoke(app, ["db", "ping", "--driver", "sqlite", "--database", database, "--json"])

        assert result.exit_code == 0
        assert _json_line(result.output) == {"driver": "sqlite", "database": database, "ok": True}

    def test_sqlite_ping_table_output(self, tmp_path):
        result = runner.invoke(
            app, ["db", "ping", "--driver", "sqlite", "--database", str(tmp_path / "s.db")]
        )

        assert result.exit_code == 0
        assert "Database Ping" in result.output

    def test_unreachable(self, tmp_path):
        database = str(tmp_path / "missing" / "dir" / "store.db")

        result = runner.invoke(app, ["db", "ping", "--driver", "sqlite", "--database", database, "--json"])

        assert result.exit_code == 1
        assert _json_line(result.output)["reason"] == "ServiceUnavailable"


class TestDbCreate:
    """``sqlstore db create``."""

    def test_sqlite_is_noop(self, tmp_path):
        database = str(tmp_path / "store.db")

        result = runner.invoke(app, ["db", "create", "--driver", "sqlite", "--database", database, "--json"])

        assert result.exit_code == 0
        assert _json_line(result.output)["created"] is False

    def test_server_without_database(self):
        result = runner.invoke(app, ["db", "create", "--driver", "mysql", "--json"])

        assert result.exit_code == 1
        assert _json_line(result.output)["error_type"] == "ConfigError"
