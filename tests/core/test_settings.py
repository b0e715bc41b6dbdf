"""Tests for sqlstore.core.settings."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from sqlstore.core.settings import SUPPORTED_DRIVERS, StoreSettings


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    """Isolate from SQLSTORE_* variables and .env files."""
    for key in ("DRIVER", "ADDR", "USERNAME", "PASSWORD", "DATABASE", "LOG_FORMAT"):
        monkeypatch.delenv(f"SQLSTORE_{key}", raising=False)
    monkeypatch.chdir(tmp_path)


class TestDefaults:
    def test_defaults(self):
        settings = StoreSettings()

        assert settings.driver == "postgres"
        assert settings.addr == "postgres:5432"
        assert settings.host == "postgres"
        assert settings.port == 5432
        assert settings.json_logs is None

    def test_password_not_in_repr(self):
        assert "hunter2" not in repr(StoreSettings(password="hunter2"))


class TestEnvironment:
    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("SQLSTORE_DRIVER", "mysql")
        monkeypatch.setenv("SQLSTORE_ADDR", "db:3306")
        monkeypatch.setenv("SQLSTORE_DATABASE", "store")

        settings = StoreSettings()

        assert settings.driver == "mysql"
        assert settings.port == 3306
        assert settings.database == "store"

    def test_env_file(self, tmp_path):
        (tmp_path / ".env").write_text("SQLSTORE_DRIVER=sqlite\n")

        assert StoreSettings().driver == "sqlite"


class TestValidation:
    def test_postgresql_alias(self):
        assert StoreSettings(driver="PostgreSQL").driver == "postgres"

    def test_unknown_driver(self):
        with pytest.raises(ValidationError):
            StoreSettings(driver="oracle")

    def test_supported(self):
        assert set(SUPPORTED_DRIVERS) == {"mysql", "postgres", "sqlite"}

    def test_addr_without_port(self):
        settings = StoreSettings(addr="localhost")

        assert settings.host == "localhost"
        assert settings.port is None

    @pytest.mark.parametrize("fmt,expected", [("json", True), ("console", False), ("auto", None)])
    def test_json_logs(self, fmt, expected):
        assert StoreSettings(log_format=fmt).json_logs is expected
