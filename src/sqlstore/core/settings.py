"""Database connection settings for sqlstore.

``StoreSettings`` describes which relational backend the storage engine
talks to and how to reach it. Values come from keyword arguments,
``SQLSTORE_*`` environment variables or a ``.env`` file, in that order of
precedence.

Manifesto:
    Configuration should be explicit, validated, and environment-driven.

    - **Pydantic validation:** Type-checked at startup, not at first query
    - **Environment-driven:** ``SQLSTORE_DRIVER=mysql`` and friends
    - **Sensible defaults:** ``postgres:5432`` as user ``postgres``

Features:
    - **driver:** ``mysql``, ``postgres`` (alias ``postgresql``) or ``sqlite``
    - **addr:** ``host:port`` of the server (unused for SQLite)
    - **database:** Database name, or file path / ``:memory:`` for SQLite
    - **params:** Extra driver parameters appended to the connection URL
    - **pool_size / max_overflow / echo:** Engine tuning

Examples:
    >>> from sqlstore.core.settings import StoreSettings
    >>> settings = StoreSettings(driver="mysql", addr="db:3306", database="app")
    >>> settings.host, settings.port
    ('db', 3306)

Tags:
    settings, configuration, pydantic, environment, sqlstore

Doc-Types:
    - API Reference
    - Configuration Guide
"""

from __future__ import annotations

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

SUPPORTED_DRIVERS = ("mysql", "postgres", "sqlite")


class StoreSettings(BaseSettings):
    """Connection settings for the storage engine.

    Fields
    ──────
    driver        : Backend dialect (mysql | postgres | sqlite)
    addr          : Server address as ``host:port``
    username      : Database user
    password      : Database password (never logged)
    database      : Database name (file path or ``:memory:`` for SQLite)
    params        : Extra URL query parameters passed to the driver
    pool_size     : Connection pool size (ignored for SQLite)
    max_overflow  : Extra connections above ``pool_size``
    echo          : Log every SQL statement through SQLAlchemy
    log_level     : Structlog log level
    log_format    : ``json``, ``console`` or ``auto``
    """

    model_config = SettingsConfigDict(
        env_prefix="SQLSTORE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Connection ───────────────────────────────────────────────
    driver: str = "postgres"
    addr: str = "postgres:5432"
    username: str = "postgres"
    password: str = Field(default="", repr=False)
    database: str = ""
    params: dict[str, str] = Field(
        default_factory=dict,
        description="Extra driver parameters appended to the connection URL",
    )

    # ── Pool ─────────────────────────────────────────────────────
    pool_size: int | None = None
    max_overflow: int | None = None
    echo: bool = False

    # ── Observability ────────────────────────────────────────────
    log_level: str = "INFO"
    log_format: str = "auto"

    @field_validator("driver")
    @classmethod
    def _normalize_driver(cls, value: str) -> str:
        value = value.strip().lower()
        if value == "postgresql":
            value = "postgres"
        if value not in SUPPORTED_DRIVERS:
            raise ValueError(
                f"unsupported driver {value!r}, expected one of {', '.join(SUPPORTED_DRIVERS)}"
            )
        return value

    @property
    def host(self) -> str:
        host, _, _ = self.addr.rpartition(":")
        return host or self.addr

    @property
    def port(self) -> int | None:
        host, _, port = self.addr.rpartition(":")
        if not host or not port.isdigit():
            return None
        return int(port)

    @property
    def json_logs(self) -> bool | None:
        """``log_format`` as the ``json_format`` flag of ``configure_logging``."""
        if self.log_format == "json":
            return True
        if self.log_format == "console":
            return False
        return None


__all__ = ["StoreSettings", "SUPPORTED_DRIVERS"]
