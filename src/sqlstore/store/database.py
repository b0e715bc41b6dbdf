"""SQLAlchemy engine factory and database bootstrap.

* ``create_store_engine``           -- Engine from a URL with sane defaults.
* ``engine_from_settings``          -- Engine from ``StoreSettings``.
* ``create_database_if_not_exists`` -- Idempotent ``CREATE DATABASE``.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import create_engine as _sa_create_engine
from sqlalchemy import event, text
from sqlalchemy import exc as sa_exc
from sqlalchemy.engine import URL, Engine, make_url
from sqlalchemy.pool import NullPool, StaticPool

from sqlstore.core.dialect import get_dialect
from sqlstore.core.errors import ConfigError
from sqlstore.core.logging import get_logger
from sqlstore.core.settings import StoreSettings
from sqlstore.store.sqlerrors import map_sql_error

logger = get_logger(__name__)


def create_store_engine(
    url: str | URL = "sqlite://",
    *,
    echo: bool = False,
    pool_size: int | None = None,
    max_overflow: int | None = None,
    pool_timeout: int | None = None,
    **kwargs: Any,
) -> Engine:
    """Create a SQLAlchemy engine with sane defaults.

    Parameters
    ----------
    url:
        Database URL (``sqlite://``, ``mysql+mysqlconnector://…``, etc.)
    echo:
        If ``True``, log all SQL through SQLAlchemy's logger.
    pool_size, max_overflow, pool_timeout:
        Connection pool parameters (ignored for SQLite).
    **kwargs:
        Extra arguments forwarded to ``sqlalchemy.create_engine``.
    """
    url = url if isinstance(url, URL) else _parse_url(url)

    if url.get_backend_name() == "sqlite":
        kwargs.setdefault("connect_args", {"check_same_thread": False})
        if url.database in (None, "", ":memory:"):
            # One shared connection, otherwise every checkout sees an empty database
            kwargs.setdefault("poolclass", StaticPool)

        engine = _sa_create_engine(url, echo=echo, **kwargs)

        @event.listens_for(engine, "connect")
        def _set_sqlite_pragma(dbapi_connection: Any, _rec: Any) -> None:
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        return engine

    pool_kwargs: dict[str, Any] = {"pool_pre_ping": True}
    if pool_size is not None:
        pool_kwargs["pool_size"] = pool_size
    if max_overflow is not None:
        pool_kwargs["max_overflow"] = max_overflow
    if pool_timeout is not None:
        pool_kwargs["pool_timeout"] = pool_timeout

    return _sa_create_engine(url, echo=echo, **pool_kwargs, **kwargs)


def _parse_url(url: str) -> URL:
    try:
        return make_url(url)
    except sa_exc.ArgumentError as e:
        raise ConfigError(f"invalid database URL: {e}", cause=e) from e


def engine_from_settings(settings: StoreSettings, **kwargs: Any) -> Engine:
    """Engine for the database described by ``settings``."""
    dialect = get_dialect(settings.driver)
    return create_store_engine(
        dialect.connection_url(settings),
        echo=settings.echo,
        pool_size=settings.pool_size,
        max_overflow=settings.max_overflow,
        **kwargs,
    )


def create_database_if_not_exists(settings: StoreSettings) -> bool:
    """Create the configured database unless it exists.

    Connects without a database (PostgreSQL: to its maintenance database)
    in autocommit mode. Returns ``True`` when a statement was issued.

    Raises:
        ConfigError: If no database name is configured for a server backend.
        StoreError: If the server rejects the statement for another reason.
    """
    dialect = get_dialect(settings.driver)
    if not settings.database:
        if dialect.name == "sqlite":
            return False
        raise ConfigError("database name is required")
    statement = dialect.create_database_sql(settings.database)
    if statement is None:
        return False

    maintenance = getattr(dialect, "maintenance_database", "")
    url = dialect.connection_url(settings, database=maintenance)
    engine = _sa_create_engine(url, poolclass=NullPool, isolation_level="AUTOCOMMIT")
    log = logger.bind(driver=dialect.name, database=settings.database)
    try:
        with engine.connect() as conn:
            conn.execute(text(statement))
        log.info("store.database_created")
    except sa_exc.DBAPIError as e:
        if dialect.is_database_exists_error(e.orig):
            log.info("store.database_exists")
            return True
        raise map_sql_error(e, "create_database", settings.database) from e
    finally:
        engine.dispose()
    return True


__all__ = ["create_database_if_not_exists", "create_store_engine", "engine_from_settings"]
