"""Normalize database errors into the sqlstore error taxonomy.

SQLAlchemy wraps every DBAPI exception in ``sqlalchemy.exc.DBAPIError``
with the driver's exception on ``.orig``. The driver exception carries the
backend's own code: ``errno`` (mysql-connector), ``pgcode`` (psycopg2),
or only a message (sqlite3).
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import exc as sa_exc

from sqlstore.core.errors import (
    AlreadyExistsError,
    BadRequestError,
    DatabaseConnectionError,
    NotFoundError,
    StorageError,
    StoreError,
)
from sqlstore.core.logging import get_logger

logger = get_logger(__name__)

MYSQL_DUPLICATE_ENTRY = 1062
MYSQL_BAD_NULL = 1048
MYSQL_NO_REFERENCED_ROW = 1452

PG_UNIQUE_VIOLATION = "23505"
PG_NOT_NULL_VIOLATION = "23502"
PG_FOREIGN_KEY_VIOLATION = "23503"

_MYSQL_CODES = {
    MYSQL_DUPLICATE_ENTRY: AlreadyExistsError,
    MYSQL_BAD_NULL: BadRequestError,
    MYSQL_NO_REFERENCED_ROW: NotFoundError,
}
_PG_CODES = {
    PG_UNIQUE_VIOLATION: AlreadyExistsError,
    PG_NOT_NULL_VIOLATION: BadRequestError,
    PG_FOREIGN_KEY_VIOLATION: NotFoundError,
}
_SQLITE_PREFIXES = {
    "UNIQUE constraint failed": AlreadyExistsError,
    "NOT NULL constraint failed": BadRequestError,
    "FOREIGN KEY constraint failed": NotFoundError,
}

_MESSAGES = {
    AlreadyExistsError: "{resource} {name!r} already exists",
    BadRequestError: "{resource} {name!r} is missing a required column",
    NotFoundError: "{resource} {name!r} references a missing object",
}


def driver_code(error: BaseException) -> Any:
    """Backend error code of a DBAPI exception, ``None`` when absent."""
    for attr in ("errno", "pgcode", "sqlite_errorname"):
        code = getattr(error, attr, None)
        if code is not None:
            return code
    return None


def _classify(orig: BaseException) -> type[StoreError] | None:
    errno = getattr(orig, "errno", None)
    if isinstance(errno, int) and errno in _MYSQL_CODES:
        return _MYSQL_CODES[errno]
    pgcode = getattr(orig, "pgcode", None)
    if pgcode in _PG_CODES:
        return _PG_CODES[pgcode]
    message = str(orig)
    for prefix, error_type in _SQLITE_PREFIXES.items():
        if message.startswith(prefix):
            return error_type
    return None


def map_sql_error(
    error: BaseException,
    operation: str,
    resource: str,
    name: str | None = None,
) -> StoreError:
    """Translate ``error`` raised while running ``operation``.

    Already-typed store errors pass through unchanged. The returned error
    never carries SQL text or bound values.
    """
    if isinstance(error, StoreError):
        return error
    context = {"operation": operation, "resource": resource, "name": name}
    orig = getattr(error, "orig", None) or error

    if isinstance(error, sa_exc.DBAPIError):
        error_type = _classify(orig)
        if error_type is not None:
            message = _MESSAGES[error_type].format(resource=resource, name=name or "")
            return error_type(message, cause=error).with_context(**context)
        if error.connection_invalidated or isinstance(error, sa_exc.OperationalError) and _is_disconnect(orig):
            return DatabaseConnectionError(
                f"database unavailable during {operation} of {resource}", cause=error
            ).with_context(**context)

    code = driver_code(orig)
    logger.error(
        "store.sql_error",
        operation=operation,
        resource=resource,
        name=name,
        code=code,
        error_type=type(orig).__name__,
    )
    return StorageError(f"{operation} {resource} failed", cause=error).with_context(
        **context, code=code
    )


_DISCONNECT_MYSQL = {2002, 2003, 2006, 2013, 2055}


def _is_disconnect(orig: BaseException) -> bool:
    errno = getattr(orig, "errno", None)
    if errno in _DISCONNECT_MYSQL:
        return True
    pgcode = getattr(orig, "pgcode", None)
    if isinstance(pgcode, str) and pgcode.startswith("08"):
        return True
    message = str(orig).lower()
    return any(
        marker in message
        for marker in ("could not connect", "connection refused", "unable to open")
    )


__all__ = ["driver_code", "map_sql_error"]
