"""SQL dialect abstraction for the storage engine.

Provides a ``Dialect`` protocol and concrete implementations for every
supported backend. The engine uses ``Dialect`` methods to generate the SQL
fragments that differ between databases (identifier quoting, JSON text
extraction, JSON mutation, database bootstrap) and to build the SQLAlchemy
connection URL, without importing any specific database driver.

Manifesto:
    The engine must behave identically on MySQL, PostgreSQL and SQLite.
    Without a dialect layer, quoting rules and JSON functions leak into the
    query builder and break when switching backends.

    - **One interface:** Dialect protocol for all backend-specific SQL
    - **Zero coupling:** Engine code never imports database drivers
    - **Bound values only:** Fragments reference placeholders, never literals
    - **Testable:** SQLiteDialect for tests, MySQL / PostgreSQL for prod

Architecture::

    Engine:
    ┌────────────────────────────────────────────────────────────────┐
    │  d.quote_identifier("name")          → identifiers             │
    │  d.json_extract_text("labels", ":p") → label selectors         │
    │  d.json_set(target, [(":p1", d.json_value(":p2"))])            │
    └────────────────────────────────────────────────────────────────┘
                              │
                              ▼
    ┌─────────────────┐ ┌──────────────────────┐ ┌──────────────────┐
    │ MySQL           │ │ PostgreSQL           │ │ SQLite           │
    │ `ident`         │ │ "ident"              │ │ "ident"          │
    │ JSON_SET(...)   │ │ jsonb_set(...)       │ │ json_set(...)    │
    │ JSON_REMOVE     │ │ #- text[]            │ │ json_remove      │
    └─────────────────┘ └──────────────────────┘ └──────────────────┘

Examples:
    >>> from sqlstore.core.dialect import get_dialect
    >>> d = get_dialect("mysql")
    >>> d.quote_identifier("creationTimestamp")
    '`creationTimestamp`'
    >>> d.json_path(["app"])
    '$."app"'

Guardrails:
    ❌ DON'T: Interpolate user values into fragments
    ✅ DO: Pass placeholders produced by the query builder

Tags:
    dialect, sql, abstraction, portability, database, sqlstore, json

Doc-Types:
    - API Reference
    - Database Portability Guide
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from sqlalchemy.engine import URL

if TYPE_CHECKING:
    from sqlstore.core.settings import StoreSettings


def render_json_path(segments: Sequence[str]) -> str:
    """Render path segments as a ``$``-rooted path of quoted member names.

    Every segment is a member, digits included, so map keys such as
    ``"2024"`` address the key and never an array element.

    >>> render_json_path(["annotations", "2024"])
    '$."annotations"."2024"'
    """
    parts = ["$"]
    for segment in segments:
        escaped = segment.replace("\\", "\\\\").replace('"', '\\"')
        parts.append(f'."{escaped}"')
    return "".join(parts)


@runtime_checkable
class Dialect(Protocol):
    """SQL dialect contract.

    Fragment methods return SQL text valid for the target database. Their
    arguments are already-rendered SQL (quoted identifiers, placeholders,
    nested fragments), so fragments compose.
    """

    @property
    def name(self) -> str:
        """Dialect name (e.g. ``'mysql'``)."""
        ...

    # -- Connection --------------------------------------------------------

    def connection_url(self, settings: StoreSettings, *, database: str | None = None) -> URL:
        """SQLAlchemy URL for ``settings``.

        ``database`` overrides ``settings.database``; bootstrap code passes
        the maintenance database here.
        """
        ...

    def create_database_sql(self, database: str) -> str | None:
        """Statement creating ``database``, or ``None`` when not applicable."""
        ...

    def is_database_exists_error(self, error: BaseException) -> bool:
        """Whether a DBAPI error means the database already exists."""
        ...

    # -- Identifiers -------------------------------------------------------

    def quote_identifier(self, identifier: str) -> str:
        """Quote a table or column name."""
        ...

    # -- JSON --------------------------------------------------------------

    def json_path(self, segments: Sequence[str]) -> Any:
        """Bind value addressing ``segments`` inside a JSON document."""
        ...

    def json_extract_text(self, column: str, path: str) -> str:
        """Scalar text extraction of ``path`` (a placeholder) from ``column``."""
        ...

    def json_value(self, placeholder: str) -> str:
        """Interpret a bound JSON text parameter as a JSON value."""
        ...

    def json_document(self, column: str) -> str:
        """``column`` as a JSON document, ``{}`` when NULL."""
        ...

    def json_set(self, target: str, pairs: Sequence[tuple[str, str]]) -> str:
        """Insert or overwrite ``(path, value)`` pairs in ``target``."""
        ...

    def json_replace(self, target: str, pairs: Sequence[tuple[str, str]]) -> str:
        """Overwrite existing ``(path, value)`` pairs in ``target``."""
        ...

    def json_remove(self, target: str, paths: Sequence[str]) -> str:
        """Remove ``paths`` from ``target``."""
        ...


# =========================================================================
# Concrete Dialect Implementations
# =========================================================================


class MySQLDialect:
    """MySQL dialect: backtick quoting, ``JSON_SET`` family."""

    drivername = "mysql+mysqlconnector"
    default_params = {"charset": "utf8mb4", "time_zone": "+00:00"}

    @property
    def name(self) -> str:
        return "mysql"

    def connection_url(self, settings: StoreSettings, *, database: str | None = None) -> URL:
        return URL.create(
            self.drivername,
            username=settings.username or None,
            password=settings.password or None,
            host=settings.host,
            port=settings.port,
            database=(settings.database if database is None else database) or None,
            query={**self.default_params, **settings.params},
        )

    def create_database_sql(self, database: str) -> str | None:
        return f"CREATE DATABASE IF NOT EXISTS {self.quote_identifier(database)}"

    def is_database_exists_error(self, error: BaseException) -> bool:
        return getattr(error, "errno", None) == 1007

    def quote_identifier(self, identifier: str) -> str:
        return "`" + identifier.replace("`", "``") + "`"

    def json_path(self, segments: Sequence[str]) -> Any:
        return render_json_path(segments)

    def json_extract_text(self, column: str, path: str) -> str:
        return f"JSON_UNQUOTE(JSON_EXTRACT({column}, {path}))"

    def json_value(self, placeholder: str) -> str:
        return f"CAST({placeholder} AS JSON)"

    def json_document(self, column: str) -> str:
        return f"COALESCE({column}, JSON_OBJECT())"

    def json_set(self, target: str, pairs: Sequence[tuple[str, str]]) -> str:
        args = ", ".join(f"{path}, {value}" for path, value in pairs)
        return f"JSON_SET({target}, {args})"

    def json_replace(self, target: str, pairs: Sequence[tuple[str, str]]) -> str:
        args = ", ".join(f"{path}, {value}" for path, value in pairs)
        return f"JSON_REPLACE({target}, {args})"

    def json_remove(self, target: str, paths: Sequence[str]) -> str:
        return f"JSON_REMOVE({target}, {', '.join(paths)})"


class PostgreSQLDialect:
    """PostgreSQL dialect: double-quote quoting, ``jsonb_set`` / ``#-``.

    Paths bind as ``text[]`` arrays. JSON columns may be ``json`` or
    ``jsonb``; mutations operate on ``jsonb``.
    """

    drivername = "postgresql+psycopg2"
    maintenance_database = "postgres"
    default_params = {"options": "-c timezone=UTC"}

    @property
    def name(self) -> str:
        return "postgres"

    def connection_url(self, settings: StoreSettings, *, database: str | None = None) -> URL:
        return URL.create(
            self.drivername,
            username=settings.username or None,
            password=settings.password or None,
            host=settings.host,
            port=settings.port,
            database=(settings.database if database is None else database) or None,
            query={**self.default_params, **settings.params},
        )

    def create_database_sql(self, database: str) -> str | None:
        return f"CREATE DATABASE {self.quote_identifier(database)}"

    def is_database_exists_error(self, error: BaseException) -> bool:
        # duplicate_database
        return getattr(error, "pgcode", None) == "42P04"

    def quote_identifier(self, identifier: str) -> str:
        return '"' + identifier.replace('"', '""') + '"'

    def json_path(self, segments: Sequence[str]) -> Any:
        return list(segments)

    def json_extract_text(self, column: str, path: str) -> str:
        return f"(CAST({column} AS jsonb) #>> CAST({path} AS text[]))"

    def json_value(self, placeholder: str) -> str:
        return f"CAST({placeholder} AS jsonb)"

    def json_document(self, column: str) -> str:
        return f"COALESCE(CAST({column} AS jsonb), CAST('{{}}' AS jsonb))"

    def json_set(self, target: str, pairs: Sequence[tuple[str, str]]) -> str:
        for path, value in pairs:
            target = f"jsonb_set({target}, CAST({path} AS text[]), {value}, true)"
        return target

    def json_replace(self, target: str, pairs: Sequence[tuple[str, str]]) -> str:
        for path, value in pairs:
            target = f"jsonb_set({target}, CAST({path} AS text[]), {value}, false)"
        return target

    def json_remove(self, target: str, paths: Sequence[str]) -> str:
        for path in paths:
            target = f"({target} #- CAST({path} AS text[]))"
        return target


class SQLiteDialect:
    """SQLite dialect: double-quote quoting, JSON1 ``json_set`` family."""

    drivername = "sqlite"

    @property
    def name(self) -> str:
        return "sqlite"

    def connection_url(self, settings: StoreSettings, *, database: str | None = None) -> URL:
        return URL.create(
            self.drivername,
            database=(settings.database if database is None else database) or ":memory:",
            query=dict(settings.params),
        )

    def create_database_sql(self, database: str) -> str | None:
        # The database file is created on first connect
        return None

    def is_database_exists_error(self, error: BaseException) -> bool:
        return False

    def quote_identifier(self, identifier: str) -> str:
        return '"' + identifier.replace('"', '""') + '"'

    def json_path(self, segments: Sequence[str]) -> Any:
        return render_json_path(segments)

    def json_extract_text(self, column: str, path: str) -> str:
        return f"json_extract({column}, {path})"

    def json_value(self, placeholder: str) -> str:
        return f"json({placeholder})"

    def json_document(self, column: str) -> str:
        return f"COALESCE({column}, '{{}}')"

    def json_set(self, target: str, pairs: Sequence[tuple[str, str]]) -> str:
        args = ", ".join(f"{path}, {value}" for path, value in pairs)
        return f"json_set({target}, {args})"

    def json_replace(self, target: str, pairs: Sequence[tuple[str, str]]) -> str:
        args = ", ".join(f"{path}, {value}" for path, value in pairs)
        return f"json_replace({target}, {args})"

    def json_remove(self, target: str, paths: Sequence[str]) -> str:
        return f"json_remove({target}, {', '.join(paths)})"


# =========================================================================
# Registry / Factory
# =========================================================================

# Pre-instantiated singletons (dialects are stateless)
_DIALECTS: dict[str, Dialect] = {
    "mysql": MySQLDialect(),
    "postgres": PostgreSQLDialect(),
    "postgresql": PostgreSQLDialect(),  # alias
    "sqlite": SQLiteDialect(),
}


def get_dialect(driver: str) -> Dialect:
    """Get a dialect by driver name.

    Args:
        driver: One of ``'mysql'``, ``'postgres'``, ``'postgresql'``,
                ``'sqlite'``, or a name added with :func:`register_dialect`.

    Raises:
        ValueError: If ``driver`` is not recognised.
    """
    key = driver.lower()
    if key not in _DIALECTS:
        raise ValueError(
            f"Unknown dialect '{driver}'. "
            f"Supported: {sorted(set(_DIALECTS) - {'postgresql'})}"
        )
    return _DIALECTS[key]


def register_dialect(name: str, dialect: Dialect) -> None:
    """Register a custom dialect implementation.

    Args:
        name: Lookup key (lower-cased automatically).
        dialect: Instance implementing :class:`Dialect`.
    """
    _DIALECTS[name.lower()] = dialect


__all__ = [
    # Protocol
    "Dialect",
    # Implementations
    "MySQLDialect",
    "PostgreSQLDialect",
    "SQLiteDialect",
    # Helpers
    "render_json_path",
    # Factory
    "get_dialect",
    "register_dialect",
]
