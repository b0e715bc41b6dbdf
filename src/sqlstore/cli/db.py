"""
CLI: ``sqlstore db`` — database management commands.
"""

from __future__ import annotations

import typer
from sqlalchemy import text
from sqlalchemy import exc as sa_exc

from sqlstore.cli.utils import fail, load_settings, output_result
from sqlstore.core.dialect import get_dialect
from sqlstore.core.errors import StoreError
from sqlstore.store.database import create_database_if_not_exists, engine_from_settings
from sqlstore.store.sqlerrors import map_sql_error

app = typer.Typer(no_args_is_help=True)

DriverOption = typer.Option(None, "--driver", help="Backend: mysql, postgres or sqlite")
AddrOption = typer.Option(None, "--addr", help="Server address as host:port")
UsernameOption = typer.Option(None, "--username", "-u", help="Database user")
PasswordOption = typer.Option(None, "--password", "-p", help="Database password")
DatabaseOption = typer.Option(None, "--database", "-d", help="Database name")


@app.command()
def create(
    driver: str | None = DriverOption,
    addr: str | None = AddrOption,
    username: str | None = UsernameOption,
    password: str | None = PasswordOption,
    database: str | None = DatabaseOption,
    json_out: bool = typer.Option(False, "--json", help="JSON output"),
) -> None:
    """Create the configured database unless it exists."""
    settings = load_settings(
        driver=driver, addr=addr, username=username, password=password, database=database
    )
    try:
        issued = create_database_if_not_exists(settings)
    except StoreError as e:
        fail(e, as_json=json_out)
    output_result(
        {"driver": settings.driver, "database": settings.database, "created": issued},
        as_json=json_out,
        title="Create Database",
    )


@app.command()
def ping(
    driver: str | None = DriverOption,
    addr: str | None = AddrOption,
    username: str | None = UsernameOption,
    password: str | None = PasswordOption,
    database: str | None = DatabaseOption,
    json_out: bool = typer.Option(False, "--json", help="JSON output"),
) -> None:
    """Check database connectivity with ``SELECT 1``."""
    settings = load_settings(
        driver=driver, addr=addr, username=username, password=password, database=database
    )
    engine = engine_from_settings(settings)
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except sa_exc.SQLAlchemyError as e:
        fail(map_sql_error(e, "ping", settings.database), as_json=json_out)
    finally:
        engine.dispose()
    output_result(
        {"driver": settings.driver, "database": settings.database, "ok": True},
        as_json=json_out,
        title="Database Ping",
    )


@app.command()
def url(
    driver: str | None = DriverOption,
    addr: str | None = AddrOption,
    username: str | None = UsernameOption,
    password: str | None = PasswordOption,
    database: str | None = DatabaseOption,
) -> None:
    """Print the connection URL with the password masked."""
    settings = load_settings(
        driver=driver, addr=addr, username=username, password=password, database=database
    )
    connection_url = get_dialect(settings.driver).connection_url(settings)
    typer.echo(connection_url.render_as_string(hide_password=True))
