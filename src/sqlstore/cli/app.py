"""
Root Typer application for the sqlstore CLI.
"""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as pkg_version

import typer
from typer import Typer

from sqlstore.cli.db import app as db_app

app = Typer(
    name="sqlstore",
    help="sqlstore: generic object storage over SQL databases.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        try:
            v = pkg_version("sqlstore")
        except PackageNotFoundError:
            v = "unknown"
        typer.echo(f"sqlstore {v}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """sqlstore CLI: manage the backing database."""


app.add_typer(db_app, name="db", help="Database operations.")


if __name__ == "__main__":
    app()
