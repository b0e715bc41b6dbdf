"""
CLI utility helpers: settings overrides and output formatting.
"""

from __future__ import annotations

import json
from typing import Any

import typer
from rich.console import Console
from rich.table import Table

from sqlstore.core.errors import StoreError
from sqlstore.core.logging import configure_logging
from sqlstore.core.settings import StoreSettings

console = Console()
err_console = Console(stderr=True)


# ── Settings ─────────────────────────────────────────────────────────────


def load_settings(**overrides: Any) -> StoreSettings:
    """``StoreSettings`` from the environment with non-None CLI options applied."""
    values = {k: v for k, v in overrides.items() if v is not None}
    try:
        settings = StoreSettings(**values)
    except ValueError as e:
        err_console.print(f"[red]Invalid settings:[/red] {e}")
        raise typer.Exit(code=2) from e
    configure_logging(level=settings.log_level, json_format=settings.json_logs)
    return settings


# ── Output helpers ───────────────────────────────────────────────────────


def output_result(data: dict[str, Any], *, as_json: bool = False, title: str = "") -> None:
    """Print ``data`` as JSON or a two-column rich table."""
    if as_json:
        typer.echo(json.dumps(data, default=str))
        return
    table = Table(title=title or None, show_header=False)
    table.add_column("Key", style="cyan")
    table.add_column("Value")
    for key, value in data.items():
        table.add_row(key, str(value))
    console.print(table)


def fail(error: StoreError, *, as_json: bool = False) -> None:
    """Report ``error`` and exit non-zero."""
    if as_json:
        typer.echo(json.dumps(error.to_dict(), default=str))
    else:
        err_console.print(f"[red]{error.reason.value}:[/red] {error.message}")
    raise typer.Exit(code=1)
