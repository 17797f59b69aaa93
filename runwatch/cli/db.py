"""runwatch db: init, status (database CLI)."""

from __future__ import annotations

import asyncio
from urllib.parse import urlsplit, urlunsplit

import typer
from rich.table import Table
from sqlalchemy.exc import SQLAlchemyError

from runwatch.cli.common import console, err_console, load_config, reporting_errors
from runwatch.db import Base, create_engine, create_session_factory
from runwatch.records import SqlExecutionStore

db_app = typer.Typer(name="db", help="Database operations: init, status.")


def _mask_url(url: str) -> str:
    """Hide password in URL."""
    if "://" not in url:
        return url
    split = urlsplit(url)
    if split.password is None:
        return url
    host = split.hostname or ""
    port_suffix = f":{split.port}" if split.port is not None else ""
    netloc = f"{split.username}:***@{host}{port_suffix}"
    return urlunsplit((split.scheme, netloc, split.path, split.query, split.fragment))


def _require_url(url: str) -> str:
    if not url.strip():
        err_console.print(
            "[red]database.url is not configured.[/red] Set it in runwatch.yaml or RUNWATCH_DATABASE_URL."
        )
        raise typer.Exit(2)
    return url


async def _init_impl(url: str) -> list[str]:
    engine = create_engine(url)
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
    finally:
        await engine.dispose()
    return sorted(Base.metadata.tables)


async def _status_impl(url: str) -> dict:
    engine = create_engine(url)
    try:
        summary = await SqlExecutionStore(create_session_factory(engine)).summary()
    finally:
        await engine.dispose()
    return summary.to_dict()


@db_app.command("init")
def init_command(
    config: str = typer.Option("", "--config", help="Config file path"),
) -> None:
    """Create the execution record tables (idempotent)."""
    url = _require_url(load_config(config).database.url)
    with reporting_errors():
        try:
            tables = asyncio.run(_init_impl(url))
        except (SQLAlchemyError, OSError) as exc:
            err_console.print(f"[red]Database initialization failed:[/red] {exc}")
            raise typer.Exit(1) from exc
    console.print(f"[green]Initialized[/green] {_mask_url(url)}: {', '.join(tables)}")


@db_app.command("status")
def status_command(
    config: str = typer.Option("", "--config", help="Config file path"),
) -> None:
    """Show connection and execution counts per status."""
    url = _require_url(load_config(config).database.url)
    with reporting_errors():
        try:
            summary = asyncio.run(_status_impl(url))
        except (SQLAlchemyError, OSError) as exc:
            err_console.print(f"[red]Database status failed:[/red] {exc}")
            raise typer.Exit(1) from exc
    table = Table(title=f"Executions ({_mask_url(url)})")
    table.add_column("Status")
    table.add_column("Count", justify="right")
    for status, count in summary["by_status"].items():
        table.add_row(status, str(count))
    table.add_row("total", str(summary["total"]))
    console.print(table)
    console.print(f"Pass rate: {summary['pass_rate']}%")
