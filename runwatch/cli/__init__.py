"""CLI tools: runwatch init, serve, db, suites."""

from __future__ import annotations

import logging
import sys

import typer

from runwatch import __version__
from runwatch.cli.common import load_config, reporting_errors
from runwatch.cli.db import db_app
from runwatch.cli.init_config import init_config_command
from runwatch.cli.suites import suites_app

app = typer.Typer(
    name="runwatch",
    help="Runwatch: test execution monitoring service.",
    no_args_is_help=True,
)
app.add_typer(db_app, name="db")
app.add_typer(suites_app, name="suites")


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"runwatch {__version__}")
        raise typer.Exit(0)


@app.callback()
def root(
    version: bool = typer.Option(
        False, "--version", "-V", callback=_version_callback, is_eager=True, help="Show version and exit."
    ),
) -> None:
    """Runwatch command line."""


@app.command("init")
def init_command(
    path: str = typer.Option(".", "--path", help="Output directory"),
    force: bool = typer.Option(False, "--force", help="Overwrite existing runwatch.yaml"),
) -> None:
    """Generate default runwatch.yaml in target directory."""
    init_config_command(path=path, force=force)


@app.command("serve")
def serve_command(
    config: str = typer.Option("", "--config", help="Config file path"),
    host: str = typer.Option("", "--host", help="Bind host (defaults to api.host)"),
    port: int = typer.Option(0, "--port", help="Bind port (defaults to api.port)"),
) -> None:
    """Run the Status API and upload workers."""
    import uvicorn

    from runwatch.api import create_app
    from runwatch.app import Runwatch

    cfg = load_config(config)
    logging.basicConfig(
        level=getattr(logging, cfg.api.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    with reporting_errors():
        service = Runwatch.from_config(cfg)
    uvicorn.run(
        create_app(service),
        host=host or cfg.api.host,
        port=port or cfg.api.port,
        log_level=cfg.api.log_level.lower(),
    )


def main() -> None:
    """CLI entry point."""
    try:
        app()
    except KeyboardInterrupt:
        sys.exit(130)
