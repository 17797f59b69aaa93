"""Shared CLI helpers: config loading and error reporting."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

import typer
from rich.console import Console

from runwatch.config import ConfigLoadError, ConfigManager, RunwatchConfig
from runwatch.errors import ConfigurationError, RunwatchError

console = Console()
err_console = Console(stderr=True)


def load_config(config: str | None) -> RunwatchConfig:
    try:
        return ConfigManager.load(config_path=config or None).get()
    except (ConfigLoadError, ConfigurationError) as exc:
        err_console.print(f"[red]Configuration error:[/red] {exc}")
        raise typer.Exit(2) from exc


@contextmanager
def reporting_errors() -> Iterator[None]:
    """Print domain errors in red and exit non-zero instead of dumping a traceback."""
    try:
        yield
    except ConfigurationError as exc:
        err_console.print(f"[red]{exc.kind.value}:[/red] {exc.message}")
        raise typer.Exit(2) from exc
    except RunwatchError as exc:
        err_console.print(f"[red]{exc.kind.value}:[/red] {exc.message}")
        raise typer.Exit(1) from exc
