"""Config template initialization command."""

from __future__ import annotations

from pathlib import Path

import typer

from runwatch.cli.common import console, err_console
from runwatch.config import RunwatchConfig, YAMLConfigLoader

_EXAMPLE_CATALOG = [
    {"id": "auth.LoginTest", "tags": ["UI", "P0", "FAST", "smoke"]},
    {"id": "auth.LoginApiTest", "tags": ["API", "P0", "FAST", "smoke"]},
    {"id": "cart.CheckoutTest", "tags": ["UI", "P1", "SLOW"]},
]
_EXAMPLE_SUITES = {
    "smoke": ["tags:smoke"],
    "regression": ["suite:smoke", "cart.CheckoutTest"],
}


def default_config_data() -> dict:
    data = RunwatchConfig().model_dump(mode="json")
    data["taxonomy"]["suite"] = ["smoke"]
    data["catalog"] = _EXAMPLE_CATALOG
    data["suites"] = _EXAMPLE_SUITES
    return data


def init_config_command(path: str = ".", force: bool = False) -> Path:
    """Create runwatch.yaml with defaults and a small example catalog."""
    target_dir = Path(path).resolve()
    output_path = target_dir / YAMLConfigLoader.DEFAULT_FILENAME
    if output_path.exists() and not force:
        err_console.print(f"[red]Config already exists:[/red] {output_path} (use --force)")
        raise typer.Exit(1)
    YAMLConfigLoader.dump(default_config_data(), output_path)
    console.print(f"[green]Created[/green] {output_path}")
    return output_path
