"""runwatch suites: resolve, select, check."""

from __future__ import annotations

import typer
from rich.table import Table

from runwatch.cli.common import console, load_config, reporting_errors
from runwatch.composition import (
    CompositionGraph,
    TagVocabulary,
    TestCatalog,
    resolve,
    resolve_all,
    select_ordered,
)
from runwatch.config import RunwatchConfig

suites_app = typer.Typer(name="suites", help="Inspect tag vocabulary and suite composition.")


def _graph(config: RunwatchConfig) -> CompositionGraph:
    vocabulary = TagVocabulary.from_config(config.taxonomy)
    catalog = TestCatalog.build(config.catalog, vocabulary)
    return CompositionGraph.build(config.suites, catalog)


@suites_app.command("resolve")
def resolve_command(
    name: str = typer.Argument(..., help="Suite name"),
    config: str = typer.Option("", "--config", help="Config file path"),
) -> None:
    """Print the flattened, ordered test list of a suite."""
    cfg = load_config(config)
    with reporting_errors():
        tests = resolve(_graph(cfg), name)
    for test_id in tests:
        console.print(test_id)


@suites_app.command("select")
def select_command(
    expression: str = typer.Argument(..., help="Tag expression, e.g. 'UI & (P0 | P1)'"),
    config: str = typer.Option("", "--config", help="Config file path"),
) -> None:
    """Print catalog tests matching a tag expression."""
    cfg = load_config(config)
    with reporting_errors():
        graph = _graph(cfg)
        tests = select_ordered(graph.catalog, expression)
    for test_id in tests:
        console.print(test_id)


@suites_app.command("check")
def check_command(
    config: str = typer.Option("", "--config", help="Config file path"),
) -> None:
    """Validate taxonomy, catalog and suites; resolve every suite."""
    cfg = load_config(config)
    with reporting_errors():
        resolved = resolve_all(_graph(cfg))
    table = Table(title="Suites")
    table.add_column("Suite")
    table.add_column("Tests", justify="right")
    for name, tests in resolved.items():
        table.add_row(name, str(len(tests)))
    console.print(table)
    console.print(f"[green]OK[/green] {len(resolved)} suite(s) resolved")
