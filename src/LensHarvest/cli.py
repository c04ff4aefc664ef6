"""Typer-based command line interface for LensHarvest."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

import typer
from rich.console import Console
from rich.panel import Panel

from LensHarvest.config import export_config_schema, load_config
from LensHarvest.engine import TOP_CATEGORIES, LensResolutionEngine
from LensHarvest.failures import AggregateFailure, Failure, log_failure
from LensHarvest.logging_utils import setup_logging

LOGGER = logging.getLogger(__name__)

err_console = Console(stderr=True)
app = typer.Typer(help="LensHarvest lens resolution")

_STATE: Dict[str, Any] = {}


@app.callback()
def main(
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to config file (YAML/JSON)",
        envvar="LENSHARVEST_CONFIG",
    ),
    retries: Optional[int] = typer.Option(None, "--retries", help="Retries per request"),
    cache_ttl: Optional[int] = typer.Option(None, "--cache-ttl", help="Cache TTL in seconds (0 disables)"),
    verbose: bool = typer.Option(False, "-v", "--verbose", help="Verbose logging"),
    json_logs: bool = typer.Option(False, "--json-logs", help="Emit logs as JSON"),
) -> None:
    """Resolve lens metadata from public pages and the Wayback Machine."""
    setup_logging(level="DEBUG" if verbose else "INFO", json_logs=json_logs)

    cli_overrides: Dict[str, Any] = {}
    if retries is not None:
        cli_overrides["max_request_retries"] = retries
    if cache_ttl is not None:
        cli_overrides["cache_ttl_s"] = cache_ttl

    try:
        _STATE["config"] = load_config(config, cli_overrides=cli_overrides)
    except ValueError as exc:
        err_console.print(f"[red]✗ Invalid configuration:[/red] {exc}")
        raise typer.Exit(2) from exc


def _engine() -> LensResolutionEngine:
    return LensResolutionEngine(_STATE.get("config"))


def _emit(result: Any) -> None:
    """Print ``result`` as JSON, or report a failure and exit non-zero."""

    if isinstance(result, Failure):
        log_failure(LOGGER, result, level=logging.DEBUG)
        err_console.print(Panel(str(result), title="[red]Lookup failed[/red]", border_style="red"))
        if isinstance(result, AggregateFailure) and result.partial:
            typer.echo(json.dumps(result.partial, indent=2, ensure_ascii=False))
        raise typer.Exit(1)
    typer.echo(json.dumps(result, indent=2, ensure_ascii=False))


@app.command()
def lens(hash: str = typer.Argument(..., help="Lens hash / uuid")) -> None:
    """Resolve a single lens from its live page."""
    with _engine() as engine:
        _emit(engine.get_lens_by_hash(hash))


@app.command()
def more(hash: str = typer.Argument(..., help="Lens hash / uuid")) -> None:
    """List the lenses suggested on a lens page."""
    with _engine() as engine:
        _emit(engine.get_more_lenses_by_hash(hash))


@app.command()
def user(user_name: str = typer.Argument(..., help="Creator username")) -> None:
    """List the lenses on a creator profile."""
    with _engine() as engine:
        _emit(engine.get_lenses_by_username(user_name))


@app.command()
def creator(
    slug: str = typer.Argument(..., help="Obfuscated creator slug"),
    max_lenses: int = typer.Option(1000, "--max", help="Maximum lenses to request"),
) -> None:
    """List a creator's lenses from the Lens Studio listing."""
    with _engine() as engine:
        _emit(engine.get_lenses_by_creator(slug, max_lenses))


@app.command()
def top(
    category: str = typer.Argument("default", help=f"One of: {', '.join(TOP_CATEGORIES)}"),
    max_lenses: int = typer.Option(100, "--max", help="Maximum lenses (0 for no limit)"),
) -> None:
    """List the top lenses of a category."""
    if category not in TOP_CATEGORIES:
        err_console.print(f"[red]✗ Unknown category {category!r}[/red]")
        raise typer.Exit(2)
    with _engine() as engine:
        _emit(engine.get_top_lenses_by_category(category, max_lenses))


@app.command()
def search(term: str = typer.Argument(..., help="Search term")) -> None:
    """Search lenses on the explore pages."""
    with _engine() as engine:
        _emit(engine.search_lenses(term))


@app.command()
def archive(hash: str = typer.Argument(..., help="Lens hash / uuid")) -> None:
    """Resolve a lens from archived snapshots of its pages."""
    with _engine() as engine:
        _emit(engine.get_lens_by_archived_snapshot(hash))


@app.command()
def enrich(
    record_file: Path = typer.Argument(..., exists=True, dir_okay=False, help="JSON record file"),
    overwrite: bool = typer.Option(False, "--overwrite", help="Let crawled values win"),
) -> None:
    """Fill gaps in a stored lens record."""
    try:
        record = json.loads(record_file.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        err_console.print(f"[red]✗ Cannot read {record_file}:[/red] {exc}")
        raise typer.Exit(2) from exc
    if not isinstance(record, dict):
        err_console.print(f"[red]✗ {record_file} must contain a JSON object[/red]")
        raise typer.Exit(2)

    with _engine() as engine:
        result = engine.enrich_lens(record, overwrite=overwrite)
    for failure in result.failures:
        err_console.print(f"[yellow]![/yellow] {failure}")
    typer.echo(json.dumps(result.record, indent=2, ensure_ascii=False))


@app.command()
def schema(
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Save schema to file"),
) -> None:
    """Export the JSON Schema of the crawler configuration."""
    schema_data = export_config_schema()
    if output:
        output.write_text(json.dumps(schema_data, indent=2), encoding="utf-8")
        err_console.print(f"[green]✓ Schema written to {output}[/green]")
    else:
        typer.echo(json.dumps(schema_data, indent=2))


if __name__ == "__main__":
    app()
