"""
countcov CLI - Command-line interface for coverage instrumentation.

Provides commands for printing instrumented source and for running a
script with coverage counting.
"""

from __future__ import annotations

import ast
import json
import logging
import traceback
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from countcov.coverage.analyzer import BranchRecord, CoverageReport, FunctionRecord, analyze_store
from countcov.errors import CountcovError
from countcov.instrument.config import InstrumenterConfig, InstrumenterConfigLoader
from countcov.instrument.instrumenter import instrument_source
from countcov.instrument.models import EntryKind
from countcov.runtime.runner import execute
from countcov.runtime.store import CoverageStore

app = typer.Typer(
    name="countcov",
    help="Source-level coverage instrumentation for Python",
    add_completion=False,
)

console = Console()


def version_callback(value: bool) -> None:
    """Display version information."""
    if value:
        from countcov import __version__

        console.print(f"[bold blue]countcov[/bold blue] v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None,
        "--version",
        "-v",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-V", help="Verbose logging"),
) -> None:
    """countcov - Statement, branch and function coverage for Python."""
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(message)s",
            handlers=[RichHandler(console=console, show_path=False)],
        )


def _load_config(config_path: str | None) -> InstrumenterConfig:
    if config_path is None:
        return InstrumenterConfig()
    try:
        return InstrumenterConfigLoader.from_yaml(config_path)
    except (FileNotFoundError, CountcovError) as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(1) from exc


def _read_source(path: str) -> str:
    target_path = Path(path)
    if not target_path.is_file():
        console.print(f"[red]Error:[/red] File not found: {path}")
        raise typer.Exit(1)
    return target_path.read_text(encoding="utf-8")


@app.command()
def instrument(
    path: str = typer.Argument(..., help="Python file to instrument"),
    output: str = typer.Option(None, "--output", "-o", help="Write instrumented source here"),
    metadata_output: str = typer.Option(
        None, "--metadata", "-m", help="Write instrumentation metadata JSON here"
    ),
    config_path: str = typer.Option(None, "--config", "-c", help="YAML configuration file"),
) -> None:
    """
    Print the instrumented source of a file.

    The output expects a counter store bound to the configured global
    name when it runs.
    """
    config = _load_config(config_path)
    source = _read_source(path)

    try:
        tree, metadata = instrument_source(source, path, config=config)
    except SyntaxError as exc:
        console.print(f"[red]Syntax error:[/red] {exc}")
        raise typer.Exit(1) from exc

    code = ast.unparse(tree)
    if output:
        Path(output).write_text(code + "\n", encoding="utf-8")
        console.print(f"[green]✓[/green] Output written to {output}")
    else:
        typer.echo(code)

    if metadata_output:
        Path(metadata_output).write_text(metadata.model_dump_json(indent=2), encoding="utf-8")
        console.print(f"[green]✓[/green] Metadata written to {metadata_output}")


@app.command()
def run(
    path: str = typer.Argument(..., help="Python script to run"),
    format_: str = typer.Option("console", "--format", "-f", help="Output format: console, json"),
    output: str = typer.Option(None, "--output", "-o", help="Output file for the JSON report"),
    config_path: str = typer.Option(None, "--config", "-c", help="YAML configuration file"),
    show_all: bool = typer.Option(False, "--all", "-a", help="List covered entries too"),
) -> None:
    """
    Run a script with coverage counting and report the result.

    Exits with status 1 if the script raises.
    """
    config = _load_config(config_path)
    source = _read_source(path)

    try:
        tree, metadata = instrument_source(source, path, config=config)
    except SyntaxError as exc:
        console.print(f"[red]Syntax error:[/red] {exc}")
        raise typer.Exit(1) from exc

    store = CoverageStore()
    error: BaseException | None = None
    try:
        execute(tree, path, store=store, global_name=config.global_name)
    except Exception as exc:
        error = exc
    except SystemExit as exc:
        if exc.code not in (None, 0):
            error = exc

    report = analyze_store(store, metadata)

    if format_ == "json" or output:
        json_output = json.dumps(report.to_dict(), indent=2)
        if output:
            Path(output).write_text(json_output)
            console.print(f"[green]✓[/green] Output written to {output}")
        else:
            typer.echo(json_output)
    else:
        _display_report(report, show_all)

    if error is not None:
        console.print(
            Panel(
                "".join(traceback.format_exception(error)).rstrip(),
                title=f"✗ {path} raised {type(error).__name__}",
                border_style="red",
            )
        )
        raise typer.Exit(1)


def _display_report(report: CoverageReport, show_all: bool = False) -> None:
    """Display a coverage report in a human-readable format."""
    console.print(f"\n[bold]Coverage: {report.filename}[/bold]")

    table = Table(show_header=True, header_style="bold")
    table.add_column("Kind", style="cyan")
    table.add_column("Covered", justify="right")
    table.add_column("Total", justify="right")
    table.add_column("Percent", justify="right")

    for kind in EntryKind:
        summary = report.summary(kind)
        style = "green" if summary.covered == summary.total else "yellow"
        table.add_row(
            kind.value,
            f"[{style}]{summary.covered}[/{style}]",
            str(summary.total),
            f"{summary.coverage_percentage:.1f}%",
        )

    console.print(table)

    records = [*report.statements, *report.branches, *report.functions]
    listed = records if show_all else [r for r in records if not r.covered]
    if not listed:
        console.print("[green]✓ Everything was executed[/green]")
        return

    detail = Table(show_header=True, header_style="bold")
    detail.add_column("Location")
    detail.add_column("Entry")
    detail.add_column("Count", justify="right")
    for record in listed:
        if isinstance(record, BranchRecord):
            construct = record.construct.value if record.construct else "?"
            label = f"branch {record.group_id}.{record.branch_index} ({construct})"
        elif isinstance(record, FunctionRecord):
            label = f"function {record.name}"
        else:
            label = "statement"
        count_style = "green" if record.covered else "red"
        detail.add_row(str(record.location), label, f"[{count_style}]{record.count}[/{count_style}]")
    console.print(detail)


if __name__ == "__main__":
    app()
