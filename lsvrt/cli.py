"""CLI entry point: ``lsvrt <target-branch>``."""

from __future__ import annotations

import logging
import sys

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from lsvrt.errors import LsvrtError
from lsvrt.models.config import DIFF_BACKENDS, RunConfig
from lsvrt.orchestrator import Pipeline, PipelineResult

console = Console()


def setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)


def _print_summary(result: PipelineResult) -> None:
    table = Table(title="Visual Regression Summary")
    table.add_column("Metric", style="bold")
    table.add_column("Value")
    table.add_row("Base", result.base_branch)
    table.add_row("Target", result.target_branch)
    table.add_row("Backend", result.diff.backend)
    table.add_row("Duration", f"{result.duration}s")

    summary = result.diff.summary
    if summary is not None:
        table.add_row("Changed", f"[red]{len(summary.failed_items)}[/red]")
        table.add_row("New", f"[yellow]{len(summary.new_items)}[/yellow]")
        table.add_row("Deleted", f"[yellow]{len(summary.deleted_items)}[/yellow]")
        table.add_row("Passed", f"[green]{len(summary.passed_items)}[/green]")
    console.print(table)

    if result.diff.report_path:
        console.print(f"  HTML report: [blue]{escape(result.diff.report_path)}[/blue]")
    else:
        console.print("  [yellow]The diff tool did not write an HTML report.[/yellow]")


@click.command()
@click.argument("target_branch")
@click.option("--config", "-c", "config_path", default=None, help="Optional JSON config file")
@click.option("--backend", "-b", type=click.Choice(DIFF_BACKENDS), default=None,
              help="Diff backend (default: $LSVRT_BACKEND or reg-cli)")
@click.option("--port", "-p", type=int, default=None, help="Storybook port (default: $LSVRT_PORT or 6006)")
@click.option("--allow-dirty", is_flag=True, help="Warn instead of aborting on uncommitted changes")
@click.option("--no-open", is_flag=True, help="Do not open the report when done")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def cli(
    target_branch: str,
    config_path: str | None,
    backend: str | None,
    port: int | None,
    allow_dirty: bool,
    no_open: bool,
    verbose: bool,
) -> None:
    """Capture Storybook screenshots on the current branch and TARGET_BRANCH, then diff them."""
    setup_logging(verbose)

    overrides = {
        "backend": backend,
        "port": port,
        "allow_dirty": True if allow_dirty else None,
        "open_report": False if no_open else None,
    }
    try:
        cfg = RunConfig.load(config_path, **overrides) if config_path else RunConfig.from_env(**overrides)
    except FileNotFoundError:
        console.print(f"[red]Config file not found: {escape(str(config_path))}[/red]")
        sys.exit(1)
    except ValueError as e:
        # json.JSONDecodeError and pydantic's ValidationError are both ValueErrors
        console.print(f"[red]Invalid config file {escape(str(config_path))}:[/red] {escape(str(e))}")
        sys.exit(1)

    try:
        result = Pipeline(cfg).run(target_branch)
    except LsvrtError as e:
        console.print(f"[red]An error occurred:[/red] {escape(str(e))}")
        sys.exit(1)
    except KeyboardInterrupt:
        console.print("[yellow]Interrupted; original branch restored.[/yellow]")
        sys.exit(130)

    _print_summary(result)
    console.print(f"[bold green]✅ {result.diff.backend} completed. Check the report above.[/bold green]")


if __name__ == "__main__":
    cli()
