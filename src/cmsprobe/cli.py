"""CLI interface for cmsprobe."""

import asyncio
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from cmsprobe.config import settings
from cmsprobe.evaluator.harness import SCENARIOS, Evaluator, EvaluatorConfig, build_cms_client, parse_delays
from cmsprobe.evaluator.prerequisites import PrerequisiteChecker, PrerequisiteReport

__version__ = "0.1.0"

# Configure logging with Rich
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(message)s",
    handlers=[RichHandler(rich_tracebacks=True)]
)

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="cmsprobe",
    help="Measure whether CMS content changes are visible without the GitHub API cache delay"
)

console = Console()


def _set_verbose_logging(verbose: bool) -> None:
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)


@app.command()
def run(
    scenarios: Optional[List[str]] = typer.Argument(
        None,
        help="Scenarios to run (default: all)"
    ),
    strict: bool = typer.Option(
        False,
        "--strict",
        help="Exit with status 1 when any scenario fails"
    ),
    results_dir: Optional[Path] = typer.Option(
        None,
        "--results-dir",
        "-o",
        help="Directory for the JSON reports"
    ),
    delays: Optional[str] = typer.Option(
        None,
        "--delays",
        "-d",
        help="Comma-separated poll delays in ms, e.g. 50,100,500"
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose logging"
    ),
):
    """
    Run cache-bypass scenarios and write one report per scenario.
    """
    _set_verbose_logging(verbose)
    config = EvaluatorConfig.from_env()
    if strict:
        config = replace(config, strict_exit=True)
    if results_dir is not None:
        config = replace(config, results_root=results_dir.resolve())
    if delays:
        try:
            config = replace(config, poll_delays_ms=parse_delays(delays))
        except ValueError as exc:
            console.print(f"[red]Invalid --delays: {exc}[/red]")
            raise typer.Exit(2)

    unknown = [name for name in scenarios or [] if name not in SCENARIOS]
    if unknown:
        console.print(f"[red]Unknown scenario(s): {', '.join(unknown)}[/red]")
        console.print(f"Available: {', '.join(SCENARIOS)}")
        raise typer.Exit(2)

    console.print(f"\n[bold blue]🧪 Running scenarios against {settings.repository}[/bold blue] ({settings.run_mode} mode)\n")
    evaluator = Evaluator(config, settings, console=console)
    raise typer.Exit(evaluator.run(scenarios or None))


def _print_prerequisites(report: PrerequisiteReport) -> None:
    table = Table(title="Prerequisites")
    table.add_column("Check", style="cyan")
    table.add_column("Status")
    table.add_column("Detail", style="dim")

    for name, present in report.env_vars.items():
        table.add_row(name, "[green]✓[/green]" if present else "[red]✗[/red]", "set" if present else "missing")
    for check in report.services:
        table.add_row(
            check.name,
            "[green]✓[/green]" if check.reachable else "[red]✗[/red]",
            f"{check.detail} ({check.latency_ms}ms)",
        )
    console.print(table)


@app.command()
def check():
    """
    Check required configuration and CMS reachability.
    """
    config = EvaluatorConfig.from_env()

    async def _run() -> PrerequisiteReport:
        async with build_cms_client(settings, config) as cms:
            return await PrerequisiteChecker(settings).run(cms)

    report = asyncio.run(_run())
    _print_prerequisites(report)
    if report.all_passed:
        console.print("\n[green]All prerequisites met[/green]")
        return
    console.print(f"\n[yellow]Missing: {', '.join(report.missing)}[/yellow]")
    raise typer.Exit(1)


@app.command()
def scenarios():
    """List available scenarios and their report files."""
    config = EvaluatorConfig.from_env()
    console.print(f"Reports are written to [cyan]{config.results_root}[/cyan]\n")
    table = Table(title="Scenarios")
    table.add_column("Name", style="cyan", no_wrap=True)
    table.add_column("Title")
    table.add_column("Needs GitHub", justify="center")
    table.add_column("Report", style="dim")

    for name, runner in SCENARIOS.items():
        table.add_row(
            name,
            runner.title,
            "yes" if runner.requires_github else "no",
            runner.report_filename,
        )
    console.print(table)


@app.command()
def version():
    """Show version information."""
    console.print(f"[cyan]cmsprobe[/cyan] v{__version__}")


def main():
    """Main CLI entry point."""
    try:
        app()
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/yellow]")
        sys.exit(130)
    except Exception as e:
        console.print(f"\n[red]Error: {e}[/red]")
        logger.exception("Unhandled exception")
        sys.exit(1)


if __name__ == "__main__":
    main()
