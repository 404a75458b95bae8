"""Aggregate scenario results into a persisted report and a console summary."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from rich.console import Console
from rich.table import Table

from cmsprobe.evaluator.models import (
    CleanupRecord,
    ReportDocument,
    ReportSummary,
    ScenarioResult,
    ScenarioState,
)
from cmsprobe.evaluator.scoring import round_half_up

logger = logging.getLogger(__name__)


class ReportAggregator:
    """Build, persist and print one ReportDocument per scenario run."""

    def __init__(self, results_dir: Path, console: Optional[Console] = None) -> None:
        self.results_dir = results_dir
        self.console = console or Console()

    def finalize(
        self,
        *,
        scenario: str,
        title: str,
        filename: str,
        results: Sequence[ScenarioResult],
        environment: Dict[str, Any],
        state: ScenarioState,
        recommendation: str,
        cleanup: Sequence[CleanupRecord] = (),
        error: Optional[str] = None,
    ) -> ReportDocument:
        document = self.build(
            scenario=scenario,
            title=title,
            results=results,
            environment=environment,
            state=state,
            recommendation=recommendation,
            cleanup=cleanup,
            error=error,
        )
        self.write(document, filename)
        try:
            self.print_summary(document)
        except Exception as exc:  # noqa: BLE001 - console output must not lose the report
            logger.warning("Unable to print summary for %s: %s", scenario, exc)
        return document

    def build(
        self,
        *,
        scenario: str,
        title: str,
        results: Sequence[ScenarioResult],
        environment: Dict[str, Any],
        state: ScenarioState,
        recommendation: str,
        cleanup: Sequence[CleanupRecord] = (),
        error: Optional[str] = None,
    ) -> ReportDocument:
        ordered: List[ScenarioResult] = list(results)
        steps = [result for result in ordered if not result.is_summary]
        summary_result = next((result for result in ordered if result.is_summary), None)

        total_steps = len(steps)
        successful = len([step for step in steps if step.passed])
        total_duration = sum(step.duration_ms for step in steps)
        average_step = round_half_up(total_duration / total_steps) if total_steps else 0

        improvement = summary_result.metrics.get("percent_improvement") if summary_result else None
        consistent = bool(summary_result.metrics.get("immediately_consistent")) if summary_result else False
        overall = (
            state == ScenarioState.COMPLETED
            and summary_result is not None
            and summary_result.passed
            and successful == total_steps
        )

        summary = ReportSummary(
            total_steps=total_steps,
            successful_steps=successful,
            failed_steps=total_steps - successful,
            total_duration_ms=total_duration,
            average_step_duration_ms=average_step,
            percent_improvement=improvement,
            immediately_consistent=consistent,
            overall_passed=overall,
        )
        return ReportDocument(
            scenario=scenario,
            title=title,
            timestamp=datetime.now(timezone.utc).isoformat(),
            environment=dict(environment),
            state=state,
            results=ordered,
            summary=summary,
            recommendation=recommendation,
            cleanup=list(cleanup),
            error=error,
        )

    def write(self, document: ReportDocument, filename: str) -> Optional[Path]:
        output_path = self.results_dir / filename
        try:
            self.results_dir.mkdir(parents=True, exist_ok=True)
            payload = json.dumps(document.to_dict(), indent=2)
            output_path.write_text(payload + "\n", encoding="utf-8")
        except (OSError, TypeError, ValueError) as exc:
            logger.error("Failed to write report %s: %s", output_path, exc)
            return None
        logger.info("Report written to %s", output_path)
        return output_path

    def print_summary(self, document: ReportDocument) -> None:
        summary = document.summary
        console = self.console

        console.print(f"\n[bold blue]{document.title}[/bold blue]")
        console.print(f"[dim]{document.timestamp} · state: {document.state.value}[/dim]\n")

        table = Table(show_header=True, header_style="bold cyan")
        table.add_column("Step", justify="right", width=4)
        table.add_column("Name", no_wrap=False)
        table.add_column("Result", justify="center", width=8)
        table.add_column("Duration", justify="right", width=10)
        table.add_column("Details", overflow="fold")

        for result in document.steps:
            marker = "[green]✓[/green]" if result.passed else "[red]✗[/red]"
            table.add_row(
                str(result.step),
                result.name,
                marker,
                f"{result.duration_ms}ms",
                "; ".join(result.details) or "-",
            )
        console.print(table)

        console.print("\n[bold]Summary[/bold]")
        console.print(f"  Steps: {summary.successful_steps}/{summary.total_steps} passed")
        console.print(f"  Total time: {summary.total_duration_ms}ms (avg {summary.average_step_duration_ms}ms/step)")
        if summary.percent_improvement is not None:
            console.print(f"  Improvement vs 5-min cache: {summary.percent_improvement}%")
        consistency = "[green]✓ YES[/green]" if summary.immediately_consistent else "[red]✗ NO[/red]"
        console.print(f"  Immediate consistency: {consistency}")

        failed_cleanup = [record for record in document.cleanup if not record.succeeded]
        if document.cleanup:
            console.print(
                f"  Cleanup: {len(document.cleanup) - len(failed_cleanup)}/{len(document.cleanup)} resources removed"
            )
        for record in failed_cleanup:
            console.print(f"    ⚠ [yellow]{record.resource.label}: {record.error}[/yellow]")

        if document.error:
            console.print(f"\n[red]Error: {document.error}[/red]")

        verdict = "[bold green]✓ SUCCESS[/bold green]" if summary.overall_passed else "[bold red]✗ ISSUES FOUND[/bold red]"
        console.print(f"\n  Overall: {verdict}")
        console.print(f"  Recommendation: {document.recommendation}\n")
