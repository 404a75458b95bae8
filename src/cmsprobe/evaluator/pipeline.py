"""Shared scenario machinery: step context, state machine and cleanup scope."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, List, Optional, Sequence

from cmsprobe.backends import CMSClient, GitHubClient
from cmsprobe.config import Settings
from cmsprobe.errors import FatalConfigurationError
from cmsprobe.evaluator.models import (
    Attempt,
    Measurement,
    PollAttempt,
    ReportDocument,
    ResourceKind,
    ScenarioResult,
    ScenarioState,
    TransientResource,
)
from cmsprobe.evaluator.polling import Lookup, Sleep, poll_for_resource, probe
from cmsprobe.evaluator.report import ReportAggregator
from cmsprobe.evaluator.resources import TransientResourceTracker
from cmsprobe.evaluator.scoring import (
    average_duration,
    consistency_holds,
    percent_improvement,
    scenario_passed,
)
from cmsprobe.evaluator.timing import timed

if TYPE_CHECKING:  # pragma: no cover - import for type checking only
    from cmsprobe.evaluator.harness import EvaluatorConfig


logger = logging.getLogger(__name__)


@dataclass
class ScenarioContext:
    """Everything a step may use; results accumulate in ``results`` only."""

    settings: Settings
    config: "EvaluatorConfig"
    cms: CMSClient
    github: Optional[GitHubClient]
    tracker: TransientResourceTracker
    sleep: Sleep = asyncio.sleep
    results: List[ScenarioResult] = field(default_factory=list)

    @property
    def delays_ms(self) -> Sequence[int]:
        return self.config.poll_delays_ms

    def require_github(self) -> GitHubClient:
        if self.github is None:
            raise FatalConfigurationError(
                "GitHub credentials missing (GITHUB_OWNER, GITHUB_REPO, GITHUB_PERSONAL_ACCESS_TOKEN)"
            )
        return self.github

    async def measure(self, operation: str, action: Callable[[], Awaitable[Any]]) -> Measurement:
        measurement = await timed(operation, action, timeout=self.config.request_timeout)
        if measurement.succeeded:
            logger.info("  ✓ %s in %sms", operation, measurement.duration_ms)
        else:
            logger.warning("  ✗ %s failed after %sms: %s", operation, measurement.duration_ms, measurement.error)
        return measurement

    async def poll(self, identifier: str, operation: str, lookup: Lookup) -> List[PollAttempt]:
        query = probe(operation, lookup, timeout=self.config.request_timeout)
        return await poll_for_resource(identifier, query, self.delays_ms, sleep=self.sleep)

    def record_step(
        self,
        step: int,
        name: str,
        *,
        passed: bool,
        attempts: Sequence[Attempt] = (),
        metrics: Optional[Dict[str, Any]] = None,
        details: Optional[List[str]] = None,
    ) -> ScenarioResult:
        result = ScenarioResult(
            name=name,
            step=step,
            passed=passed,
            attempts=tuple(attempts),
            metrics=dict(metrics or {}),
            details=list(details or []),
        )
        self.results.append(result)
        marker = "✓" if passed else "✗"
        logger.info("%s Step %s: %s (%sms)", marker, step, name, result.duration_ms)
        return result

    def record_no_input(self, step: int, name: str, reason: str) -> ScenarioResult:
        """Record a step that had nothing valid to work on."""
        logger.warning("Step %s skipped: %s", step, reason)
        return self.record_step(
            step,
            name,
            passed=False,
            metrics={"attempted": 0},
            details=[f"no input: {reason}"],
        )


class ScenarioRunner:
    """Base class for scenario runners.

    Subclasses implement ``_execute`` as an explicit sequence of numbered
    steps; each step takes its inputs as arguments and returns its outputs.
    """

    name = ""
    title = ""
    report_filename = ""
    requires_github = True
    polls_resources = False

    def __init__(
        self,
        config: "EvaluatorConfig",
        settings: Settings,
        reporter: ReportAggregator,
        *,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._config = config
        self._settings = settings
        self._reporter = reporter
        self._sleep = sleep
        self.state = ScenarioState.NOT_STARTED

    async def run(
        self,
        cms: CMSClient,
        github: Optional[GitHubClient],
        environment: Optional[Dict[str, Any]] = None,
    ) -> ReportDocument:
        self.state = ScenarioState.RUNNING
        logger.info("Starting scenario %s", self.name)

        tracker = TransientResourceTracker(lambda resource: self._delete_resource(github, resource))
        context = ScenarioContext(
            settings=self._settings,
            config=self._config,
            cms=cms,
            github=github,
            tracker=tracker,
            sleep=self._sleep,
        )
        error: Optional[str] = None
        try:
            async with tracker:
                if self.requires_github:
                    context.require_github()
                await self._execute(context)
            self.state = ScenarioState.COMPLETED
        except FatalConfigurationError as exc:
            self.state = ScenarioState.FAILED
            error = str(exc)
            logger.error("Scenario %s aborted: %s", self.name, error)
        except Exception as exc:  # noqa: BLE001 - the report must still be produced
            self.state = ScenarioState.FAILED
            error = str(exc) or exc.__class__.__name__
            logger.exception("Scenario %s failed unexpectedly: %s", self.name, error)

        summary = self._summarize(context.results)
        results = [*context.results, summary]
        return self._reporter.finalize(
            scenario=self.name,
            title=self.title,
            filename=self.report_filename,
            results=results,
            environment=environment or {},
            state=self.state,
            recommendation=self.recommendation(context.results, summary),
            cleanup=tracker.records,
            error=error,
        )

    async def _execute(self, context: ScenarioContext) -> None:
        raise NotImplementedError

    def recommendation(self, steps: Sequence[ScenarioResult], summary: ScenarioResult) -> str:
        if summary.passed and all(step.passed for step in steps):
            return "Content changes are visible immediately - the cache-backed content layer removes the delay"
        return "Some steps failed or were delayed - review the individual step details"

    def _summary_metrics(self, steps: Sequence[ScenarioResult]) -> Dict[str, Any]:
        return {}

    def _summarize(self, steps: Sequence[ScenarioResult]) -> ScenarioResult:
        measurements = [measurement for step in steps for measurement in step.measurements]
        average = average_duration(measurements)
        improvement = percent_improvement(average) if average is not None else None
        polled = any("immediately_consistent" in step.metrics for step in steps)
        consistent = consistency_holds(steps) and (polled or not self.polls_resources)
        passed = scenario_passed(improvement, consistent)

        metrics: Dict[str, Any] = {
            "measurements": len(measurements),
            "average_duration_ms": average,
            "percent_improvement": improvement,
            "immediately_consistent": consistent,
        }
        metrics.update(self._summary_metrics(steps))
        details = [f"{len([step for step in steps if step.passed])}/{len(steps)} steps passed"]
        if improvement is None:
            details.append("no measurements recorded")
        return ScenarioResult(
            name=f"{self.title} summary",
            step=None,
            passed=passed,
            metrics=metrics,
            details=details,
        )

    async def _delete_resource(self, github: Optional[GitHubClient], resource: TransientResource) -> None:
        if github is None:
            raise FatalConfigurationError("no GitHub client available for cleanup")
        if resource.kind == ResourceKind.BRANCH:
            await github.delete_branch(resource.identifier)
        elif resource.kind == ResourceKind.COMMIT:
            await github.delete_file(
                resource.path or "",
                f"Cleanup: remove {resource.path}",
                resource.branch or self._settings.github_branch,
            )
