"""End-to-end driver for the cache-bypass evaluation scenarios."""

from __future__ import annotations

import asyncio
import logging
import os
import platform
import sys
from contextlib import AsyncExitStack
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Type

from rich.console import Console

from cmsprobe.backends import CMSClient, GitHubClient
from cmsprobe.config import Settings, settings as default_settings
from cmsprobe.evaluator.branch_runner import BranchScenarioRunner
from cmsprobe.evaluator.branch_switch_runner import BranchSwitchScenarioRunner
from cmsprobe.evaluator.commit_runner import CommitScenarioRunner
from cmsprobe.evaluator.content_read_runner import ContentReadScenarioRunner
from cmsprobe.evaluator.models import ReportDocument, ScenarioState
from cmsprobe.evaluator.pipeline import ScenarioRunner
from cmsprobe.evaluator.polling import DEFAULT_DELAYS_MS, Sleep
from cmsprobe.evaluator.prerequisites import PrerequisiteChecker, PrerequisiteReport
from cmsprobe.evaluator.report import ReportAggregator
from cmsprobe.evaluator.workflow_runner import WorkflowScenarioRunner

logger = logging.getLogger(__name__)


SCENARIOS: Dict[str, Type[ScenarioRunner]] = {
    runner.name: runner
    for runner in (
        ContentReadScenarioRunner,
        CommitScenarioRunner,
        BranchScenarioRunner,
        BranchSwitchScenarioRunner,
        WorkflowScenarioRunner,
    )
}


def _truthy(value: Optional[str]) -> bool:
    return (value or "").strip().lower() in {"1", "true", "yes", "on"}


def parse_delays(raw: str) -> Tuple[int, ...]:
    """Parse ``"50,100,500"`` into a non-decreasing tuple of millisecond delays."""
    delays = tuple(int(token) for token in (part.strip() for part in raw.split(",")) if token)
    if not delays:
        raise ValueError("at least one poll delay is required")
    if any(delay < 0 for delay in delays):
        raise ValueError("poll delays must be non-negative")
    if any(later < earlier for earlier, later in zip(delays, delays[1:])):
        raise ValueError("poll delays must be non-decreasing")
    return delays


@dataclass
class EvaluatorConfig:
    results_root: Path
    poll_delays_ms: Tuple[int, ...] = DEFAULT_DELAYS_MS
    read_iterations: int = 3
    perf_iterations: int = 5
    request_timeout: float = 10.0
    strict_exit: bool = False
    scenarios: Tuple[str, ...] = ()

    @classmethod
    def from_env(cls) -> "EvaluatorConfig":
        results_root = Path(os.getenv("EVAL_RESULTS_DIR", "results")).resolve()
        raw_delays = os.getenv("EVAL_POLL_DELAYS_MS")
        scenarios = tuple(
            token.strip() for token in os.getenv("EVAL_SCENARIOS", "").split(",") if token.strip()
        )
        return cls(
            results_root=results_root,
            poll_delays_ms=parse_delays(raw_delays) if raw_delays else DEFAULT_DELAYS_MS,
            read_iterations=int(os.getenv("EVAL_READ_ITERATIONS", "3")),
            perf_iterations=int(os.getenv("EVAL_PERF_ITERATIONS", "5")),
            request_timeout=float(os.getenv("EVAL_REQUEST_TIMEOUT", "10")),
            strict_exit=_truthy(os.getenv("EVAL_STRICT_EXIT")),
            scenarios=scenarios,
        )


def exit_code_for(reports: Iterable[ReportDocument], strict: bool) -> int:
    """0 unless strict mode is on and some report did not pass."""
    if not strict:
        return 0
    return 0 if all(report.summary.overall_passed for report in reports) else 1


CMSFactory = Callable[[Settings, "EvaluatorConfig"], Any]
GitHubFactory = Callable[[Settings, "EvaluatorConfig"], Optional[Any]]


def build_cms_client(settings: Settings, config: EvaluatorConfig) -> CMSClient:
    return CMSClient(settings.cms_base_url, settings.cms_api_url, timeout=config.request_timeout)


def build_github_client(settings: Settings, config: EvaluatorConfig) -> Optional[GitHubClient]:
    if not settings.has_github_credentials:
        logger.warning("GitHub credentials not configured; repository scenarios will abort")
        return None
    return GitHubClient(
        settings.github_owner or "",
        settings.github_repo or "",
        settings.github_personal_access_token,
        base_url=settings.github_api_url,
        timeout=config.request_timeout,
    )


class Evaluator:
    def __init__(
        self,
        config: EvaluatorConfig,
        settings: Optional[Settings] = None,
        *,
        console: Optional[Console] = None,
        sleep: Sleep = asyncio.sleep,
        cms_factory: CMSFactory = build_cms_client,
        github_factory: GitHubFactory = build_github_client,
    ) -> None:
        self.config = config
        self.settings = settings or default_settings
        self.console = console or Console()
        self._sleep = sleep
        self._cms_factory = cms_factory
        self._github_factory = github_factory
        self.reporter = ReportAggregator(self.config.results_root, console=self.console)

    def selected(self, names: Optional[Sequence[str]] = None) -> List[str]:
        requested = list(names or self.config.scenarios or SCENARIOS)
        unknown = [name for name in requested if name not in SCENARIOS]
        if unknown:
            raise ValueError(f"unknown scenario(s): {', '.join(unknown)}; choose from {', '.join(SCENARIOS)}")
        return requested

    def environment(self, prerequisites: Optional[PrerequisiteReport]) -> Dict[str, Any]:
        return {
            "python_version": platform.python_version(),
            "platform": sys.platform,
            "run_mode": self.settings.run_mode,
            "repository": self.settings.repository,
            "branch": self.settings.github_branch,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "poll_delays_ms": list(self.config.poll_delays_ms),
            "prerequisites": prerequisites.to_dict() if prerequisites else None,
        }

    async def run_async(self, names: Optional[Sequence[str]] = None) -> List[ReportDocument]:
        selected = self.selected(names)
        logger.info("Running %s scenario(s): %s", len(selected), ", ".join(selected))
        reports: List[ReportDocument] = []

        async with AsyncExitStack() as stack:
            cms = await stack.enter_async_context(self._cms_factory(self.settings, self.config))
            github = self._github_factory(self.settings, self.config)
            if github is not None:
                github = await stack.enter_async_context(github)

            prerequisites = await PrerequisiteChecker(self.settings).run(cms)
            environment = self.environment(prerequisites)

            for name in selected:
                runner = SCENARIOS[name](self.config, self.settings, self.reporter, sleep=self._sleep)
                try:
                    report = await runner.run(cms, github, environment)
                except Exception as exc:  # noqa: BLE001 - every scenario still gets a report
                    logger.exception("Scenario %s escaped its runner: %s", name, exc)
                    report = self.reporter.finalize(
                        scenario=runner.name,
                        title=runner.title,
                        filename=runner.report_filename,
                        results=[],
                        environment=environment,
                        state=ScenarioState.FAILED,
                        recommendation="Scenario crashed - see the error and logs",
                        error=str(exc) or exc.__class__.__name__,
                    )
                reports.append(report)

        passed = len([report for report in reports if report.summary.overall_passed])
        logger.info("%s/%s scenario(s) passed", passed, len(reports))
        return reports

    def run(self, names: Optional[Sequence[str]] = None) -> int:
        reports = asyncio.run(self.run_async(names))
        exit_code = exit_code_for(reports, self.config.strict_exit)
        logger.info("Evaluator finished with exit code %s", exit_code)
        return exit_code


def main() -> None:
    log_level = os.getenv("EVAL_LOG_LEVEL", default_settings.log_level).upper()
    logging.basicConfig(level=getattr(logging, log_level, logging.INFO), format="[%(asctime)s] %(levelname)s %(message)s")
    config = EvaluatorConfig.from_env()
    evaluator = Evaluator(config)
    exit_code = evaluator.run()
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
