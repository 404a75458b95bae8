"""Git operations scenario: create a commit and a branch, then poll for both."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from cmsprobe.backends import GitHubClient
from cmsprobe.evaluator.branch_runner import create_branch_from_base, poll_branch_listing
from cmsprobe.evaluator.fixtures import render_document
from cmsprobe.evaluator.models import ScenarioResult
from cmsprobe.evaluator.pipeline import ScenarioContext, ScenarioRunner
from cmsprobe.evaluator.resources import unique_name
from cmsprobe.evaluator.scoring import average_duration, consistency_metrics

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CreatedCommit:
    sha: str
    path: str
    branch: str
    marker: str


class CommitScenarioRunner(ScenarioRunner):
    """Create a commit and a branch through the REST API and poll their visibility."""

    name = "git-operations"
    title = "Git Operations Cache Bypass Test"
    report_filename = "git-operations-results.json"
    polls_resources = True

    async def _execute(self, context: ScenarioContext) -> None:
        github = context.require_github()
        commit = await self._step_create_commit(context, github)
        await self._step_poll_commit(context, github, commit)
        await self._step_branch(context, github)
        await self._step_read_back(context, github, commit)

    async def _step_create_commit(self, context: ScenarioContext, github: GitHubClient) -> Optional[CreatedCommit]:
        name = "Create Test Commit"
        branch = context.settings.github_branch
        filename = unique_name("test-cache", suffix=".md")
        path = f"{context.settings.github_content_dir.rstrip('/')}/{filename}"
        marker = filename[:-3]
        document = render_document(
            "Cache Test",
            {"marker": marker},
            [
                "This file was created to test cache bypass for Git operations.",
                "",
                f"**Test ID**: {marker}",
            ],
        )

        measurement = await context.measure(
            f"commit {path}",
            lambda: github.put_file(path, document, f"Test commit: cache bypass validation {marker}", branch),
        )
        if not measurement.succeeded:
            context.record_step(1, name, passed=False, attempts=[measurement], details=[measurement.error or "failed"])
            return None

        sha = str(measurement.value)
        context.tracker.track_commit(sha, path, branch)
        context.record_step(
            1,
            name,
            passed=True,
            attempts=[measurement],
            metrics={"commit_sha": sha, "path": path, "branch": branch},
            details=[f"commit {sha[:8]} -> {path}"],
        )
        return CreatedCommit(sha=sha, path=path, branch=branch, marker=marker)

    async def _step_poll_commit(
        self, context: ScenarioContext, github: GitHubClient, commit: Optional[CreatedCommit]
    ) -> None:
        name = "Commit Immediate Availability"
        if commit is None:
            context.record_no_input(2, name, "no commit was created")
            return

        async def commit_visible(sha: str) -> bool:
            info = await github.get_commit(sha)
            return info is not None and info.sha == sha

        polls = await context.poll(commit.sha, "get commit", commit_visible)
        metrics = consistency_metrics([polls])
        metrics["average_fetch_ms"] = average_duration([attempt.measurement for attempt in polls], successful_only=True)
        context.record_step(
            2,
            name,
            passed=metrics["immediately_consistent"],
            attempts=polls,
            metrics=metrics,
            details=[f"{len([p for p in polls if p.found])}/{len(polls)} polls found {commit.sha[:8]}"],
        )

    async def _step_branch(self, context: ScenarioContext, github: GitHubClient) -> None:
        name = "Branch Immediate Availability"
        branch, measurement = await create_branch_from_base(context, github, unique_name("test-cache"))
        if branch is None:
            context.record_step(3, name, passed=False, attempts=[measurement], details=[measurement.error or "failed"])
            return

        polls = await poll_branch_listing(context, github, [branch.name])
        metrics = consistency_metrics([polls])
        metrics["branch"] = branch.name
        metrics["average_fetch_ms"] = average_duration([attempt.measurement for attempt in polls], successful_only=True)
        context.record_step(
            3,
            name,
            passed=metrics["immediately_consistent"],
            attempts=[measurement, *polls],
            metrics=metrics,
            details=[f"{len([p for p in polls if p.found])}/{len(polls)} polls listed {branch.name}"],
        )

    async def _step_read_back(
        self, context: ScenarioContext, github: GitHubClient, commit: Optional[CreatedCommit]
    ) -> None:
        name = "Committed Content Read-back"
        if commit is None:
            context.record_no_input(4, name, "no commit was created")
            return

        async def content_visible(path: str) -> bool:
            content = await github.get_content(path, ref=commit.branch)
            return content is not None and commit.marker in content.text

        polls = await context.poll(commit.path, "read committed file", content_visible)
        metrics = consistency_metrics([polls])
        context.record_step(
            4,
            name,
            passed=metrics["immediately_consistent"],
            attempts=polls,
            metrics=metrics,
            details=[f"marker {commit.marker} {'visible' if metrics['immediately_consistent'] else 'delayed'}"],
        )

    def recommendation(self, steps: Sequence[ScenarioResult], summary: ScenarioResult) -> str:
        if summary.passed and all(step.passed for step in steps):
            return "Git operations work without cache delays - the cache-backed content layer is recommended"
        return "Some cache delays detected - investigate configuration"
