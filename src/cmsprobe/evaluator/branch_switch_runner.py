"""Branch switching scenario: read branch-specific content through both backends."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Sequence

from cmsprobe.backends import GitHubClient
from cmsprobe.errors import BackendUnreachable
from cmsprobe.evaluator.branch_runner import track_if_created
from cmsprobe.evaluator.fixtures import preview, render_document
from cmsprobe.evaluator.models import Measurement, ScenarioResult
from cmsprobe.evaluator.pipeline import ScenarioContext, ScenarioRunner
from cmsprobe.evaluator.resources import unique_name

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SwitchBranch:
    name: str
    path: str
    relative_path: str
    commit_sha: str


class BranchSwitchScenarioRunner(ScenarioRunner):
    """Check whether content can be read per branch, and which workaround works."""

    name = "branch-switching"
    title = "Branch Switching Test"
    report_filename = "branch-switching-results.json"

    branch_count = 2

    async def _execute(self, context: ScenarioContext) -> None:
        github = context.require_github()
        branches = await self._step_create_branches(context, github)
        await self._step_graphql_branch_param(context, branches)
        await self._step_ref_switching(context, github, branches)
        await self._step_sha_retrieval(context, github, branches)

    async def _step_create_branches(self, context: ScenarioContext, github: GitHubClient) -> List[SwitchBranch]:
        created: List[SwitchBranch] = []
        attempts: List[Measurement] = []
        base_branch = context.settings.github_branch
        content_dir = context.settings.github_content_dir.rstrip("/")

        for index in range(1, self.branch_count + 1):
            branch_name = unique_name(f"test-switch-{index}")
            relative_path = f"branch-{index}-{branch_name.rsplit('-', 1)[-1]}.md"
            path = f"{content_dir}/{relative_path}"
            document = render_document(
                f"Branch {index} Content",
                {"branch": branch_name},
                [
                    f"This content is unique to branch {branch_name}.",
                    "",
                    f"**Branch ID**: {branch_name}",
                ],
            )

            async def create(branch_name: str = branch_name, path: str = path, document: str = document) -> str:
                base = await github.get_branch(base_branch)
                if base is None:
                    raise BackendUnreachable(f"base branch {base_branch} not found", status_code=404)
                await github.create_branch(branch_name, base.sha)
                context.tracker.track_branch(branch_name)
                return await github.put_file(path, document, f"Add branch {index} content to {branch_name}", branch_name)

            measurement = await context.measure(f"create branch {branch_name} with content", create)
            attempts.append(measurement)
            if not measurement.succeeded:
                await track_if_created(context, github, branch_name)
                continue
            created.append(
                SwitchBranch(
                    name=branch_name,
                    path=path,
                    relative_path=relative_path,
                    commit_sha=str(measurement.value),
                )
            )

        context.record_step(
            1,
            "Create Test Branches with Content",
            passed=len(created) == self.branch_count,
            attempts=attempts,
            metrics={"requested": self.branch_count, "created": len(created), "branches": [b.name for b in created]},
            details=[f"{len(created)}/{self.branch_count} branches created with content"],
        )
        return created

    async def _step_graphql_branch_param(self, context: ScenarioContext, branches: Sequence[SwitchBranch]) -> None:
        name = "CMS GraphQL Branch Parameter"
        if not branches:
            context.record_no_input(2, name, "no branches were created")
            return

        attempts: List[Measurement] = []
        found: List[str] = []
        details: List[str] = []
        for branch in branches:
            measurement = await context.measure(
                f"GraphQL page on {branch.name}",
                lambda branch=branch: context.cms.page_on_branch(branch.relative_path, branch.name),
            )
            attempts.append(measurement)
            if not measurement.succeeded:
                details.append(f"{branch.name}: {measurement.error}")
                continue
            result = measurement.value
            page = (result.data or {}).get("page") if result.ok else None
            if page:
                found.append(branch.name)
                details.append(f"{branch.name}: found '{page.get('title')}'")
            else:
                messages = [str(error.get("message", error)) for error in result.errors] or ["no content"]
                details.append(f"{branch.name}: {'; '.join(messages)}")

        # One branch answering is enough to show the parameter is honoured.
        context.record_step(
            2,
            name,
            passed=bool(found),
            attempts=attempts,
            metrics={"queried": len(attempts), "found": len(found)},
            details=details,
        )

    async def _step_ref_switching(
        self, context: ScenarioContext, github: GitHubClient, branches: Sequence[SwitchBranch]
    ) -> None:
        await self._read_each(context, github, branches, 3, "GitHub API Branch Switching", by_sha=False)

    async def _step_sha_retrieval(
        self, context: ScenarioContext, github: GitHubClient, branches: Sequence[SwitchBranch]
    ) -> None:
        await self._read_each(context, github, branches, 4, "SHA-Based Content Retrieval", by_sha=True)

    async def _read_each(
        self,
        context: ScenarioContext,
        github: GitHubClient,
        branches: Sequence[SwitchBranch],
        step: int,
        name: str,
        *,
        by_sha: bool,
    ) -> None:
        if not branches:
            context.record_no_input(step, name, "no branches were created")
            return

        attempts: List[Measurement] = []
        matched = 0
        details: List[str] = []
        for branch in branches:
            ref = branch.commit_sha if by_sha else branch.name
            measurement = await context.measure(
                f"read {branch.path}@{ref[:12]}",
                lambda branch=branch, ref=ref: github.get_content(branch.path, ref=ref),
            )
            attempts.append(measurement)
            content = measurement.value if measurement.succeeded else None
            if content is not None and branch.name in content.text:
                matched += 1
                details.append(f"{branch.name}: {preview(content.text)}")
            elif measurement.succeeded:
                details.append(f"{branch.name}: content missing")
            else:
                details.append(f"{branch.name}: {measurement.error}")

        context.record_step(
            step,
            name,
            passed=matched == len(branches),
            attempts=attempts,
            metrics={"method": "sha_based" if by_sha else "ref_based", "matched": matched, "read": len(attempts)},
            details=details,
        )

    def _summary_metrics(self, steps: Sequence[ScenarioResult]) -> Dict[str, Any]:
        by_step = {step.step: step.passed for step in steps}
        return {
            "cms_branch_param": by_step.get(2, False),
            "github_api_switching": by_step.get(3, False),
            "sha_based_retrieval": by_step.get(4, False),
        }

    def recommendation(self, steps: Sequence[ScenarioResult], summary: ScenarioResult) -> str:
        metrics = summary.metrics
        if metrics.get("cms_branch_param"):
            return "CMS branch switching works - use the GraphQL branch parameter"
        if metrics.get("github_api_switching") and metrics.get("sha_based_retrieval"):
            return "Use the GitHub API with SHA-based retrieval for branch switching"
        return "Branch switching limitations confirmed - consider alternative approaches"
