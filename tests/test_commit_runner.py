"""Tests for the git operations scenario."""

from cmsprobe.evaluator.commit_runner import CommitScenarioRunner
from cmsprobe.evaluator.models import ResourceKind, ScenarioState


class TestCommitScenarioRunner:
    async def test_commit_and_branch_visible_immediately(self, make_runner, cms, github):
        report = await make_runner(CommitScenarioRunner).run(cms, github)

        assert report.state == ScenarioState.COMPLETED
        assert [step.step for step in report.steps] == [1, 2, 3, 4]
        assert all(step.passed for step in report.steps)
        assert report.summary.overall_passed is True
        assert report.recommendation.startswith("Git operations work without cache delays")

    async def test_commit_file_and_branch_cleaned_up(self, make_runner, cms, github):
        report = await make_runner(CommitScenarioRunner).run(cms, github)

        kinds = [record.resource.kind for record in report.cleanup]
        assert kinds == [ResourceKind.BRANCH, ResourceKind.COMMIT]
        assert all(record.succeeded for record in report.cleanup)
        path = report.steps[0].metrics["path"]
        assert ("main", path) in github.deleted_files
        assert path.startswith("content/pages/test-cache-")

    async def test_rejected_commit_skips_dependent_steps(self, make_runner, cms, github):
        async def refuse(*args, **kwargs):
            raise RuntimeError("Resource not accessible by integration")

        github.put_file = refuse

        report = await make_runner(CommitScenarioRunner).run(cms, github)

        by_step = {step.step: step for step in report.steps}
        assert by_step[1].passed is False
        assert by_step[2].details == ["no input: no commit was created"]
        assert by_step[4].metrics == {"attempted": 0}
        assert by_step[3].passed is True
        assert report.summary.overall_passed is False

    async def test_cleanup_failure_does_not_change_outcome(self, make_runner, cms, github):
        github.fail_delete = True

        report = await make_runner(CommitScenarioRunner).run(cms, github)

        assert report.summary.overall_passed is True
        assert len(report.cleanup) == 2
        assert not any(record.succeeded for record in report.cleanup)
