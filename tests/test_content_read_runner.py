"""Tests for the content read scenario."""

from conftest import FakeCMS

from cmsprobe.evaluator.content_read_runner import ContentReadScenarioRunner
from cmsprobe.evaluator.models import ScenarioState


class TestContentReadScenarioRunner:
    async def test_reads_both_backends(self, make_runner, cms, github, config):
        report = await make_runner(ContentReadScenarioRunner).run(cms, github)

        assert report.state == ScenarioState.COMPLETED
        assert all(step.passed for step in report.steps)
        assert cms.page_reads == config.read_iterations + config.perf_iterations
        summary = report.results[-1]
        assert summary.metrics["github_working"] is True
        assert summary.metrics["real_time_capable"] is True
        assert summary.metrics["improvement_vs_cache"] == 100
        assert report.summary.overall_passed is True
        assert report.cleanup == []

    async def test_activity_listing(self, make_runner, cms, github):
        report = await make_runner(ContentReadScenarioRunner).run(cms, github)

        activity = report.steps[3]
        assert activity.metrics["recent_commits"] == 1
        assert activity.metrics["available_branches"] == 1
        assert activity.metrics["latest_commit"]["message"] == "Initial commit"

    async def test_runs_without_github_credentials(self, make_runner, cms):
        report = await make_runner(ContentReadScenarioRunner).run(cms, None)

        assert report.state == ScenarioState.COMPLETED
        by_step = {step.step: step for step in report.steps}
        assert by_step[1].passed is True
        assert by_step[2].details == ["no input: no GitHub credentials configured"]
        assert by_step[4].passed is False
        assert report.results[-1].metrics["github_working"] is False
        assert report.summary.overall_passed is False

    async def test_missing_content_file_fails_github_reads(self, make_runner, cms, github):
        github.files.clear()

        report = await make_runner(ContentReadScenarioRunner).run(cms, github)

        github_reads = report.steps[1]
        assert github_reads.passed is False
        assert github_reads.metrics["successful_reads"] == 0

    async def test_unreachable_cms(self, make_runner, github):
        report = await make_runner(ContentReadScenarioRunner).run(FakeCMS(fail_reads=True), github)

        assert report.steps[0].passed is False
        assert report.steps[2].metrics["real_time_capable"] is False
        assert report.recommendation.startswith("Cache bypass issues detected")
