"""Tests for the evaluation driver."""

import io
import json

import pytest
from rich.console import Console

from cmsprobe.evaluator.harness import (
    SCENARIOS,
    Evaluator,
    EvaluatorConfig,
    exit_code_for,
    parse_delays,
)
from cmsprobe.evaluator.models import ScenarioState


def _evaluator(config, settings, sleep, cms, github):
    return Evaluator(
        config,
        settings,
        console=Console(file=io.StringIO()),
        sleep=sleep,
        cms_factory=lambda s, c: cms,
        github_factory=lambda s, c: github,
    )


class TestEvaluatorConfig:
    def test_from_env(self, monkeypatch, tmp_path):
        monkeypatch.setenv("EVAL_RESULTS_DIR", str(tmp_path))
        monkeypatch.setenv("EVAL_POLL_DELAYS_MS", "10, 20,40")
        monkeypatch.setenv("EVAL_STRICT_EXIT", "1")
        monkeypatch.setenv("EVAL_SCENARIOS", "workflow,content-read")

        config = EvaluatorConfig.from_env()

        assert config.results_root == tmp_path.resolve()
        assert config.poll_delays_ms == (10, 20, 40)
        assert config.strict_exit is True
        assert config.scenarios == ("workflow", "content-read")
        assert config.request_timeout == 10.0

    def test_parse_delays_rejects_decreasing(self):
        with pytest.raises(ValueError):
            parse_delays("500,100")


class TestExitCode:
    async def test_strict_mode_maps_failures_to_one(self, config, settings, sleep, cms):
        reports = await _evaluator(config, settings, sleep, cms, None).run_async(["git-operations"])

        assert exit_code_for(reports, strict=False) == 0
        assert exit_code_for(reports, strict=True) == 1

    def test_run_returns_zero_without_strict(self, config, settings, sleep, cms):
        assert _evaluator(config, settings, sleep, cms, None).run(["workflow"]) == 0


class TestEvaluator:
    async def test_runs_all_scenarios(self, config, settings, sleep, cms, github):
        reports = await _evaluator(config, settings, sleep, cms, github).run_async()

        assert [report.scenario for report in reports] == list(SCENARIOS)
        for runner in SCENARIOS.values():
            assert (config.results_root / runner.report_filename).exists()
        assert list(github.branches) == ["main"]

    async def test_missing_credentials_yield_failed_reports(self, config, settings, sleep, cms):
        reports = await _evaluator(config, settings, sleep, cms, None).run_async(["branch-operations"])

        report = reports[0]
        assert report.state == ScenarioState.FAILED
        payload = json.loads((config.results_root / "branch-operations-results.json").read_text())
        assert payload["state"] == "failed"
        assert "GitHub credentials missing" in payload["error"]

    async def test_environment_descriptor(self, config, settings, sleep, cms, github):
        reports = await _evaluator(config, settings, sleep, cms, github).run_async(["content-read"])

        environment = reports[0].environment
        assert environment["repository"] == "acme/site"
        assert environment["run_mode"] == "production"
        assert environment["prerequisites"]["all_passed"] is True

    def test_unknown_scenario(self, config, settings, sleep, cms):
        with pytest.raises(ValueError):
            _evaluator(config, settings, sleep, cms, None).selected(["nope"])

    def test_configured_scenarios_used_by_default(self, config, settings, sleep, cms):
        config.scenarios = ("workflow",)
        assert _evaluator(config, settings, sleep, cms, None).selected() == ["workflow"]
