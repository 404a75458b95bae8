"""Tests for scoring rules."""

from datetime import datetime, timezone

import pytest

from cmsprobe.evaluator.models import Measurement, ScenarioResult
from cmsprobe.evaluator.scoring import (
    BASELINE_DELAY_MS,
    average_duration,
    average_ms,
    consistency_holds,
    percent_improvement,
    relative_improvement,
    scenario_passed,
)


def _measurement(duration_ms, succeeded=True):
    return Measurement(
        "op",
        datetime.now(timezone.utc),
        duration_ms,
        succeeded=succeeded,
        error=None if succeeded else "boom",
    )


class TestPercentImprovement:
    @pytest.mark.parametrize("duration_ms", [155, 463])
    def test_fast_operations_round_to_full_improvement(self, duration_ms):
        assert percent_improvement(duration_ms) == 100

    def test_at_baseline_is_zero(self):
        assert percent_improvement(BASELINE_DELAY_MS) == 0

    def test_slower_than_baseline_is_negative(self):
        assert percent_improvement(2 * BASELINE_DELAY_MS) == -100

    @pytest.mark.parametrize("duration_ms, expected", [(28500, 91), (4500, 99)])
    def test_halves_round_up(self, duration_ms, expected):
        assert percent_improvement(duration_ms) == expected

    def test_half_point_above_threshold_passes(self):
        assert scenario_passed(percent_improvement(28500), True) is True

    def test_invalid_baseline(self):
        with pytest.raises(ValueError):
            percent_improvement(100, baseline_ms=0)

    def test_relative_improvement(self):
        assert relative_improvement(50, 200) == 75
        assert relative_improvement(None, 200) is None
        assert relative_improvement(50, None) is None


class TestAverages:
    def test_average_duration_rounds(self):
        assert average_duration([_measurement(100), _measurement(204)]) == 152

    def test_successful_only(self):
        measurements = [_measurement(100), _measurement(900, succeeded=False)]
        assert average_duration(measurements, successful_only=True) == 100
        assert average_duration(measurements) == 500

    def test_empty(self):
        assert average_duration([]) is None

    def test_average_halves_round_up(self):
        assert average_ms([2, 3]) == 3
        assert average_ms([1, 2]) == 2


class TestScenarioPassed:
    def test_threshold_is_strictly_greater_than_ninety(self):
        assert scenario_passed(90, True) is False
        assert scenario_passed(91, True) is True

    def test_requires_consistency(self):
        assert scenario_passed(100, False) is False

    def test_requires_measurements(self):
        assert scenario_passed(None, True) is False

    def test_consistency_holds_ignores_steps_without_polls(self):
        results = [
            ScenarioResult(name="create", step=1, passed=True),
            ScenarioResult(name="poll", step=2, passed=True, metrics={"immediately_consistent": True}),
        ]
        assert consistency_holds(results) is True
        results.append(ScenarioResult(name="poll", step=3, passed=False, metrics={"immediately_consistent": False}))
        assert consistency_holds(results) is False
