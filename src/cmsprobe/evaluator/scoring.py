"""Derived metrics and pass/fail rules shared by every scenario."""

from __future__ import annotations

import math
from typing import Iterable, Optional, Sequence

from cmsprobe.evaluator.models import Measurement, PollAttempt, ScenarioResult
from cmsprobe.evaluator.polling import is_immediately_consistent

# Five-minute propagation delay of the hosted Git API cache.
BASELINE_DELAY_MS = 300_000
IMPROVEMENT_THRESHOLD = 90
REAL_TIME_THRESHOLD_MS = 1000


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves up."""
    return int(math.floor(value + 0.5))


def average_ms(values: Iterable[float]) -> Optional[int]:
    items = list(values)
    if not items:
        return None
    return round_half_up(sum(items) / len(items))


def average_duration(measurements: Iterable[Measurement], *, successful_only: bool = False) -> Optional[int]:
    return average_ms(m.duration_ms for m in measurements if m.succeeded or not successful_only)


def percent_improvement(average_duration_ms: float, baseline_ms: int = BASELINE_DELAY_MS) -> int:
    """Improvement of ``average_duration_ms`` over ``baseline_ms`` in whole percent."""
    if baseline_ms <= 0:
        raise ValueError("baseline must be positive")
    return round_half_up((baseline_ms - average_duration_ms) * 100 / baseline_ms)


def relative_improvement(candidate_ms: Optional[int], reference_ms: Optional[int]) -> Optional[int]:
    """How much faster ``candidate_ms`` is than ``reference_ms``, in percent."""
    if candidate_ms is None or not reference_ms:
        return None
    return percent_improvement(candidate_ms, reference_ms)


def consistency_metrics(sequences: Sequence[Sequence[PollAttempt]]) -> dict:
    """Metrics for a step that polled one or more resources."""
    flags = [is_immediately_consistent(attempts) for attempts in sequences]
    return {
        "poll_sequences": len(flags),
        "consistent_sequences": sum(flags),
        "immediately_consistent": bool(flags) and all(flags),
    }


def consistency_holds(results: Sequence[ScenarioResult]) -> bool:
    """Every step that polled must have been immediately consistent."""
    return all(
        result.metrics["immediately_consistent"]
        for result in results
        if "immediately_consistent" in result.metrics
    )


def scenario_passed(improvement: Optional[int], consistent: bool) -> bool:
    return improvement is not None and improvement > IMPROVEMENT_THRESHOLD and consistent
