"""Common data models for evaluator scenarios."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union


class ScenarioState(str, Enum):
    NOT_STARTED = "not_started"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class ResourceKind(str, Enum):
    COMMIT = "commit"
    BRANCH = "branch"


@dataclass(frozen=True)
class Measurement:
    operation: str
    started_at: datetime
    duration_ms: int
    succeeded: bool
    error: Optional[str] = None
    value: Any = field(default=None, compare=False, repr=False)

    def __post_init__(self) -> None:
        if self.duration_ms < 0:
            raise ValueError("duration_ms must be non-negative")
        if not self.succeeded and not self.error:
            raise ValueError("failed measurements require an error message")

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "operation": self.operation,
            "started_at": self.started_at.isoformat(),
            "duration_ms": self.duration_ms,
            "succeeded": self.succeeded,
        }
        if self.error:
            payload["error"] = self.error
        return payload


@dataclass(frozen=True)
class PollAttempt:
    delay_ms: int
    measurement: Measurement
    found: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "delay_ms": self.delay_ms,
            "found": self.found,
            "measurement": self.measurement.to_dict(),
        }


Attempt = Union[PollAttempt, Measurement]


@dataclass(frozen=True)
class ScenarioResult:
    name: str
    step: Optional[int]
    passed: bool
    attempts: Tuple[Attempt, ...] = ()
    metrics: Dict[str, Any] = field(default_factory=dict)
    details: List[str] = field(default_factory=list)

    @property
    def is_summary(self) -> bool:
        return self.step is None

    @property
    def measurements(self) -> List[Measurement]:
        return [item.measurement if isinstance(item, PollAttempt) else item for item in self.attempts]

    @property
    def poll_attempts(self) -> List[PollAttempt]:
        return [item for item in self.attempts if isinstance(item, PollAttempt)]

    @property
    def duration_ms(self) -> int:
        return sum(measurement.duration_ms for measurement in self.measurements)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "step": self.step,
            "passed": self.passed,
            "duration_ms": self.duration_ms,
            "metrics": self.metrics,
            "details": self.details,
            "attempts": [item.to_dict() for item in self.attempts],
        }


@dataclass(frozen=True)
class TransientResource:
    kind: ResourceKind
    identifier: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    branch: Optional[str] = None
    path: Optional[str] = None

    @property
    def label(self) -> str:
        return f"{self.kind.value}:{self.identifier}"


@dataclass(frozen=True)
class CleanupRecord:
    resource: TransientResource
    succeeded: bool
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"resource": self.resource.label, "succeeded": self.succeeded}
        if self.error:
            payload["error"] = self.error
        return payload


@dataclass(frozen=True)
class ReportSummary:
    total_steps: int
    successful_steps: int
    failed_steps: int
    total_duration_ms: int
    average_step_duration_ms: int
    percent_improvement: Optional[int]
    immediately_consistent: bool
    overall_passed: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_steps": self.total_steps,
            "successful_steps": self.successful_steps,
            "failed_steps": self.failed_steps,
            "total_duration_ms": self.total_duration_ms,
            "average_step_duration_ms": self.average_step_duration_ms,
            "percent_improvement": self.percent_improvement,
            "immediately_consistent": self.immediately_consistent,
            "overall_passed": self.overall_passed,
        }


@dataclass
class ReportDocument:
    scenario: str
    title: str
    timestamp: str
    environment: Dict[str, Any]
    state: ScenarioState
    results: List[ScenarioResult]
    summary: ReportSummary
    recommendation: str
    cleanup: List[CleanupRecord] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def steps(self) -> List[ScenarioResult]:
        return [result for result in self.results if not result.is_summary]

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "scenario": self.scenario,
            "title": self.title,
            "timestamp": self.timestamp,
            "environment": self.environment,
            "state": self.state.value,
            "results": [result.to_dict() for result in self.results],
            "summary": self.summary.to_dict(),
            "recommendation": self.recommendation,
            "cleanup": [record.to_dict() for record in self.cleanup],
        }
        if self.error:
            payload["error"] = self.error
        return payload
