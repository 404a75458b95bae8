"""Prerequisite checklist: required configuration and service reachability."""

from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Tuple

from cmsprobe.backends import CMSClient
from cmsprobe.config import Settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ServiceCheck:
    name: str
    reachable: bool
    latency_ms: int
    detail: str = ""


@dataclass
class PrerequisiteReport:
    env_vars: Dict[str, bool] = field(default_factory=dict)
    services: List[ServiceCheck] = field(default_factory=list)

    @property
    def missing(self) -> List[str]:
        missing = [name for name, present in self.env_vars.items() if not present]
        missing.extend(check.name for check in self.services if not check.reachable)
        return missing

    @property
    def all_passed(self) -> bool:
        return not self.missing

    def to_dict(self) -> Dict[str, Any]:
        return {
            "env_vars": dict(self.env_vars),
            "services": [asdict(check) for check in self.services],
            "missing": self.missing,
            "all_passed": self.all_passed,
        }


class PrerequisiteChecker:
    """Report what is missing before any scenario runs; never raises."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    def check_environment(self) -> Dict[str, bool]:
        values = {
            "GITHUB_OWNER": self._settings.github_owner,
            "GITHUB_REPO": self._settings.github_repo,
            "GITHUB_PERSONAL_ACCESS_TOKEN": self._settings.github_personal_access_token,
            "NEXTAUTH_SECRET": self._settings.nextauth_secret,
        }
        present = {name: bool(value) for name, value in values.items()}
        for name, ok in present.items():
            if ok:
                logger.info("✓ %s is set", name)
            else:
                logger.warning("✗ %s is missing", name)
        return present

    async def run(self, cms: CMSClient) -> PrerequisiteReport:
        services: List[Tuple[str, Callable[[], Awaitable[bool]]]] = [
            ("CMS site", cms.check_site),
            ("CMS GraphQL API", cms.check_api),
        ]
        report = PrerequisiteReport(env_vars=self.check_environment())
        for name, check in services:
            start = time.perf_counter()
            reachable = await check()
            latency = max(0, int(round((time.perf_counter() - start) * 1000)))
            if reachable:
                logger.info("✓ %s reachable in %sms", name, latency)
                detail = "reachable"
            else:
                logger.warning("✗ %s is not reachable", name)
                detail = "unreachable"
            report.services.append(ServiceCheck(name=name, reachable=reachable, latency_ms=latency, detail=detail))

        if report.all_passed:
            logger.info("All prerequisites met")
        else:
            logger.warning("Missing prerequisites: %s", ", ".join(report.missing))
        return report
