"""Lifecycle of the branches, files and commits created during a run."""

from __future__ import annotations

import logging
import re
import time
from typing import Awaitable, Callable, List, Optional

from cmsprobe.evaluator.models import CleanupRecord, ResourceKind, TransientResource

logger = logging.getLogger(__name__)

Deleter = Callable[[TransientResource], Awaitable[None]]


def unique_name(prefix: str, *, suffix: Optional[str] = None) -> str:
    """Return ``prefix-<millis>`` so concurrent runs never reuse a name."""
    stamp = str(int(time.time() * 1000))
    base = re.sub(r"[^A-Za-z0-9._-]+", "-", prefix).strip("-")
    name = f"{base}-{stamp}"
    return f"{name}{suffix}" if suffix else name


class TransientResourceTracker:
    """Record created resources and delete all of them on scope exit.

    Used as ``async with tracker:`` around a scenario's steps. Every
    registered resource gets exactly one cleanup attempt, in reverse
    creation order, whether or not the steps raised. Deletion failures are
    logged as warnings and recorded, never raised.
    """

    def __init__(self, deleter: Deleter) -> None:
        self._deleter = deleter
        self._resources: List[TransientResource] = []
        self.records: List[CleanupRecord] = []
        self._closed = False

    @property
    def resources(self) -> List[TransientResource]:
        return list(self._resources)

    def track(self, resource: TransientResource) -> TransientResource:
        if self._closed:
            raise RuntimeError("tracker already cleaned up")
        self._resources.append(resource)
        logger.debug("Tracking %s", resource.label)
        return resource

    def track_branch(self, name: str) -> TransientResource:
        return self.track(TransientResource(kind=ResourceKind.BRANCH, identifier=name))

    def track_commit(self, sha: str, path: str, branch: str) -> TransientResource:
        """Track a commit that added ``path``; cleanup removes the file again."""
        return self.track(TransientResource(kind=ResourceKind.COMMIT, identifier=sha, branch=branch, path=path))

    async def __aenter__(self) -> "TransientResourceTracker":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.cleanup()

    async def cleanup(self) -> List[CleanupRecord]:
        if self._closed:
            return self.records
        self._closed = True
        if not self._resources:
            logger.info("No transient resources to clean up")
            return self.records

        logger.info("Cleaning up %s transient resource(s)", len(self._resources))
        for resource in reversed(self._resources):
            try:
                await self._deleter(resource)
            except Exception as exc:  # noqa: BLE001 - cleanup is best effort
                message = str(exc) or exc.__class__.__name__
                logger.warning("⚠ Could not delete %s: %s", resource.label, message)
                self.records.append(CleanupRecord(resource=resource, succeeded=False, error=message))
            else:
                logger.info("✓ Deleted %s", resource.label)
                self.records.append(CleanupRecord(resource=resource, succeeded=True))

        cleaned = len([record for record in self.records if record.succeeded])
        logger.info("Cleaned up %s/%s transient resource(s)", cleaned, len(self._resources))
        return self.records
