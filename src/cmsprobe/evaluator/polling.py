"""Delayed polling used to check that a new resource is visible right away."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional, Sequence, Tuple

from cmsprobe.evaluator.models import Measurement, PollAttempt
from cmsprobe.evaluator.timing import timed

logger = logging.getLogger(__name__)

DEFAULT_DELAYS_MS: Tuple[int, ...] = (50, 100, 500, 1000, 2000)

Query = Callable[[str], Awaitable[Tuple[bool, Measurement]]]
Lookup = Callable[[str], Awaitable[bool]]
Sleep = Callable[[float], Awaitable[None]]


def probe(operation: str, lookup: Lookup, *, timeout: Optional[float] = None) -> Query:
    """Adapt a ``lookup(identifier) -> bool`` coroutine into a timed query."""

    async def query(identifier: str) -> Tuple[bool, Measurement]:
        measurement = await timed(operation, lambda: lookup(identifier), timeout=timeout)
        found = bool(measurement.value) if measurement.succeeded else False
        return found, measurement

    return query


async def poll_for_resource(
    identifier: str,
    query: Query,
    delays_ms: Sequence[int] = DEFAULT_DELAYS_MS,
    *,
    sleep: Sleep = asyncio.sleep,
) -> List[PollAttempt]:
    """Query ``identifier`` once after each delay, strictly in order."""
    delays = list(delays_ms)
    if any(later < earlier for earlier, later in zip(delays, delays[1:])):
        raise ValueError(f"poll delays must be non-decreasing: {delays}")

    attempts: List[PollAttempt] = []
    for delay in delays:
        await sleep(delay / 1000)
        found, measurement = await query(identifier)
        attempts.append(PollAttempt(delay_ms=delay, measurement=measurement, found=found))
        if measurement.succeeded:
            logger.info(
                "  %s %s after %sms (%sms)",
                "✓" if found else "✗",
                identifier,
                delay,
                measurement.duration_ms,
            )
        else:
            logger.warning("  ✗ %s after %sms: %s", identifier, delay, measurement.error)
    return attempts


def is_immediately_consistent(attempts: Sequence[PollAttempt]) -> bool:
    """True when every attempt after the first found the resource.

    The shortest delay may miss; everything after it must succeed.
    """
    if not attempts:
        return False
    return all(attempt.found for attempt in attempts[1:]) and (len(attempts) > 1 or attempts[0].found)
