"""Timed execution of a single backend call."""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional

from cmsprobe.evaluator.models import Measurement

logger = logging.getLogger(__name__)


async def timed(
    operation: str,
    action: Callable[[], Awaitable[Any]],
    *,
    timeout: Optional[float] = None,
    clock: Callable[[], float] = time.perf_counter,
) -> Measurement:
    """Run ``action`` once and return its Measurement.

    Failures are captured on the Measurement instead of being raised; the
    caller decides whether a failed call aborts anything. ``timeout`` bounds
    the call with ``asyncio.wait_for``.
    """
    started_at = datetime.now(timezone.utc)
    start = clock()
    try:
        if timeout is not None:
            value = await asyncio.wait_for(action(), timeout=timeout)
        else:
            value = await action()
    except asyncio.TimeoutError as exc:
        elapsed = _elapsed_ms(start, clock())
        # wait_for raises a bare TimeoutError; one raised by the action keeps its message.
        message = str(exc) or (f"timed out after {timeout:g}s" if timeout is not None else "timed out")
        logger.warning("%s %s", operation, message)
        return Measurement(operation, started_at, elapsed, succeeded=False, error=message)
    except Exception as exc:  # noqa: BLE001 - failures are folded into the measurement
        elapsed = _elapsed_ms(start, clock())
        message = str(exc) or exc.__class__.__name__
        logger.debug("%s failed after %sms: %s", operation, elapsed, message)
        return Measurement(operation, started_at, elapsed, succeeded=False, error=message)

    elapsed = _elapsed_ms(start, clock())
    return Measurement(operation, started_at, elapsed, succeeded=True, value=value)


def _elapsed_ms(start: float, end: float) -> int:
    return max(0, int(round((end - start) * 1000)))
