"""
Timing helpers for observability.

Responsibilities:
- Measure durations using monotonic time (immune to clock changes)
- Emit one METRIC_TIMER event per measurement via observability.logger
- Prevent timer leaks: the timer is always stopped by the context manager

Event timestamps (ts_ms) stay wall-clock for log correlation.
"""

from __future__ import annotations

import time
from contextlib import contextmanager
from typing import Any, Iterator

from observability.logger import log_event, now_ms


@contextmanager
def timed(
    name: str,
    *,
    session_id: str | None = None,
    details: dict[str, Any] | None = None,
) -> Iterator[dict[str, Any]]:
    """
    Measure the duration of the enclosed block.

    Yields a mutable dict; keys added to it inside the block are merged
    into the emitted event's details (e.g. the outcome of a request).

    Usage:
        with timed("credential_fetch", session_id=sid) as extra:
            credential = await source.fetch()
            extra["degraded"] = credential.degraded

    Exceptions inside the block are not suppressed; the metric is still
    emitted, with "failed": true.
    """
    extra: dict[str, Any] = {}
    start_ns = time.monotonic_ns()
    failed = False
    try:
        yield extra
    except BaseException:
        failed = True
        raise
    finally:
        duration_ms = (time.monotonic_ns() - start_ns) // 1_000_000
        log_event({
            "ts_ms": now_ms(),
            "event_type": "METRIC_TIMER",
            "metric": name,
            "value_ms": duration_ms,
            "session_id": session_id,
            "failed": failed,
            "details": {**(details or {}), **extra},
        })
