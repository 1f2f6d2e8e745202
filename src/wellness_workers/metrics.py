"""In-memory worker metrics.

Asyncio is single-threaded, so plain dicts are safe; no locking needed.
"""

import time

_start_time = time.monotonic()

_metrics: dict = {
    "recomputes_completed": 0,
    "recomputes_failed": 0,
    "source_failures": {},
    "handlers": {},
}


def record_handler_invocation(handler_name: str, duration_ms: float, success: bool) -> None:
    """Record a single handler invocation with timing."""
    h = _metrics["handlers"].setdefault(handler_name, {
        "invocations": 0,
        "successes": 0,
        "failures": 0,
        "total_duration_ms": 0.0,
    })
    h["invocations"] += 1
    h["total_duration_ms"] += duration_ms
    if success:
        h["successes"] += 1
    else:
        h["failures"] += 1


def record_recompute_completed() -> None:
    _metrics["recomputes_completed"] += 1


def record_recompute_failed() -> None:
    _metrics["recomputes_failed"] += 1


def record_source_failure(pillar: str) -> None:
    """Count a pillar query that failed and was treated as empty."""
    failures = _metrics["source_failures"]
    failures[pillar] = failures.get(pillar, 0) + 1


def get_metrics() -> dict:
    """Return a snapshot of current metrics."""
    return {
        "uptime_seconds": round(time.monotonic() - _start_time, 1),
        "recomputes_completed": _metrics["recomputes_completed"],
        "recomputes_failed": _metrics["recomputes_failed"],
        "source_failures": dict(_metrics["source_failures"]),
        "handlers": {
            name: dict(stats)
            for name, stats in _metrics["handlers"].items()
        },
    }
