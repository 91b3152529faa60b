"""Prometheus metrics for event dispatch and record mapping.

Provides:
- Counters for dispatched events, handler failures and transform failures
- track_mapping(): Context manager for mapping duration and outcome
- record_dispatch() / record_handler_failure() / record_transform_failure()
"""

from __future__ import annotations

import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from prometheus_client import Counter, Histogram

from src.outbound.config import get_settings

# ── Dispatch Metrics ─────────────────────────────────────────────────────────

outbound_events_dispatched_total = Counter(
    "outbound_events_dispatched_total",
    "Total lifecycle events dispatched to handlers",
    ["event_key"],
)

outbound_handler_failures_total = Counter(
    "outbound_handler_failures_total",
    "Total event handler failures",
    ["event_key", "error_mode"],
)

# ── Mapping Metrics ──────────────────────────────────────────────────────────

outbound_transform_failures_total = Counter(
    "outbound_transform_failures_total",
    "Total field transform failures",
    ["phase"],
)

outbound_mapping_duration_seconds = Histogram(
    "outbound_mapping_duration_seconds",
    "Duration of a single record mapping in seconds",
    ["status"],
    buckets=(0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 2.5, 5.0, 10.0),
)


def _enabled() -> bool:
    return get_settings().OUTBOUND_METRICS_ENABLED


def record_dispatch(event_key: str) -> None:
    if _enabled():
        outbound_events_dispatched_total.labels(event_key=event_key).inc()


def record_handler_failure(event_key: str, error_mode: str) -> None:
    if _enabled():
        outbound_handler_failures_total.labels(
            event_key=event_key,
            error_mode=error_mode,
        ).inc()


def record_transform_failure(phase: str) -> None:
    if _enabled():
        outbound_transform_failures_total.labels(phase=phase).inc()


# ── Mapping Metrics Helper ───────────────────────────────────────────────────


@asynccontextmanager
async def track_mapping() -> AsyncGenerator[None, None]:
    """Context manager that records mapping duration.

    Usage:
        async with track_mapping():
            result = await _process_mapping(...)

    Records the duration under status "success" or "error" depending on
    whether the block raised.
    """
    start_time = time.perf_counter()
    status = "success"

    try:
        yield
    except Exception:
        status = "error"
        raise
    finally:
        if _enabled():
            outbound_mapping_duration_seconds.labels(status=status).observe(
                time.perf_counter() - start_time
            )
