"""
Statistics accumulation for DoH probe results.

Aggregates are updated incrementally, once per completed attempt:
- Latency list with a sentinel value for failed attempts
- Success and total counters
- Average latency over successful attempts only
- Queries per second over the session so far
"""

import math

import numpy as np

from .models import LatencySummary, ProbeOutcome, ResolverAggregate

# Latency recorded for a failed attempt, larger than any real measurement
SENTINEL_LATENCY = 9999.0


def calculate_average_latency(latencies: list[float]) -> float:
    """
    Mean of the latencies below the sentinel.

    Returns 0.0 for an empty list and the sentinel itself when every
    value is a failure marker.
    """
    if not latencies:
        return 0.0

    values = np.asarray(latencies, dtype=float)
    valid = values[values < SENTINEL_LATENCY]
    if valid.size == 0:
        return SENTINEL_LATENCY
    return float(np.mean(valid))


def calculate_qps(success_count: int, duration_ms: float) -> float:
    """Successful queries per second over ``duration_ms``."""
    if duration_ms <= 0:
        return 0.0
    qps = success_count / (duration_ms / 1000)
    if not math.isfinite(qps):
        return 0.0
    return qps


def record(
    aggregate: ResolverAggregate,
    outcome: ProbeOutcome,
    session_duration_ms: float,
) -> None:
    """
    Apply one completed attempt to a resolver's aggregate.

    Must be called exactly once per attempt cycle (a success, or the
    failure left after retries are exhausted), never per retry.

    Args:
        aggregate: Aggregate to update in place
        outcome: Result of the attempt
        session_duration_ms: Time elapsed since the session started
    """
    if outcome.is_success:
        aggregate.latencies.append(float(outcome.latency_ms))
        aggregate.success_count += 1
    else:
        aggregate.latencies.append(SENTINEL_LATENCY)
        if outcome.reason is not None:
            key = outcome.reason.value
            aggregate.failure_reasons[key] = aggregate.failure_reasons.get(key, 0) + 1

    aggregate.total_count += 1
    aggregate.average_latency = calculate_average_latency(aggregate.latencies)
    aggregate.qps = calculate_qps(aggregate.success_count, session_duration_ms)


def summarize(aggregate: ResolverAggregate) -> LatencySummary:
    """
    Latency distribution over the successful attempts of an aggregate.

    Args:
        aggregate: Resolver aggregate

    Returns:
        LatencySummary, all zeros when nothing succeeded
    """
    values = np.asarray(aggregate.latencies, dtype=float)
    latencies = values[values < SENTINEL_LATENCY]

    if latencies.size == 0:
        return LatencySummary()

    # Jitter: average difference between consecutive successful queries
    if latencies.size > 1:
        jitter = float(np.mean(np.abs(np.diff(latencies))))
    else:
        jitter = 0.0

    return LatencySummary(
        min_latency=float(np.min(latencies)),
        max_latency=float(np.max(latencies)),
        median_latency=float(np.median(latencies)),
        p95_latency=float(np.percentile(latencies, 95)),
        stddev_latency=float(np.std(latencies)),
        jitter_ms=jitter,
    )
