"""
Composite scoring and ranking of resolver aggregates.

The score combines three sub-scores, each normalized to 0-100:
- Latency: 100 at 0ms, falling by 50 points per 100ms of average latency
- Success rate: percentage of attempts that succeeded
- Throughput: successful queries per second against a saturation QPS
"""

from .models import ResolverAggregate
from .statistics import calculate_qps

BASE_LATENCY_MS = 100.0
LATENCY_SCALE = 50.0
MAX_QPS = 100.0

LATENCY_WEIGHT = 0.4
SUCCESS_WEIGHT = 0.3
THROUGHPUT_WEIGHT = 0.3


def _clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


def latency_score(average_latency: float) -> float:
    return _clamp(100 - (average_latency / BASE_LATENCY_MS) * LATENCY_SCALE)


def throughput_score(qps: float) -> float:
    return _clamp((qps / MAX_QPS) * 100)


def calculate_score(aggregate: ResolverAggregate, session_duration_ms: float) -> float:
    """
    Compute the 0-100 composite score of an aggregate.

    QPS is recomputed from ``session_duration_ms`` so the throughput
    factor always covers the whole session, not a single probe.

    Args:
        aggregate: Resolver aggregate (not modified)
        session_duration_ms: Wall-clock duration of the session

    Returns:
        Score between 0 and 100
    """
    if aggregate.total_count == 0:
        return 0.0

    success_rate_score = (aggregate.success_count / aggregate.total_count) * 100
    qps = calculate_qps(aggregate.success_count, session_duration_ms)

    final = (
        latency_score(aggregate.average_latency) * LATENCY_WEIGHT
        + success_rate_score * SUCCESS_WEIGHT
        + throughput_score(qps) * THROUGHPUT_WEIGHT
    )
    return _clamp(final)


def rank_aggregates(aggregates: list[ResolverAggregate]) -> list[ResolverAggregate]:
    """Sort by score, highest first; equal scores keep their input order."""
    return sorted(aggregates, key=lambda a: a.score, reverse=True)
