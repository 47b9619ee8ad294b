"""Tests for composite scoring and ranking."""

import pytest

from dohrank.models import Resolver, ResolverAggregate
from dohrank.scoring import calculate_score, rank_aggregates
from dohrank.statistics import SENTINEL_LATENCY


def make_aggregate(
    average_latency=50.0,
    success_count=3,
    total_count=4,
    identifier="r",
    score=0.0,
):
    return ResolverAggregate(
        resolver=Resolver(identifier, identifier.upper(), f"https://{identifier}.test/dns-query"),
        latencies=[average_latency] * success_count
        + [SENTINEL_LATENCY] * (total_count - success_count),
        success_count=success_count,
        total_count=total_count,
        average_latency=average_latency,
        score=score,
    )


def test_no_attempts_scores_zero():
    assert calculate_score(make_aggregate(success_count=0, total_count=0), 1000) == 0.0


def test_all_failures_score_zero():
    agg = make_aggregate(average_latency=SENTINEL_LATENCY, success_count=0, total_count=3)
    assert calculate_score(agg, 1000) == 0.0


def test_weighted_sum():
    # latency 100 - 50/100*50 = 75, success 75, throughput 3 qps -> 3
    agg = make_aggregate(average_latency=50.0, success_count=3, total_count=4)
    expected = 75 * 0.4 + 75 * 0.3 + 3 * 0.3
    assert calculate_score(agg, 1000) == pytest.approx(expected)


def test_score_is_clamped_to_100():
    agg = make_aggregate(average_latency=0.0, success_count=4, total_count=4)
    assert calculate_score(agg, 1) == pytest.approx(100.0)


def test_score_does_not_mutate_aggregate():
    agg = make_aggregate()
    calculate_score(agg, 1000)
    assert agg.score == 0.0
    assert agg.qps == 0.0


def test_monotonic_in_average_latency():
    scores = [
        calculate_score(make_aggregate(average_latency=lat), 1000)
        for lat in (5, 20, 50, 100, 150, 199, 250, 1000)
    ]
    assert scores == sorted(scores, reverse=True)


def test_monotonic_in_success_rate():
    scores = [
        calculate_score(make_aggregate(success_count=s, total_count=10), 60_000)
        for s in range(1, 11)
    ]
    assert scores == sorted(scores)


def test_rank_orders_by_score_descending():
    aggs = [
        make_aggregate(identifier="a", score=10),
        make_aggregate(identifier="b", score=90),
        make_aggregate(identifier="c", score=50),
    ]
    assert [a.resolver.identifier for a in rank_aggregates(aggs)] == ["b", "c", "a"]


def test_rank_keeps_input_order_for_ties():
    aggs = [
        make_aggregate(identifier="a", score=42.5),
        make_aggregate(identifier="b", score=80.0),
        make_aggregate(identifier="c", score=42.5),
        make_aggregate(identifier="d", score=42.5),
    ]
    assert [a.resolver.identifier for a in rank_aggregates(aggs)] == ["b", "a", "c", "d"]
