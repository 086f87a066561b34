# tests/core/test_aggregator.py
"""
Tests for merging averages over different time ranges and namespace rollups.
"""

from datetime import datetime, timezone

import pytest

from costverify.core.aggregator import AverageAccumulator, aggregate_pods, merge_averages
from costverify.models.resources import ContainerResourceData, PodData, ResourceInterval


def ts(hour, minute=0):
    return datetime(2024, 1, 1, hour, minute, tzinfo=timezone.utc)


def interval(start, end):
    return ResourceInterval(start=start, end=end)


def test_merge_averages_weights_by_runtime():
    average, union = merge_averages(
        [
            (2.0, interval(ts(0), ts(0, 30))),
            (4.0, interval(ts(0, 30), ts(1, 30))),
        ]
    )
    assert average == pytest.approx(300 / 90)
    assert union.start == ts(0)
    assert union.end == ts(1, 30)


def test_merge_averages_uses_union_not_sum_of_durations():
    # Two overlapping units of 1.0 each for the same hour -> 2.0 over one hour
    average, union = merge_averages([(1.0, interval(ts(0), ts(1))), (1.0, interval(ts(0), ts(1)))])
    assert average == pytest.approx(2.0)
    assert union.minutes == 60


def test_merge_averages_empty():
    assert merge_averages([]) == (0.0, None)


def test_accumulator_merge_is_associative():
    units = [
        (1.0, interval(ts(0), ts(2))),
        (3.0, interval(ts(1), ts(4))),
        (0.5, interval(ts(6), ts(7))),
    ]

    flat = AverageAccumulator()
    for avg, iv in units:
        flat.add(avg, iv)

    left = AverageAccumulator().add(*units[0]).add(*units[1])
    right = AverageAccumulator().add(*units[2])
    grouped = left.merge(right)

    assert grouped.average == pytest.approx(flat.average)
    assert grouped.interval == flat.interval


def test_accumulator_does_not_mutate_added_intervals():
    first = interval(ts(0), ts(1))
    AverageAccumulator().add(1.0, first).add(1.0, interval(ts(2), ts(3)))
    assert first.end == ts(1)


def _pod(namespace, name, start, end, **containers):
    hours = (end - start).total_seconds() / 3600
    return PodData(
        namespace=namespace,
        pod=name,
        interval=interval(start, end),
        containers={
            c: ContainerResourceData(container=c, allocated=v, requested_average=v, usage_average=v / 2, hours=hours)
            for c, v in containers.items()
        },
    )


def test_aggregate_pods_sums_hours_and_reweights_averages():
    pods = [
        _pod("ns", "a", ts(0), ts(0, 30), app=2.0),
        _pod("ns", "b", ts(0, 30), ts(1, 30), app=1.0, sidecar=3.0),
        _pod("other", "c", ts(0), ts(1), app=1.0),
    ]

    result = aggregate_pods(pods)

    ns = result["ns"]
    assert ns.pod_count == 2
    assert ns.quantity_hours == pytest.approx(2.0 * 0.5 + 4.0 * 1.0)
    assert ns.requested_average == pytest.approx(300 / 90)
    assert ns.usage_average == pytest.approx(150 / 90)
    assert ns.minutes == pytest.approx(90)
    assert ns.quantity_average == pytest.approx(5.0 / 1.5)
    assert result["other"].quantity_hours == pytest.approx(1.0)


def test_aggregate_pods_is_additive_across_namespaces():
    a = [_pod("ns", "a", ts(0), ts(2), app=1.0)]
    b = [_pod("ns", "b", ts(1), ts(3), app=2.0)]
    together = aggregate_pods(a + b)["ns"]
    assert together.quantity_hours == pytest.approx(
        aggregate_pods(a)["ns"].quantity_hours + aggregate_pods(b)["ns"].quantity_hours
    )


def test_aggregate_pods_skips_degenerate_pods():
    pods = [
        _pod("ns", "live", ts(0), ts(1), app=1.0),
        _pod("ns", "instant", ts(5), ts(5), app=100.0),
    ]
    ns = aggregate_pods(pods)["ns"]
    assert ns.pod_count == 1
    assert ns.requested_average == pytest.approx(1.0)
    assert ns.interval.end == ts(1)
