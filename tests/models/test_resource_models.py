# tests/models/test_resource_models.py

from datetime import datetime, timezone

import pytest

from costverify.core.exceptions import DegenerateInterval
from costverify.models.resources import ContainerResourceData, NamespaceAggregate, PodData, ResourceInterval


def at(hour):
    return datetime(2024, 1, 1, hour, tzinfo=timezone.utc)


def test_container_quantity_is_max_of_allocated_and_requested():
    assert ContainerResourceData(container="c", allocated=0.5, requested_average=1.0).quantity == 1.0
    assert ContainerResourceData(container="c", allocated=2.0).quantity == 2.0
    assert ContainerResourceData(container="c").quantity == 0.0
    assert ContainerResourceData(container="c", allocated=2.0, hours=1.5).quantity_hours == 3.0


def test_interval_widen_only_grows():
    interval = ResourceInterval(start=at(2), end=at(4))
    interval.widen(ResourceInterval(start=at(3), end=at(3)))
    assert (interval.start, interval.end) == (at(2), at(4))
    interval.widen(ResourceInterval(start=at(1), end=at(5)))
    assert interval.minutes == 240
    assert interval.hours == 4


def test_degenerate_interval():
    interval = ResourceInterval(start=at(3), end=at(3))
    assert interval.is_degenerate
    with pytest.raises(DegenerateInterval):
        interval.require_positive()


def test_pod_sums_container_averages():
    pod = PodData(
        namespace="ns",
        pod="p",
        interval=ResourceInterval(start=at(0), end=at(2)),
        containers={
            "app": ContainerResourceData(container="app", requested_average=1.0, limit_average=2.0, hours=2),
            "sidecar": ContainerResourceData(container="sidecar", allocated=0.5, usage_average=0.1, hours=2),
        },
    )
    assert pod.requested_average == 1.0
    assert pod.limit_average == 2.0
    assert pod.usage_average == 0.1
    assert pod.quantity_hours == 3.0
    assert pod.quantity_average == 1.5


def test_empty_namespace_aggregate():
    aggregate = NamespaceAggregate(namespace="ns")
    assert aggregate.minutes == 0.0
    assert aggregate.quantity_average == 0.0
