# src/costverify/core/aggregator.py
"""
Combines per-pod quantities into per-namespace rollups.

Aggregation rules:
- Hour-denominated quantities (core-hours, byte-hours) are summed; the hours
  already encode duration.
- Averages (requests, limits, usage) are relative to each unit's own
  lifetime. They are expanded back to raw totals (average * minutes), summed,
  and divided by the minutes of the union interval.
- Volume byte-hours and costs are summed per namespace. Shares held by the
  unmounted pseudo-pod are tracked separately.
"""

import logging
from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Tuple

from ..models.resources import NamespaceAggregate, PodData, ResourceInterval
from ..models.volumes import NamespaceVolumeAggregate, unmounted_pod_name

logger = logging.getLogger(__name__)


class AverageAccumulator:
    """
    Merges averages that were taken over different time ranges.

    Accumulators can be merged with each other in any grouping and yield the
    same average as adding every unit to one accumulator.
    """

    def __init__(self):
        self.raw_total = 0.0
        self.interval: Optional[ResourceInterval] = None

    def add(self, average: float, interval: ResourceInterval) -> "AverageAccumulator":
        self.raw_total += average * interval.minutes
        self._widen(interval)
        return self

    def merge(self, other: "AverageAccumulator") -> "AverageAccumulator":
        self.raw_total += other.raw_total
        self._widen(other.interval)
        return self

    def _widen(self, interval: Optional[ResourceInterval]) -> None:
        if interval is None:
            return
        if self.interval is None:
            self.interval = interval.copy_interval()
        else:
            self.interval.widen(interval)

    @property
    def minutes(self) -> float:
        return self.interval.minutes if self.interval else 0.0

    @property
    def average(self) -> float:
        minutes = self.minutes
        if minutes <= 0:
            return 0.0
        return self.raw_total / minutes


def merge_averages(pairs: Iterable[Tuple[float, ResourceInterval]]) -> Tuple[float, Optional[ResourceInterval]]:
    """Merges (average, interval) pairs; returns the merged average and the union interval."""
    acc = AverageAccumulator()
    for average, interval in pairs:
        acc.add(average, interval)
    return acc.average, acc.interval


def aggregate_pods(pods: Iterable[PodData]) -> Dict[str, NamespaceAggregate]:
    """
    Rolls pods up into one NamespaceAggregate per namespace.

    Pods with a zero-length interval contribute nothing: their hours are zero
    and their averages have no denominator.
    """
    groups: Dict[str, List[PodData]] = defaultdict(list)
    for pod in pods:
        groups[pod.namespace].append(pod)

    result: Dict[str, NamespaceAggregate] = {}
    for namespace, items in groups.items():
        requested = AverageAccumulator()
        limits = AverageAccumulator()
        usage = AverageAccumulator()
        quantity_hours = 0.0
        pod_count = 0

        for pod in items:
            if pod.interval.is_degenerate:
                logger.info("Namespace %s: pod %s has a run duration of 0 minutes, skipping", namespace, pod.pod)
                continue
            pod_count += 1
            quantity_hours += pod.quantity_hours
            requested.add(pod.requested_average, pod.interval)
            limits.add(pod.limit_average, pod.interval)
            usage.add(pod.usage_average, pod.interval)

        result[namespace] = NamespaceAggregate(
            namespace=namespace,
            interval=requested.interval,
            pod_count=pod_count,
            quantity_hours=quantity_hours,
            requested_average=requested.average,
            limit_average=limits.average,
            usage_average=usage.average,
        )

    return result


def aggregate_volumes(pods: Iterable[PodData], include_unmounted: bool = False) -> Dict[str, NamespaceVolumeAggregate]:
    """
    Sums each namespace's volume shares. The unmounted pseudo-pod's shares
    count towards `byte_hours` and `cost` only when `include_unmounted` is set.
    """
    result: Dict[str, NamespaceVolumeAggregate] = {}
    for pod in pods:
        if not pod.volumes:
            continue
        aggregate = result.get(pod.namespace)
        if aggregate is None:
            aggregate = result[pod.namespace] = NamespaceVolumeAggregate(namespace=pod.namespace)

        byte_hours = sum(v.byte_hours for v in pod.volumes.values())
        cost = sum(v.cost for v in pod.volumes.values())
        if pod.pod == unmounted_pod_name(pod.namespace):
            aggregate.unmounted_byte_hours += byte_hours
            aggregate.unmounted_cost += cost
            if not include_unmounted:
                continue
        else:
            aggregate.pod_count += 1
        aggregate.byte_hours += byte_hours
        aggregate.cost += cost

    return result
