# src/costverify/core/reconstructor.py
"""
Rebuilds per-pod and per-container resource quantities from Prometheus results.

Pod intervals come from a liveness range query
(avg(kube_pod_container_status_running{} != 0) by (...)[window:resolution]).
Allocated, requested, limit and usage values come from instant queries
grouped by (container, pod, namespace, node). The liveness pass must run
first: averages only become hours once the pod's runtime is known.

Partially labelled series are expected during scrape races; they are skipped
with a log line instead of failing the pass.
"""

import logging
from datetime import datetime, timedelta
from typing import Dict, Iterable, Optional, Tuple

from ..models.prometheus import SampleSeries
from ..models.resources import ContainerResourceData, NamespaceAggregate, PodData, ResourceInterval
from .aggregator import aggregate_pods
from .exceptions import DegenerateInterval
from .intervals import calculate_interval

logger = logging.getLogger(__name__)

PodKey = Tuple[str, str]


def build_pod_map(
    liveness: Iterable[SampleSeries],
    resolution: timedelta,
    window: ResourceInterval,
    now: Optional[datetime] = None,
) -> Dict[PodKey, PodData]:
    """
    Creates one PodData per (namespace, pod). Several series for the same pod
    (one per container) widen its interval; they never narrow it.
    """
    pods: Dict[PodKey, PodData] = {}
    skipped = 0

    for series in liveness:
        if not series.namespace or not series.pod:
            logger.debug("Skipping liveness series without namespace/pod labels: %s", series.metric)
            skipped += 1
            continue
        if not series.points:
            logger.debug("Skipping liveness series for %s/%s with no valid samples", series.namespace, series.pod)
            skipped += 1
            continue

        interval = calculate_interval(series.points, resolution, window, now=now)
        key = (series.namespace, series.pod)
        pod = pods.get(key)
        if pod is None:
            pods[key] = PodData(namespace=series.namespace, pod=series.pod, interval=interval)
        else:
            pod.interval.widen(interval)

    if skipped:
        logger.info("Skipped %d liveness series with missing labels or samples.", skipped)
    logger.debug("Reconstructed %d pod interval(s).", len(pods))
    return pods


def _container_for(
    pods: Dict[PodKey, PodData], series: SampleSeries, source: str
) -> Optional[Tuple[PodData, ContainerResourceData, float]]:
    """
    Resolves the pod and container a series belongs to, creating the container
    entry on first sight. Returns None when the series must be skipped.
    """
    if not series.namespace or not series.pod or not series.container:
        logger.debug("Skipping %s series with missing labels: %s", source, series.metric)
        return None

    pod = pods.get((series.namespace, series.pod))
    if pod is None:
        logger.debug("No interval for %s/%s, skipping %s value", series.namespace, series.pod, source)
        return None

    try:
        pod.interval.require_positive()
    except DegenerateInterval as e:
        logger.warning("Namespace %s, pod %s: %s; skipping %s value", pod.namespace, pod.pod, e, source)
        return None

    value = series.mean()
    if value is None:
        logger.warning("%s series for %s/%s/%s has no valid samples", source, pod.namespace, pod.pod, series.container)
        return None

    container = pod.containers.get(series.container)
    if container is None:
        container = ContainerResourceData(container=series.container, hours=pod.interval.hours)
        pod.containers[series.container] = container
    return pod, container, value


def apply_allocated(pods: Dict[PodKey, PodData], results: Iterable[SampleSeries]) -> None:
    for series in results:
        resolved = _container_for(pods, series, "allocated")
        if resolved:
            _, container, value = resolved
            container.allocated = value


def apply_requested(pods: Dict[PodKey, PodData], results: Iterable[SampleSeries]) -> None:
    for series in results:
        resolved = _container_for(pods, series, "requested")
        if resolved:
            _, container, value = resolved
            container.requested_average = value


def apply_limits(pods: Dict[PodKey, PodData], results: Iterable[SampleSeries]) -> None:
    for series in results:
        resolved = _container_for(pods, series, "limit")
        if resolved:
            _, container, value = resolved
            container.limit_average = value


def apply_usage(pods: Dict[PodKey, PodData], results: Iterable[SampleSeries]) -> None:
    """
    Usage series may be split by extra labels (e.g. instance); values for the
    same container are summed.
    """
    for series in results:
        resolved = _container_for(pods, series, "usage")
        if resolved:
            _, container, value = resolved
            container.usage_average = (container.usage_average or 0.0) + value


def reconstruct(
    liveness: Iterable[SampleSeries],
    resolution: timedelta,
    window: ResourceInterval,
    allocated: Iterable[SampleSeries] = (),
    requested: Iterable[SampleSeries] = (),
    limits: Iterable[SampleSeries] = (),
    usage: Iterable[SampleSeries] = (),
    now: Optional[datetime] = None,
) -> Dict[str, NamespaceAggregate]:
    """Runs a full pass: intervals, container folds, namespace rollup."""
    pods = build_pod_map(liveness, resolution, window, now=now)
    apply_allocated(pods, allocated)
    apply_requested(pods, requested)
    apply_limits(pods, limits)
    apply_usage(pods, usage)
    return aggregate_pods(pods.values())
