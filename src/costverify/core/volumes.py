# src/costverify/core/volumes.py
"""
Rebuilds persistent volume byte-hours and cost per pod from Prometheus results.

Volume lifetimes come from kube_persistentvolume_capacity_bytes and claim
lifetimes from kube_persistentvolumeclaim_info, both as [window:resolution]
subqueries. pod_pvc_allocation links pods to claims.

When several pods share a claim, its lifetime is cut into segments at every
point a pod starts or stops using it. Each segment is split evenly between
the pods active in it; segments with no pod belong to the namespace's
unmounted pseudo-pod. A pod's share is

    requested_bytes * pod_hours * sum(proportion * time)

where `time` is the segment length as a fraction of the claim's lifetime.
"""

import logging
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, NamedTuple, Optional, Set, Tuple

from ..models.prometheus import SampleSeries
from ..models.resources import PodData, ResourceInterval, VolumeAllocation
from ..models.volumes import (
    CoefficientComponent,
    NamespaceVolumeAggregate,
    PersistentVolumeClaimData,
    PersistentVolumeData,
    unmounted_pod_name,
)
from .aggregator import aggregate_volumes
from .exceptions import DegenerateInterval
from .intervals import calculate_interval
from .reconstructor import PodKey, build_pod_map

logger = logging.getLogger(__name__)

ClaimKey = Tuple[str, str]

UNMOUNTED_KEY: PodKey = ("__unmounted__", "__unmounted__")

# Capacities above 10 PiB are exporter glitches.
PV_USAGE_SANITY_LIMIT_BYTES = 10.0 * 1024.0**5


class IntervalPoint(NamedTuple):
    """The start or end of one pod's use of a claim."""

    time: datetime
    kind: str
    key: PodKey


def build_volume_map(
    runtime: Iterable[SampleSeries],
    resolution: timedelta,
    window: ResourceInterval,
    cost_per_gib_hour: Iterable[SampleSeries] = (),
    meta: Iterable[SampleSeries] = (),
    capacity: Iterable[SampleSeries] = (),
    now: Optional[datetime] = None,
) -> Dict[str, PersistentVolumeData]:
    """
    Creates one PersistentVolumeData per volume seen in `runtime`. Rates,
    provider ids and capacities are only attached to volumes that exist there.
    """
    volumes: Dict[str, PersistentVolumeData] = {}

    for series in runtime:
        name = series.label("persistentvolume")
        if not name or not series.points:
            logger.debug("Skipping volume runtime series without name or samples: %s", series.metric)
            continue
        interval = calculate_interval(series.points, resolution, window, now=now)
        volume = volumes.get(name)
        if volume is None:
            volumes[name] = PersistentVolumeData(name=name, interval=interval)
        else:
            volume.interval.widen(interval)

    for series in cost_per_gib_hour:
        name = series.label("persistentvolume")
        volume = volumes.get(name)
        if volume is None:
            logger.warning("PersistentVolume %s missing from kube_persistentvolume_capacity_bytes", name)
            continue
        if series.value is not None:
            volume.cost_per_gib_hour = series.value

    for series in meta:
        volume = volumes.get(series.label("persistentvolume"))
        provider_id = series.label("provider_id")
        if volume is not None and provider_id:
            volume.provider_id = provider_id

    for series in capacity:
        volume = volumes.get(series.label("persistentvolume"))
        if volume is None or series.value is None:
            continue
        capacity_bytes = series.value
        if capacity_bytes > PV_USAGE_SANITY_LIMIT_BYTES:
            logger.info("PV usage exceeds sanity limit, clamping to zero for %s", volume.name)
            capacity_bytes = 0.0
        volume.capacity_bytes = capacity_bytes

    logger.debug("Reconstructed %d volume(s).", len(volumes))
    return volumes


def build_claim_map(
    info: Iterable[SampleSeries],
    resolution: timedelta,
    window: ResourceInterval,
    volumes: Dict[str, PersistentVolumeData],
    requested: Iterable[SampleSeries] = (),
    now: Optional[datetime] = None,
) -> Dict[ClaimKey, PersistentVolumeClaimData]:
    """Creates one claim per (namespace, claim) bound to a known volume."""
    claims: Dict[ClaimKey, PersistentVolumeClaimData] = {}

    for series in info:
        claim_name = series.label("persistentvolumeclaim")
        volume_name = series.label("volumename")
        storage_class = series.label("storageclass")
        if not series.namespace or not claim_name or not volume_name or not storage_class:
            logger.debug("Skipping claim info series with missing labels: %s", series.metric)
            continue
        volume = volumes.get(volume_name)
        if volume is None or not series.points:
            continue

        volume.storage_class = storage_class
        claims[(series.namespace, claim_name)] = PersistentVolumeClaimData(
            namespace=series.namespace,
            claim=claim_name,
            volume=volume,
            interval=calculate_interval(series.points, resolution, window, now=now),
        )

    for series in requested:
        claim = claims.get((series.namespace, series.label("persistentvolumeclaim")))
        if claim is not None and series.value is not None:
            claim.requested_bytes = series.value

    return claims


def build_pod_claim_map(
    allocations: Iterable[SampleSeries],
    volumes: Dict[str, PersistentVolumeData],
    claims: Dict[ClaimKey, PersistentVolumeClaimData],
) -> Dict[PodKey, List[PersistentVolumeClaimData]]:
    """
    Lists the claims each pod mounted, marking those claims as mounted.
    """
    pod_claims: Dict[PodKey, List[PersistentVolumeClaimData]] = defaultdict(list)

    for series in allocations:
        volume_name = series.label("persistentvolume")
        claim_name = series.label("persistentvolumeclaim")
        if not series.namespace or not series.pod or not volume_name or not claim_name:
            logger.debug("Skipping pod claim series with missing labels: %s", series.metric)
            continue
        if volume_name not in volumes:
            logger.debug("Volume %s missing for pod claim %s/%s", volume_name, series.namespace, claim_name)

        claim = claims.get((series.namespace, claim_name))
        if claim is None:
            logger.debug("Claim %s/%s missing from kube_persistentvolumeclaim_info", series.namespace, claim_name)
            continue

        claim.mounted = True
        pod_claims[(series.namespace, series.pod)].append(claim)

    return dict(pod_claims)


def interval_points(windows: Dict[PodKey, ResourceInterval]) -> List[IntervalPoint]:
    """Start and end points of every window, in time order; starts sort before ends at the same instant."""
    points = []
    for key, interval in windows.items():
        points.append(IntervalPoint(interval.start, "start", key))
        points.append(IntervalPoint(interval.end, "end", key))
    points.sort(key=lambda p: (p.time, p.kind != "start"))
    return points


def claim_cost_coefficients(
    points: List[IntervalPoint],
    claim: PersistentVolumeClaimData,
    resolution: timedelta,
) -> Dict[PodKey, List[CoefficientComponent]]:
    """
    Splits the claim's lifetime between the pods in `points`.

    Raises:
        DegenerateInterval: if the claim has a lifetime of zero.
    """
    claim_minutes = claim.interval.minutes
    if claim_minutes <= 0:
        raise DegenerateInterval(f"claim {claim.namespace}/{claim.claim} has a window of zero duration")

    coefficients: Dict[PodKey, List[CoefficientComponent]] = defaultdict(list)
    active: Set[PodKey] = set()
    current = claim.interval.start

    for point in points:
        if point.time != current:
            share = (point.time - current).total_seconds() / 60 / claim_minutes
            if active:
                for key in active:
                    coefficients[key].append(CoefficientComponent(proportion=1.0 / len(active), time=share))
            else:
                coefficients[UNMOUNTED_KEY].append(CoefficientComponent(proportion=1.0, time=share))

        if point.kind == "start":
            active.add(point.key)
        else:
            active.discard(point.key)
        current = point.time

    if current < claim.interval.end:
        remaining = (claim.interval.end - current).total_seconds() / 60
        # gaps up to one resolution step are not charged
        if remaining > resolution.total_seconds() / 60:
            coefficients[UNMOUNTED_KEY].append(CoefficientComponent(proportion=1.0, time=remaining / claim_minutes))
        else:
            logger.debug("Claim %s/%s: ignoring %.1f unused minute(s)", claim.namespace, claim.claim, remaining)

    return dict(coefficients)


def coefficient(components: Iterable[CoefficientComponent]) -> float:
    return sum(c.proportion * c.time for c in components)


def get_unmounted_pod(pods: Dict[PodKey, PodData], namespace: str, window: ResourceInterval) -> PodData:
    """Returns the namespace's unmounted pseudo-pod, creating it over the whole window."""
    key = (namespace, unmounted_pod_name(namespace))
    pod = pods.get(key)
    if pod is None:
        pod = PodData(namespace=namespace, pod=key[1], interval=window.copy_interval())
        pods[key] = pod
    return pod


def apply_claim_costs(
    pods: Dict[PodKey, PodData],
    pod_claims: Dict[PodKey, List[PersistentVolumeClaimData]],
    resolution: timedelta,
    window: ResourceInterval,
) -> None:
    """Attaches each pod's share of every claim it mounted as a VolumeAllocation."""
    claim_windows: Dict[ClaimKey, Dict[PodKey, ResourceInterval]] = defaultdict(dict)
    claims: Dict[ClaimKey, PersistentVolumeClaimData] = {}

    for pod_key, pod in pods.items():
        for claim in pod_claims.get(pod_key, ()):
            start = max(pod.interval.start, claim.interval.start)
            end = min(pod.interval.end, claim.interval.end)
            if end < start:
                logger.debug("Pod %s/%s never overlapped claim %s", pod.namespace, pod.pod, claim.claim)
                continue
            claim_key = (claim.namespace, claim.claim)
            claims[claim_key] = claim
            claim_windows[claim_key][pod_key] = ResourceInterval(start=start, end=end)

    for claim_key, windows in claim_windows.items():
        claim = claims[claim_key]
        try:
            coefficients = claim_cost_coefficients(interval_points(windows), claim, resolution)
        except DegenerateInterval as e:
            logger.info("Skipping claim %s/%s: %s", claim.namespace, claim.claim, e)
            continue

        for pod_key, components in coefficients.items():
            pod = pods.get(pod_key) if pod_key != UNMOUNTED_KEY else None
            if pod is None:
                pod = get_unmounted_pod(pods, claim.namespace, window)

            hours = pod.interval.hours
            coef = coefficient(components)
            pod.volumes[claim.volume.name] = VolumeAllocation(
                byte_hours=claim.requested_bytes * hours * coef,
                cost=claim.volume.cost_per_gib_hour * claim.requested_gib * hours * coef,
                provider_id=claim.volume.provider_id,
            )


def apply_unmounted_costs(
    pods: Dict[PodKey, PodData],
    claims: Dict[ClaimKey, PersistentVolumeClaimData],
    window: ResourceInterval,
) -> None:
    """Charges claims no pod mounted to their namespace's unmounted pseudo-pod for the claim's lifetime."""
    for claim in claims.values():
        if claim.mounted:
            continue
        pod = get_unmounted_pod(pods, claim.namespace, window)
        hours = claim.interval.hours
        pod.volumes[claim.volume.name] = VolumeAllocation(
            byte_hours=claim.requested_bytes * hours,
            cost=claim.volume.cost_per_gib_hour * claim.requested_gib * hours,
            provider_id=claim.volume.provider_id,
        )


def reconstruct_volumes(
    liveness: Iterable[SampleSeries],
    resolution: timedelta,
    window: ResourceInterval,
    volume_runtime: Iterable[SampleSeries] = (),
    volume_cost: Iterable[SampleSeries] = (),
    volume_meta: Iterable[SampleSeries] = (),
    volume_capacity: Iterable[SampleSeries] = (),
    claim_info: Iterable[SampleSeries] = (),
    claim_requested: Iterable[SampleSeries] = (),
    pod_claims: Iterable[SampleSeries] = (),
    include_unmounted: bool = False,
    now: Optional[datetime] = None,
) -> Dict[str, NamespaceVolumeAggregate]:
    """Runs a full pass: pods, volumes, claims, pod shares, namespace rollup."""
    pods = build_pod_map(liveness, resolution, window, now=now)
    volumes = build_volume_map(
        volume_runtime,
        resolution,
        window,
        cost_per_gib_hour=volume_cost,
        meta=volume_meta,
        capacity=volume_capacity,
        now=now,
    )
    claims = build_claim_map(claim_info, resolution, window, volumes, requested=claim_requested, now=now)
    mounted = build_pod_claim_map(pod_claims, volumes, claims)

    apply_claim_costs(pods, mounted, resolution, window)
    if include_unmounted:
        apply_unmounted_costs(pods, claims, window)

    return aggregate_volumes(pods.values(), include_unmounted=include_unmounted)
