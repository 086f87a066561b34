# src/costverify/validation/resource_costs.py
"""
Cross-checks per-namespace CPU, RAM and GPU quantities reported by the
allocation API against values rebuilt from raw Prometheus metrics.

Methodology:
1. Query allocated, requested, limit and usage values by
   (container, pod, namespace, node), evaluated at the end of the window.
2. Query pod liveness as a [window:resolution] subquery to find each pod's
   first and last sample inside the window.
3. Per container, the charged quantity is max(allocated, requested average).
4. Roll containers into pods and pods into namespaces (hours summed,
   averages re-weighted by runtime).
5. Compare against /allocation aggregated by namespace within a tolerance.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from operator import attrgetter
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from ..collectors.allocation_client import AllocationClient
from ..collectors.prometheus_client import PrometheusClient
from ..core.config import config
from ..core.intervals import get_offset_adjusted_query_window, parse_duration, query_window
from ..core.reconstructor import reconstruct
from ..core.tolerance import are_within_percentage
from ..models.allocation import AllocationRequest, AllocationResponseItem
from ..models.comparison import ComparisonResult
from ..models.prometheus import QuerySpec
from ..models.resources import NamespaceAggregate
from ..utils.date_utils import to_unix

logger = logging.getLogger(__name__)

GROUP_BY = ["container", "pod", "namespace", "node"]
CONTAINER_IGNORE_FILTERS = {"container": ["", "POD"], "node": [""]}

# (allocation API field name, reconstructed value, API value)
FieldCheck = Tuple[str, Callable[[Any], float], Callable[[AllocationResponseItem], float]]


@dataclass(frozen=True)
class ResourceProfile:
    """Metric names, filters and API fields for one resource kind."""

    name: str
    allocated_metric: str
    request_filters: Dict[str, str]
    limit_filters: Optional[Dict[str, str]]
    usage_metric: str
    usage_functions: Tuple[str, ...]
    usage_ignore_filters: Dict[str, List[str]]
    checks: Tuple[FieldCheck, ...] = ()


PROFILES: Dict[str, ResourceProfile] = {
    "cpu": ResourceProfile(
        name="cpu",
        allocated_metric="container_cpu_allocation",
        request_filters={"resource": "cpu", "unit": "core"},
        limit_filters={"resource": "cpu", "unit": "core"},
        usage_metric="container_cpu_usage_seconds_total",
        usage_functions=("rate", "avg"),
        usage_ignore_filters=CONTAINER_IGNORE_FILTERS,
        checks=(
            ("cpuCores", attrgetter("quantity_average"), attrgetter("cpu_cores")),
            ("cpuCoreHours", attrgetter("quantity_hours"), attrgetter("cpu_core_hours")),
            ("cpuCoreRequestAverage", attrgetter("requested_average"), attrgetter("cpu_core_request_average")),
            ("cpuCoreLimitAverage", attrgetter("limit_average"), attrgetter("cpu_core_limit_average")),
            ("cpuCoreUsageAverage", attrgetter("usage_average"), attrgetter("cpu_core_usage_average")),
        ),
    ),
    "ram": ResourceProfile(
        name="ram",
        allocated_metric="container_memory_allocation_bytes",
        request_filters={"resource": "memory", "unit": "byte"},
        limit_filters={"resource": "memory", "unit": "byte"},
        usage_metric="container_memory_working_set_bytes",
        usage_functions=("avg_over_time", "avg"),
        usage_ignore_filters=CONTAINER_IGNORE_FILTERS,
        checks=(
            ("ramBytes", attrgetter("quantity_average"), attrgetter("ram_bytes")),
            ("ramByteHours", attrgetter("quantity_hours"), attrgetter("ram_byte_hours")),
            ("ramByteRequestAverage", attrgetter("requested_average"), attrgetter("ram_byte_request_average")),
            ("ramByteLimitAverage", attrgetter("limit_average"), attrgetter("ram_byte_limit_average")),
            ("ramByteUsageAverage", attrgetter("usage_average"), attrgetter("ram_byte_usage_average")),
        ),
    ),
    "gpu": ResourceProfile(
        name="gpu",
        allocated_metric="container_gpu_allocation",
        request_filters={"resource": "nvidia_com_gpu"},
        limit_filters=None,
        usage_metric="DCGM_FI_PROF_GR_ENGINE_ACTIVE",
        usage_functions=("avg_over_time", "avg"),
        usage_ignore_filters={"container": [""]},
        checks=(
            ("gpuHours", attrgetter("quantity_hours"), attrgetter("gpu_hours")),
            ("gpuRequestAverage", attrgetter("requested_average"), attrgetter("gpu_request_average")),
            ("gpuUsageAverage", attrgetter("usage_average"), attrgetter("gpu_usage_average")),
        ),
    ),
}


def get_profile(resource: str) -> ResourceProfile:
    try:
        return PROFILES[resource.lower()]
    except KeyError:
        raise ValueError(f"Unknown resource '{resource}'. Choose one of: {', '.join(PROFILES)}") from None


def build_query_specs(
    profile: ResourceProfile, window_range: str, resolution: str, eval_time: int
) -> Dict[str, QuerySpec]:
    """The independent queries one comparison needs, keyed by role."""
    specs = {
        "liveness": QuerySpec(
            metric="kube_pod_container_status_running",
            not_equal_to="0",
            functions=["avg"],
            group_by=GROUP_BY,
            aggregate_window=window_range,
            aggregate_resolution=resolution,
            eval_time=eval_time,
        ),
        "allocated": QuerySpec(
            metric=profile.allocated_metric,
            ignore_filters=CONTAINER_IGNORE_FILTERS,
            functions=["avg_over_time", "avg"],
            group_by=GROUP_BY,
            window=window_range,
            eval_time=eval_time,
        ),
        "requested": QuerySpec(
            metric="kube_pod_container_resource_requests",
            filters=profile.request_filters,
            ignore_filters=CONTAINER_IGNORE_FILTERS,
            functions=["avg_over_time", "avg"],
            group_by=GROUP_BY,
            window=window_range,
            eval_time=eval_time,
        ),
        "usage": QuerySpec(
            metric=profile.usage_metric,
            ignore_filters=profile.usage_ignore_filters,
            functions=list(profile.usage_functions),
            group_by=GROUP_BY + ["instance"],
            window=window_range,
            eval_time=eval_time,
        ),
    }
    if profile.limit_filters is not None:
        specs["limits"] = QuerySpec(
            metric="kube_pod_container_resource_limits",
            filters=profile.limit_filters,
            ignore_filters=CONTAINER_IGNORE_FILTERS,
            functions=["avg_over_time", "avg"],
            group_by=GROUP_BY,
            window=window_range,
            eval_time=eval_time,
        )
    return specs


def compare_fields(
    resource: str,
    namespace: str,
    checks: Sequence[FieldCheck],
    aggregate: Any,
    item: AllocationResponseItem,
    tolerance: float,
    negligible: float,
) -> List[ComparisonResult]:
    """Compares every field in `checks` whose API value is above `negligible`."""
    results = []
    for field_name, prom_getter, api_getter in checks:
        api_value = api_getter(item)
        if api_value <= negligible:
            logger.debug("Namespace %s: %s=%s is negligible, not compared", namespace, field_name, api_value)
            continue
        prom_value = prom_getter(aggregate)
        passed, diff_percent = are_within_percentage(prom_value, api_value, tolerance)
        results.append(
            ComparisonResult(
                resource=resource,
                namespace=namespace,
                field=field_name,
                prometheus_value=prom_value,
                api_value=api_value,
                diff_percent=diff_percent,
                tolerance=tolerance,
                passed=passed,
            )
        )
    return results


def compare_namespace(
    profile: ResourceProfile,
    namespace: str,
    aggregate: NamespaceAggregate,
    item: AllocationResponseItem,
    tolerance: float,
    negligible: float,
) -> List[ComparisonResult]:
    return compare_fields(profile.name, namespace, profile.checks, aggregate, item, tolerance, negligible)


async def collect_aggregates(
    profile: ResourceProfile,
    window: str,
    resolution: str,
    prometheus: PrometheusClient,
    now: Optional[datetime] = None,
) -> Dict[str, NamespaceAggregate]:
    """Issues the Prometheus queries concurrently and rebuilds namespace aggregates."""
    bounds = query_window(window, now=now)
    window_range = get_offset_adjusted_query_window(window, resolution)
    specs = build_query_specs(profile, window_range, resolution, to_unix(bounds.end))

    roles = list(specs)
    responses = dict(zip(roles, await prometheus.run_queries([specs[role] for role in roles])))

    return reconstruct(
        responses["liveness"].result,
        parse_duration(resolution),
        bounds,
        allocated=responses["allocated"].result,
        requested=responses["requested"].result,
        limits=responses["limits"].result if "limits" in responses else (),
        usage=responses["usage"].result,
        now=now,
    )


async def validate_resource_costs(
    resource: str,
    window: str = "24h",
    prometheus: Optional[PrometheusClient] = None,
    allocation: Optional[AllocationClient] = None,
    resolution: Optional[str] = None,
    tolerance: Optional[float] = None,
    negligible: Optional[float] = None,
    min_runtime_minutes: Optional[float] = None,
    now: Optional[datetime] = None,
    namespaces: Optional[Sequence[str]] = None,
) -> List[ComparisonResult]:
    """
    Runs the comparison for one resource kind and returns one result per
    compared (namespace, field). Clients not passed in are created from
    configuration and closed before returning.

    Raises:
        TransportError: if Prometheus or the allocation API fails.
    """
    profile = get_profile(resource)
    resolution = resolution or config.QUERY_RESOLUTION
    tolerance = config.COMPARISON_TOLERANCE if tolerance is None else tolerance
    negligible = config.NEGLIGIBLE_VALUE if negligible is None else negligible
    min_runtime_minutes = config.SHORT_LIVED_RUNTIME_MINUTES if min_runtime_minutes is None else min_runtime_minutes

    owned = []
    if prometheus is None:
        prometheus = PrometheusClient()
        owned.append(prometheus)
    if allocation is None:
        allocation = AllocationClient()
        owned.append(allocation)

    try:
        api_response = await allocation.get_allocation(
            AllocationRequest(window=window, aggregate="namespace", accumulate="true")
        )
        aggregates = await collect_aggregates(profile, window, resolution, prometheus, now=now)
    finally:
        for client in owned:
            await client.close()

    results: List[ComparisonResult] = []
    for namespace, item in api_response.first_set().items():
        if namespace.startswith("__"):
            # __idle__ and __unallocated__ have no pods to rebuild
            continue
        if namespaces and namespace not in namespaces:
            continue
        aggregate = aggregates.get(namespace)
        if aggregate is None:
            logger.info("[Skipped] Namespace %s: no running pods found in Prometheus", namespace)
            continue
        if aggregate.minutes < min_runtime_minutes:
            logger.info(
                "[Skipped] Namespace %s: RunTime %.1f less than %.1f minutes",
                namespace,
                aggregate.minutes,
                min_runtime_minutes,
            )
            continue
        results.extend(compare_namespace(profile, namespace, aggregate, item, tolerance, negligible))

    failed = sum(1 for r in results if not r.passed)
    logger.info("%s comparison: %d check(s), %d failure(s)", profile.name, len(results), failed)
    return results
