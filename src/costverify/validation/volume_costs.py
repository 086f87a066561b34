# src/costverify/validation/volume_costs.py
"""
Cross-checks per-namespace persistent volume byte-hours and cost reported by
the allocation API against values rebuilt from raw Prometheus metrics.

Methodology:
1. Pod lifetimes, volume lifetimes and claim lifetimes come from
   [window:resolution] subqueries evaluated at the end of the window.
2. Volume rates (pv_hourly_cost is per GiB-hour), capacities, claim requests
   and pod-to-claim links come from avg_over_time instant queries.
3. Each claim's lifetime is shared between the pods that mounted it, see
   costverify.core.volumes.
4. Pod shares are summed per namespace and compared with /allocation
   aggregated by namespace.
"""

import logging
from datetime import datetime
from operator import attrgetter
from typing import Dict, List, Optional, Sequence, Tuple

from ..collectors.allocation_client import AllocationClient
from ..collectors.prometheus_client import PrometheusClient
from ..core.config import config
from ..core.intervals import get_offset_adjusted_query_window, parse_duration, query_window
from ..core.volumes import reconstruct_volumes
from ..models.allocation import AllocationRequest
from ..models.comparison import ComparisonResult
from ..models.prometheus import QuerySpec
from ..models.volumes import NamespaceVolumeAggregate
from ..utils.date_utils import to_unix
from .resource_costs import FieldCheck, compare_fields

logger = logging.getLogger(__name__)

RESOURCE = "pv"

PV_CHECKS: Tuple[FieldCheck, ...] = (
    ("pvByteHours", attrgetter("byte_hours"), attrgetter("pv_byte_hours")),
    ("pvCost", attrgetter("cost"), attrgetter("persistent_volume_cost")),
)


def build_volume_query_specs(window_range: str, resolution: str, eval_time: int) -> Dict[str, QuerySpec]:
    """The independent queries the volume comparison needs, keyed by role."""

    def subquery(metric: str, group_by: List[str], **kwargs) -> QuerySpec:
        return QuerySpec(
            metric=metric,
            functions=["avg"],
            group_by=group_by,
            aggregate_window=window_range,
            aggregate_resolution=resolution,
            eval_time=eval_time,
            **kwargs,
        )

    def window_average(metric: str, group_by: List[str]) -> QuerySpec:
        return QuerySpec(
            metric=metric,
            functions=["avg_over_time", "avg"],
            group_by=group_by,
            window=window_range,
            eval_time=eval_time,
        )

    return {
        "liveness": subquery("kube_pod_container_status_running", ["pod", "namespace"], not_equal_to="0"),
        "volume_runtime": subquery("kube_persistentvolume_capacity_bytes", ["persistentvolume"]),
        "volume_capacity": window_average("kube_persistentvolume_capacity_bytes", ["persistentvolume"]),
        "volume_cost": window_average("pv_hourly_cost", ["persistentvolume", "volumename", "provider_id"]),
        "volume_meta": window_average("kubecost_pv_info", ["storageclass", "persistentvolume", "provider_id"]),
        "claim_info": subquery(
            "kube_persistentvolumeclaim_info",
            ["persistentvolumeclaim", "storageclass", "volumename", "namespace"],
            ignore_filters={"volumename": [""]},
        ),
        "claim_requested": window_average(
            "kube_persistentvolumeclaim_resource_requests_storage_bytes", ["persistentvolumeclaim", "namespace"]
        ),
        "pod_claims": window_average(
            "pod_pvc_allocation", ["persistentvolume", "persistentvolumeclaim", "pod", "namespace"]
        ),
    }


async def collect_volume_aggregates(
    window: str,
    resolution: str,
    prometheus: PrometheusClient,
    include_unmounted: bool = False,
    now: Optional[datetime] = None,
) -> Dict[str, NamespaceVolumeAggregate]:
    """Issues the Prometheus queries concurrently and rebuilds namespace volume totals."""
    bounds = query_window(window, now=now)
    window_range = get_offset_adjusted_query_window(window, resolution)
    specs = build_volume_query_specs(window_range, resolution, to_unix(bounds.end))

    roles = list(specs)
    responses = dict(zip(roles, await prometheus.run_queries([specs[role] for role in roles])))

    return reconstruct_volumes(
        responses["liveness"].result,
        parse_duration(resolution),
        bounds,
        volume_runtime=responses["volume_runtime"].result,
        volume_cost=responses["volume_cost"].result,
        volume_meta=responses["volume_meta"].result,
        volume_capacity=responses["volume_capacity"].result,
        claim_info=responses["claim_info"].result,
        claim_requested=responses["claim_requested"].result,
        pod_claims=responses["pod_claims"].result,
        include_unmounted=include_unmounted,
        now=now,
    )


async def validate_pv_costs(
    window: str = "24h",
    prometheus: Optional[PrometheusClient] = None,
    allocation: Optional[AllocationClient] = None,
    resolution: Optional[str] = None,
    tolerance: Optional[float] = None,
    negligible: Optional[float] = None,
    include_unmounted: bool = False,
    now: Optional[datetime] = None,
    namespaces: Optional[Sequence[str]] = None,
) -> List[ComparisonResult]:
    """
    Runs the persistent volume comparison and returns one result per
    compared (namespace, field). Clients not passed in are created from
    configuration and closed before returning.

    Raises:
        TransportError: if Prometheus or the allocation API fails.
    """
    resolution = resolution or config.QUERY_RESOLUTION
    tolerance = config.PV_COMPARISON_TOLERANCE if tolerance is None else tolerance
    negligible = config.NEGLIGIBLE_VALUE if negligible is None else negligible

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
        aggregates = await collect_volume_aggregates(
            window, resolution, prometheus, include_unmounted=include_unmounted, now=now
        )
    finally:
        for client in owned:
            await client.close()

    results: List[ComparisonResult] = []
    for namespace, item in api_response.first_set().items():
        if namespace.startswith("__"):
            continue
        if namespaces and namespace not in namespaces:
            continue
        aggregate = aggregates.get(namespace)
        if aggregate is None:
            if item.pvs:
                logger.info("[Skipped] Namespace %s: no mounted volumes found in Prometheus", namespace)
            continue
        results.extend(compare_fields(RESOURCE, namespace, PV_CHECKS, aggregate, item, tolerance, negligible))

    failed = sum(1 for r in results if not r.passed)
    logger.info("%s comparison: %d check(s), %d failure(s)", RESOURCE, len(results), failed)
    return results
