# src/costverify/validation/controller_consistency.py
"""
Checks that the pods the allocation API attributes to a controller kind are
the pods Prometheus saw owned by that kind, in the same namespaces.
"""

import logging
from typing import Dict, List, Optional, Sequence

from ..collectors.allocation_client import AllocationClient
from ..collectors.prometheus_client import PrometheusClient
from ..models.allocation import AllocationRequest, AllocationResponse
from ..models.comparison import ControllerConsistencyResult

logger = logging.getLogger(__name__)

CONTROLLER_KINDS = ("DaemonSet", "ReplicaSet", "StatefulSet")

# ReplicaSet-owned pods are attributed to their Deployment by the allocation API.
_ALLOCATION_KINDS = {"ReplicaSet": "deployment"}


def allocation_controller_kind(controller_kind: str) -> str:
    return _ALLOCATION_KINDS.get(controller_kind, controller_kind.lower())


def allocation_pods(response: AllocationResponse) -> Dict[str, str]:
    """{pod: namespace} over every allocation set in `response`."""
    pods: Dict[str, str] = {}
    for allocation_set in response.data:
        for key, item in (allocation_set or {}).items():
            if not key or not item.name:
                continue
            namespace = item.properties.namespace if item.properties else ""
            pods[item.name] = namespace
    return pods


async def check_controller_pods(
    controller_kind: str,
    window: str,
    prometheus: PrometheusClient,
    allocation: AllocationClient,
) -> ControllerConsistencyResult:
    """
    Raises:
        TransportError: if either source fails, or Prometheus has no pods of this kind.
    """
    prometheus_pods = await prometheus.get_pods_by_controller(controller_kind, window)

    kind_filter = allocation_controller_kind(controller_kind)
    response = await allocation.get_allocation(
        AllocationRequest(window=window, aggregate="pod", accumulate="true", filter=f'controllerKind:"{kind_filter}"')
    )

    result = ControllerConsistencyResult(
        controller_kind=controller_kind,
        window=window,
        prometheus_pods=prometheus_pods,
        allocation_pods=allocation_pods(response),
    )
    for pod in result.missing_in_prometheus:
        logger.warning("%s pod %s from allocation data not found in Prometheus (window: %s)", controller_kind, pod, window)
    for pod in result.namespace_mismatches:
        logger.warning(
            "Namespace mismatch for %s pod %s (window: %s): Prometheus=%s, Allocation=%s",
            controller_kind,
            pod,
            window,
            result.prometheus_pods[pod],
            result.allocation_pods[pod],
        )
    if result.missing_in_allocation:
        logger.info(
            "%s pods in Prometheus but not in allocation (window: %s): %s",
            controller_kind,
            window,
            ", ".join(result.missing_in_allocation),
        )
    logger.info(
        "Found %d %s pods in Prometheus and %d matching pods in allocation data (window: %s)",
        len(result.prometheus_pods),
        controller_kind,
        result.matched,
        window,
    )
    return result


async def validate_controller_consistency(
    windows: Sequence[str] = ("24h",),
    controller_kinds: Sequence[str] = CONTROLLER_KINDS,
    prometheus: Optional[PrometheusClient] = None,
    allocation: Optional[AllocationClient] = None,
) -> List[ControllerConsistencyResult]:
    """
    Runs the check for every (controller kind, window) pair in order. Clients
    not passed in are created from configuration and closed before returning.

    Raises:
        TransportError: if either source fails, or Prometheus has no pods of a kind.
    """
    owned = []
    if prometheus is None:
        prometheus = PrometheusClient()
        owned.append(prometheus)
    if allocation is None:
        allocation = AllocationClient()
        owned.append(allocation)

    results: List[ControllerConsistencyResult] = []
    try:
        for controller_kind in controller_kinds:
            for window in windows:
                results.append(await check_controller_pods(controller_kind, window, prometheus, allocation))
    finally:
        for client in owned:
            await client.close()

    failed = sum(1 for r in results if not r.passed)
    logger.info("controller consistency: %d check(s), %d failure(s)", len(results), failed)
    return results
