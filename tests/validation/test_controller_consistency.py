# tests/validation/test_controller_consistency.py
"""
Tests for comparing controller-owned pods between Prometheus and the allocation API.
"""

import pytest
import respx
from httpx import Response

from costverify.core.exceptions import TransportError
from costverify.models.allocation import AllocationResponse
from costverify.models.comparison import ControllerConsistencyResult
from costverify.validation.controller_consistency import (
    allocation_controller_kind,
    allocation_pods,
    validate_controller_consistency,
)

QUERY_URL = "http://prometheus.test:9090/api/v1/query"
ALLOCATION_URL = "http://opencost.test:9003/allocation"


def _owned(*pods):
    return {
        "status": "success",
        "data": {
            "resultType": "vector",
            "result": [{"metric": {"pod": pod, "namespace": ns}, "value": [1, "1"]} for pod, ns in pods],
        },
    }


def _allocations(*pods):
    return {
        "code": 200,
        "data": [{pod: {"name": pod, "properties": {"namespace": ns, "pod": pod}} for pod, ns in pods}],
    }


@pytest.mark.parametrize(
    "kind, expected",
    [("DaemonSet", "daemonset"), ("ReplicaSet", "deployment"), ("StatefulSet", "statefulset")],
)
def test_allocation_controller_kind(kind, expected):
    assert allocation_controller_kind(kind) == expected


def test_allocation_pods_skip_unnamed_entries():
    response = AllocationResponse.model_validate(
        {
            "code": 200,
            "data": [
                {
                    "web-1": {"name": "web-1", "properties": {"namespace": "prod"}},
                    "": {"name": "stray"},
                    "nameless": {"properties": {"namespace": "prod"}},
                },
                None,
            ],
        }
    )
    assert allocation_pods(response) == {"web-1": "prod"}


def test_result_classification():
    result = ControllerConsistencyResult(
        controller_kind="StatefulSet",
        window="1h",
        prometheus_pods={"db-0": "prod", "db-1": "prod", "cache-0": "infra"},
        allocation_pods={"db-0": "prod", "cache-0": "prod", "ghost-0": "prod"},
    )
    assert result.missing_in_prometheus == ["ghost-0"]
    assert result.missing_in_allocation == ["db-1"]
    assert result.namespace_mismatches == ["cache-0"]
    assert result.matched == 2
    assert not result.passed


def test_result_without_matches_fails():
    result = ControllerConsistencyResult(controller_kind="DaemonSet", window="1h", prometheus_pods={"ds-a": "kube"})
    assert result.missing_in_prometheus == []
    assert not result.passed


@pytest.mark.asyncio
@respx.mock
async def test_validate_controller_consistency_end_to_end():
    def prometheus(request):
        query = request.url.params["query"]
        if 'owner_kind="DaemonSet"' in query:
            return Response(200, json=_owned(("ds-a", "kube-system"), ("ds-b", "monitoring")))
        return Response(200, json=_owned(("api-1", "prod")))

    def allocation(request):
        if request.url.params["filter"] == 'controllerKind:"daemonset"':
            return Response(200, json=_allocations(("ds-a", "kube-system")))
        return Response(200, json=_allocations(("api-1", "staging")))

    prom_route = respx.get(url__startswith=QUERY_URL).mock(side_effect=prometheus)
    alloc_route = respx.get(url__startswith=ALLOCATION_URL).mock(side_effect=allocation)

    results = await validate_controller_consistency(windows=["1h", "12h"], controller_kinds=["DaemonSet", "ReplicaSet"])

    assert [(r.controller_kind, r.window) for r in results] == [
        ("DaemonSet", "1h"),
        ("DaemonSet", "12h"),
        ("ReplicaSet", "1h"),
        ("ReplicaSet", "12h"),
    ]
    assert prom_route.call_count == 4
    assert prom_route.calls[1].request.url.params["query"] == (
        'max_over_time(kube_pod_owner{owner_kind="DaemonSet"}[12h])'
    )
    params = alloc_route.calls[2].request.url.params
    assert params["aggregate"] == "pod"
    assert params["accumulate"] == "true"
    assert params["window"] == "1h"
    assert params["filter"] == 'controllerKind:"deployment"'

    daemonset, _, replicaset, _ = results
    assert daemonset.passed
    assert daemonset.missing_in_allocation == ["ds-b"]
    assert not replicaset.passed
    assert replicaset.namespace_mismatches == ["api-1"]


@pytest.mark.asyncio
async def test_validate_controller_consistency_without_prometheus_pods_raises():
    with respx.mock(assert_all_called=False) as router:
        router.get(url__startswith=QUERY_URL).mock(return_value=Response(200, json=_owned()))
        alloc_route = router.get(url__startswith=ALLOCATION_URL).mock(return_value=Response(200, json=_allocations()))

        with pytest.raises(TransportError, match="no StatefulSet pods"):
            await validate_controller_consistency(windows=["10m"], controller_kinds=["StatefulSet"])

        assert not alloc_route.called
