# tests/validation/test_volume_costs.py
"""
End-to-end tests for the persistent volume comparison.
Prometheus and the allocation API are mocked with respx.
"""

from datetime import datetime, timezone

import pytest
import respx
from httpx import Response

from costverify.core.query_builder import build_query
from costverify.validation.volume_costs import build_volume_query_specs, validate_pv_costs

QUERY_URL = "http://prometheus.test:9090/api/v1/query"
ALLOCATION_URL = "http://opencost.test:9003/allocation"
NOW = datetime(2024, 1, 2, 0, 30, tzinfo=timezone.utc)
GIB = 1024**3


def unix(day, hour, minute=0):
    return int(datetime(2024, 1, day, hour, minute, tzinfo=timezone.utc).timestamp())


def _vector(*series):
    return {"status": "success", "data": {"resultType": "vector", "result": list(series)}}


def _matrix(*series):
    return {"status": "success", "data": {"resultType": "matrix", "result": list(series)}}


def _sample(value, **labels):
    return {"metric": labels, "value": [unix(2, 1), str(value)]}


def _span(start, end, **labels):
    return {"metric": labels, "values": [[start, "1"], [end, "1"]]}


# prod/db mounts claim "data" for 12h; claim "old" is never mounted.
VOLUME_RESPONSES = {
    "kube_pod_container_status_running": _matrix(_span(unix(1, 2), unix(1, 14), namespace="prod", pod="db")),
    "kube_persistentvolumeclaim_info": _matrix(
        _span(
            unix(1, 2),
            unix(1, 14),
            namespace="prod",
            persistentvolumeclaim="data",
            volumename="pv-data",
            storageclass="standard",
        ),
        _span(
            unix(1, 1),
            unix(1, 5),
            namespace="prod",
            persistentvolumeclaim="old",
            volumename="pv-old",
            storageclass="standard",
        ),
    ),
    "kube_persistentvolumeclaim_resource_requests_storage_bytes": _vector(
        _sample(10 * GIB, namespace="prod", persistentvolumeclaim="data"),
        _sample(2 * GIB, namespace="prod", persistentvolumeclaim="old"),
    ),
    "pv_hourly_cost": _vector(
        _sample(0.01, persistentvolume="pv-data", volumename="pv-data", provider_id="disk-1"),
        _sample(0.01, persistentvolume="pv-old", volumename="pv-old", provider_id="disk-2"),
    ),
    "kubecost_pv_info": _vector(
        _sample(1, persistentvolume="pv-data", provider_id="disk-1", storageclass="standard"),
    ),
    "pod_pvc_allocation": _vector(
        _sample(1, namespace="prod", pod="db", persistentvolume="pv-data", persistentvolumeclaim="data"),
    ),
}

VOLUME_RUNTIME = _matrix(
    _span(unix(1, 1), unix(1, 23), persistentvolume="pv-data"),
    _span(unix(1, 1), unix(1, 23), persistentvolume="pv-old"),
)
VOLUME_CAPACITY = _vector(
    _sample(10 * GIB, persistentvolume="pv-data"),
    _sample(2 * GIB, persistentvolume="pv-old"),
)

ALLOCATIONS = {
    "code": 200,
    "data": [
        {
            "prod": {
                "name": "prod",
                "pvByteHours": 120 * GIB,
                "pvs": {"cluster=default-cluster:name=pv-data": {"byteHours": 120 * GIB, "cost": 1.25}},
            },
            "web": {"name": "web", "pvByteHours": 0.0},
            "__unmounted__": {"name": "__unmounted__", "pvByteHours": 8 * GIB},
        }
    ],
}


def _prometheus_router(request):
    query = request.url.params["query"]
    if "kube_persistentvolume_capacity_bytes{" in query:
        return Response(200, json=VOLUME_CAPACITY if "avg_over_time(" in query else VOLUME_RUNTIME)
    for metric, payload in VOLUME_RESPONSES.items():
        if f"{metric}{{" in query:
            return Response(200, json=payload)
    return Response(200, json=_vector())


@pytest.fixture
def mocked_apis():
    with respx.mock(assert_all_called=False) as router:
        prom = router.get(url__startswith=QUERY_URL).mock(side_effect=_prometheus_router)
        alloc = router.get(url__startswith=ALLOCATION_URL).mock(return_value=Response(200, json=ALLOCATIONS))
        yield prom, alloc


@pytest.mark.asyncio
async def test_validate_pv_end_to_end(mocked_apis):
    prom_route, alloc_route = mocked_apis

    results = await validate_pv_costs(window="24h", now=NOW)

    assert alloc_route.calls.last.request.url.params["aggregate"] == "namespace"
    assert prom_route.call_count == 8
    assert {c.request.url.params["time"] for c in prom_route.calls} == {str(unix(2, 1))}

    by_field = {r.field: r for r in results}
    assert {r.namespace for r in results} == {"prod"}
    assert {r.resource for r in results} == {"pv"}
    assert by_field["pvByteHours"].prometheus_value == pytest.approx(120 * GIB)
    assert by_field["pvByteHours"].passed
    # 0.01 per GiB-hour * 10 GiB * 12h
    assert by_field["pvCost"].prometheus_value == pytest.approx(1.2)
    assert by_field["pvCost"].tolerance == 0.05
    assert by_field["pvCost"].passed


@pytest.mark.asyncio
async def test_validate_pv_with_unmounted_claims(mocked_apis):
    results = await validate_pv_costs(window="24h", now=NOW, include_unmounted=True)

    by_field = {r.field: r for r in results}
    # claim "old": 2 GiB for 4h
    assert by_field["pvByteHours"].prometheus_value == pytest.approx(128 * GIB)
    assert not by_field["pvByteHours"].passed
    assert by_field["pvCost"].prometheus_value == pytest.approx(1.28)
    assert by_field["pvCost"].passed


@pytest.mark.asyncio
async def test_validate_pv_filters_namespaces(mocked_apis):
    assert await validate_pv_costs(window="24h", now=NOW, namespaces=["web"]) == []


def test_volume_query_specs():
    specs = build_volume_query_specs("1440m", "1m", 1700000000)

    assert {spec.eval_time for spec in specs.values()} == {1700000000}
    assert build_query(specs["volume_runtime"]) == (
        "avg(kube_persistentvolume_capacity_bytes{}) by (persistentvolume)[1440m:1m]"
    )
    assert build_query(specs["claim_info"]) == (
        'avg(kube_persistentvolumeclaim_info{volumename!=""}) '
        "by (persistentvolumeclaim, storageclass, volumename, namespace)[1440m:1m]"
    )
    assert build_query(specs["pod_claims"]) == (
        "avg(avg_over_time(pod_pvc_allocation{}[1440m])) "
        "by (persistentvolume, persistentvolumeclaim, pod, namespace)"
    )
    assert build_query(specs["liveness"]) == (
        "avg(kube_pod_container_status_running{} != 0) by (pod, namespace)[1440m:1m]"
    )
