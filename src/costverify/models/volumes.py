# src/costverify/models/volumes.py
"""
Persistent volume and claim models used to rebuild PV byte-hours and cost.
"""

from typing import NamedTuple

from pydantic import BaseModel, Field

from .resources import ResourceInterval

GIB = 1024.0**3


class PersistentVolumeData(BaseModel):
    """A persistent volume as seen through kube-state-metrics and the cost model."""

    name: str
    interval: ResourceInterval
    cost_per_gib_hour: float = Field(0.0, description="From pv_hourly_cost")
    capacity_bytes: float = 0.0
    provider_id: str = ""
    storage_class: str = ""


class PersistentVolumeClaimData(BaseModel):
    """
    A claim bound to a known volume. `mounted` is set once any pod is seen
    using the claim.
    """

    namespace: str
    claim: str
    volume: PersistentVolumeData
    interval: ResourceInterval
    requested_bytes: float = 0.0
    mounted: bool = False

    @property
    def requested_gib(self) -> float:
        return self.requested_bytes / GIB


class CoefficientComponent(NamedTuple):
    """
    One segment of a claim's lifetime: `time` is the segment length as a
    fraction of the claim's lifetime, `proportion` the share each pod active
    during the segment pays.
    """

    proportion: float
    time: float


class NamespaceVolumeAggregate(BaseModel):
    """
    PV byte-hours and cost of one namespace. Costs of claims no pod mounted
    are kept apart since the allocation API usually reports them outside the
    namespace.
    """

    namespace: str
    pod_count: int = 0
    byte_hours: float = 0.0
    cost: float = 0.0
    unmounted_byte_hours: float = 0.0
    unmounted_cost: float = 0.0


def unmounted_pod_name(namespace: str) -> str:
    """Name of the pseudo-pod that carries a namespace's unmounted claims."""
    return f"{namespace}-unmounted-pvcs"
