# src/costverify/models/allocation.py
"""
Request and response models for the cost-allocation API (`/allocation`).
Only the fields the comparison scenarios read are modelled; anything else in
the payload is ignored.
"""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..core.tolerance import convert_to_hours


_ALLOCATION_PARAMS = (
    ("accumulate", "accumulate"),
    ("aggregate", "aggregate"),
    ("cost_unit", "costUnit"),
    ("filter", "filter"),
    ("idle", "idle"),
    ("idle_by_node", "idleByNode"),
    ("include_idle", "includeIdle"),
    ("include_shared_cost_breakdown", "includeSharedCostBreakdown"),
    ("share_cost", "shareCost"),
    ("share_idle", "shareIdle"),
    ("share_labels", "shareLabels"),
    ("share_namespaces", "shareNamespaces"),
    ("share_split", "shareSplit"),
    ("share_tenancy_costs", "shareTenancyCosts"),
    ("window", "window"),
)


class AllocationRequest(BaseModel):
    """
    Query parameters for GET /allocation. Empty fields are omitted.
    """

    accumulate: str = ""
    aggregate: str = ""
    cost_unit: str = ""
    filter: str = ""
    idle: str = ""
    idle_by_node: str = ""
    include_idle: str = ""
    include_shared_cost_breakdown: str = ""
    share_cost: str = ""
    share_idle: str = ""
    share_labels: str = ""
    share_namespaces: str = ""
    share_split: str = ""
    share_tenancy_costs: str = ""
    window: str = ""

    def query_params(self) -> Dict[str, str]:
        return {param: getattr(self, attr) for attr, param in _ALLOCATION_PARAMS if getattr(self, attr)}


class _APIModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class AllocationWindow(_APIModel):
    start: Optional[datetime] = None
    end: Optional[datetime] = None


class AllocationProperties(_APIModel):
    cluster: str = ""
    node: str = ""
    container: str = ""
    controller: str = ""
    controller_kind: str = Field("", alias="controllerKind")
    namespace: str = ""
    pod: str = ""
    services: List[str] = Field(default_factory=list)
    provider_id: str = Field("", alias="providerID")
    labels: Dict[str, str] = Field(default_factory=dict)
    annotations: Dict[str, str] = Field(default_factory=dict)
    namespace_labels: Dict[str, str] = Field(default_factory=dict, alias="namespaceLabels")
    namespace_annotations: Dict[str, str] = Field(default_factory=dict, alias="namespaceAnnotations")


class GPUAllocation(_APIModel):
    gpu_device: str = Field("", alias="gpuDevice")
    gpu_model: str = Field("", alias="gpuModel")
    gpu_uuid: str = Field("", alias="gpuUUID")
    is_gpu_shared: bool = Field(False, alias="isGPUShared")
    gpu_usage_average: float = Field(0.0, alias="gpuUsageAverage")
    gpu_request_average: float = Field(0.0, alias="gpuRequestAverage")


class PersistentVolumeAllocation(_APIModel):
    byte_hours: float = Field(0.0, alias="byteHours")
    cost: float = 0.0
    provider_id: str = Field("", alias="providerID")
    adjustment: float = 0.0


class AllocationResponseItem(_APIModel):
    """
    One aggregated allocation (a namespace, pod, controller, ...).
    """

    name: str = ""
    properties: Optional[AllocationProperties] = None
    window: Optional[AllocationWindow] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    minutes: float = 0.0

    cpu_cores: float = Field(0.0, alias="cpuCores")
    cpu_core_hours: float = Field(0.0, alias="cpuCoreHours")
    cpu_core_request_average: float = Field(0.0, alias="cpuCoreRequestAverage")
    cpu_core_usage_average: float = Field(0.0, alias="cpuCoreUsageAverage")
    cpu_core_limit_average: float = Field(0.0, alias="cpuCoreLimitAverage")
    cpu_cost: float = Field(0.0, alias="cpuCost")

    gpu_count: float = Field(0.0, alias="gpuCount")
    gpu_hours: float = Field(0.0, alias="gpuHours")
    gpu_cost: float = Field(0.0, alias="gpuCost")
    gpu_allocation: Optional[GPUAllocation] = Field(None, alias="gpuAllocation")

    ram_bytes: float = Field(0.0, alias="ramBytes")
    ram_byte_hours: float = Field(0.0, alias="ramByteHours")
    ram_byte_request_average: float = Field(0.0, alias="ramByteRequestAverage")
    ram_byte_usage_average: float = Field(0.0, alias="ramByteUsageAverage")
    ram_byte_limit_average: float = Field(0.0, alias="ramByteLimitAverage")
    ram_cost: float = Field(0.0, alias="ramCost")

    pv_bytes: float = Field(0.0, alias="pvBytes")
    pv_byte_hours: float = Field(0.0, alias="pvByteHours")
    pvs: Optional[Dict[str, PersistentVolumeAllocation]] = None

    network_cost: float = Field(0.0, alias="networkCost")
    load_balancer_cost: float = Field(0.0, alias="loadBalancerCost")
    shared_cost: float = Field(0.0, alias="sharedCost")
    total_cost: float = Field(0.0, alias="totalCost")
    total_efficiency: float = Field(0.0, alias="totalEfficiency")

    @property
    def hours(self) -> float:
        return convert_to_hours(self.minutes)

    @property
    def persistent_volume_cost(self) -> float:
        if not self.pvs:
            return 0.0
        return sum(pv.cost for pv in self.pvs.values())

    @property
    def gpu_request_average(self) -> float:
        return self.gpu_allocation.gpu_request_average if self.gpu_allocation else 0.0

    @property
    def gpu_usage_average(self) -> float:
        return self.gpu_allocation.gpu_usage_average if self.gpu_allocation else 0.0


class AllocationResponse(_APIModel):
    code: int = 0
    data: List[Optional[Dict[str, AllocationResponseItem]]] = Field(default_factory=list)
    message: Optional[str] = None

    def first_set(self) -> Dict[str, AllocationResponseItem]:
        """The first allocation set, which is the whole window when accumulate=true or a single step."""
        return (self.data[0] or {}) if self.data else {}
