# src/costverify/models/comparison.py
"""
Outcomes of comparing Prometheus data with the allocation API.
"""

from typing import Dict, List

from pydantic import BaseModel, Field


class ComparisonResult(BaseModel):
    resource: str = Field(..., description="Resource kind, e.g. 'cpu'")
    namespace: str
    field: str = Field(..., description="Allocation API field name, e.g. 'cpuCoreHours'")
    prometheus_value: float
    api_value: float
    diff_percent: float
    tolerance: float
    passed: bool

    def describe(self) -> str:
        status = "Pass" if self.passed else "Fail"
        if self.passed:
            return f"{self.namespace} - {self.field}[{status}]: ~{self.prometheus_value:.2f}"
        return (
            f"{self.namespace} - {self.field}[{status}]: DifferencePercent: {self.diff_percent:.2f}, "
            f"Prom Results: {self.prometheus_value:.2f}, API Results: {self.api_value:.2f}"
        )


class ControllerConsistencyResult(BaseModel):
    """
    Pods owned by one controller kind according to Prometheus (kube_pod_owner)
    and according to the allocation API. Pods the API reports but Prometheus
    never saw, or places in another namespace, are failures; pods only
    Prometheus knows about are reported without failing the check.
    """

    controller_kind: str
    window: str
    prometheus_pods: Dict[str, str] = Field(default_factory=dict, description="pod -> namespace")
    allocation_pods: Dict[str, str] = Field(default_factory=dict, description="pod -> namespace")

    @property
    def missing_in_prometheus(self) -> List[str]:
        return sorted(set(self.allocation_pods) - set(self.prometheus_pods))

    @property
    def missing_in_allocation(self) -> List[str]:
        return sorted(set(self.prometheus_pods) - set(self.allocation_pods))

    @property
    def namespace_mismatches(self) -> List[str]:
        return sorted(
            pod
            for pod, namespace in self.allocation_pods.items()
            if pod in self.prometheus_pods and self.prometheus_pods[pod] != namespace
        )

    @property
    def matched(self) -> int:
        return sum(1 for pod in self.allocation_pods if pod in self.prometheus_pods)

    @property
    def passed(self) -> bool:
        return self.matched > 0 and not self.missing_in_prometheus and not self.namespace_mismatches
