# src/costverify/models/resources.py
"""
Pass-scoped models produced while reconstructing resource usage from
Prometheus samples: intervals, containers, pods, volume shares and
namespace rollups.
"""

from datetime import datetime
from typing import Dict, Optional

from pydantic import BaseModel, Field

from ..core.exceptions import DegenerateInterval
from ..core.tolerance import convert_to_hours


class ResourceInterval(BaseModel):
    """
    The observed lifetime of a resource unit within a query window.
    Intervals only ever widen.
    """

    start: datetime
    end: datetime

    @property
    def minutes(self) -> float:
        return (self.end - self.start).total_seconds() / 60

    @property
    def hours(self) -> float:
        return convert_to_hours(self.minutes)

    @property
    def is_degenerate(self) -> bool:
        return self.minutes <= 0

    def require_positive(self) -> "ResourceInterval":
        if self.is_degenerate:
            raise DegenerateInterval(f"interval {self.start.isoformat()} - {self.end.isoformat()} has no duration")
        return self

    def widen(self, other: Optional["ResourceInterval"]) -> "ResourceInterval":
        """Extend this interval in place to cover `other`."""
        if other is None:
            return self
        if other.start < self.start:
            self.start = other.start
        if other.end > self.end:
            self.end = other.end
        return self

    def copy_interval(self) -> "ResourceInterval":
        return ResourceInterval(start=self.start, end=self.end)


class ContainerResourceData(BaseModel):
    """
    Per-container quantities. `quantity` is what the cost model charges for:
    the greater of the allocated value and the average request.
    """

    container: str
    allocated: Optional[float] = Field(None, description="Committed quantity from the cost model")
    requested_average: Optional[float] = Field(None, description="Average request over the window")
    limit_average: Optional[float] = None
    usage_average: Optional[float] = None
    hours: float = Field(0.0, description="Runtime of the owning pod in hours")

    @property
    def quantity(self) -> float:
        values = [v for v in (self.allocated, self.requested_average) if v is not None]
        return max(values) if values else 0.0

    @property
    def quantity_hours(self) -> float:
        return self.quantity * self.hours


class VolumeAllocation(BaseModel):
    """A pod's share of one persistent volume."""

    byte_hours: float = 0.0
    cost: float = 0.0
    provider_id: str = ""


class PodData(BaseModel):
    """
    A pod's interval and its containers. Containers share the pod's interval,
    so their averages may be summed directly.
    """

    namespace: str
    pod: str
    interval: ResourceInterval
    containers: Dict[str, ContainerResourceData] = Field(default_factory=dict)
    volumes: Dict[str, VolumeAllocation] = Field(default_factory=dict, description="Keyed by persistent volume name")

    @property
    def minutes(self) -> float:
        return self.interval.minutes

    @property
    def quantity_hours(self) -> float:
        return sum(c.quantity_hours for c in self.containers.values())

    @property
    def requested_average(self) -> float:
        return sum(c.requested_average or 0.0 for c in self.containers.values())

    @property
    def limit_average(self) -> float:
        return sum(c.limit_average or 0.0 for c in self.containers.values())

    @property
    def usage_average(self) -> float:
        return sum(c.usage_average or 0.0 for c in self.containers.values())

    @property
    def quantity_average(self) -> float:
        hours = self.interval.hours
        return self.quantity_hours / hours if hours > 0 else 0.0


class NamespaceAggregate(BaseModel):
    """
    Rollup of every pod in a namespace over the union of their intervals.
    """

    namespace: str
    interval: Optional[ResourceInterval] = None
    pod_count: int = 0
    quantity_hours: float = 0.0
    requested_average: float = 0.0
    limit_average: float = 0.0
    usage_average: float = 0.0

    @property
    def minutes(self) -> float:
        return self.interval.minutes if self.interval else 0.0

    @property
    def quantity_average(self) -> float:
        if not self.interval or self.interval.hours <= 0:
            return 0.0
        return self.quantity_hours / self.interval.hours
