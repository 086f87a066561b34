from .allocation_client import AllocationClient
from .prometheus_client import PrometheusClient

__all__ = [
    "AllocationClient",
    "PrometheusClient",
]
