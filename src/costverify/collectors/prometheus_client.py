# src/costverify/collectors/prometheus_client.py

"""
PrometheusClient runs QuerySpecs against the Prometheus HTTP API.
Results are the input for the resource reconstructor.
"""

import asyncio
import logging
from typing import Dict, List, Optional, Sequence

import httpx

from ..core.config import Config, config
from ..core.exceptions import TransportError
from ..core.query_builder import build_query_url
from ..models.prometheus import PrometheusResponse, QuerySpec
from ..utils.http_client import get_async_http_client
from .base_client import BaseClient

logger = logging.getLogger(__name__)


class PrometheusClient(BaseClient):
    """
    Issues instant queries against `<base>/api/v1/query`.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        settings: Optional[Config] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.settings = settings or config
        super().__init__(base_url or self.settings.PROMETHEUS_URL, http_client=http_client)

        self.verify = self.settings.PROMETHEUS_VERIFY_CERTS
        self.bearer_token = getattr(self.settings, "PROMETHEUS_BEARER_TOKEN", None)
        self.username = getattr(self.settings, "PROMETHEUS_USERNAME", None)
        self.password = getattr(self.settings, "PROMETHEUS_PASSWORD", None)

    def _build_http_client(self) -> httpx.AsyncClient:
        auth = None
        if self.username and self.password:
            auth = (self.username, self.password)
        return get_async_http_client(verify=self.verify, bearer_token=self.bearer_token, auth=auth)

    def build_url(self, spec: QuerySpec) -> str:
        return build_query_url(self.base_url, spec)

    async def run_query(self, spec: QuerySpec) -> PrometheusResponse:
        """
        Runs one query and returns the parsed response.

        Raises:
            InvalidSpec: if `spec` cannot be rendered.
            TransportError: if Prometheus is unreachable or reports a failure.
        """
        url = self.build_url(spec)
        logger.debug("Querying Prometheus: %s", url)

        payload = await self._get_json(url)
        if payload.get("status") != "success":
            error = payload.get("error", "Unknown")
            logger.error("Prometheus returned non-success status for %s: %s", url, error)
            raise TransportError(f"Prometheus query failed: {error}")

        response = PrometheusResponse.from_json(payload)
        malformed = sum(series.malformed_count for series in response.result)
        if malformed:
            logger.warning("Skipped %d malformed sample(s) in query for %s", malformed, spec.metric)
        logger.info("Prometheus returned %d series for %s", len(response.result), spec.metric)
        return response

    async def run_queries(self, specs: Sequence[QuerySpec]) -> List[PrometheusResponse]:
        """
        Runs independent queries concurrently, preserving order.

        Every query settles before the first failure (in `specs` order) is
        re-raised.
        """
        outcomes = await asyncio.gather(*(self.run_query(spec) for spec in specs), return_exceptions=True)
        errors = [o for o in outcomes if isinstance(o, BaseException)]
        if errors:
            if len(errors) > 1:
                logger.warning("%d of %d Prometheus queries failed", len(errors), len(outcomes))
            raise errors[0]
        return list(outcomes)

    async def get_pods_by_controller(self, controller_kind: str, window: str) -> Dict[str, str]:
        """
        Returns {pod: namespace} for pods owned by `controller_kind` at any
        point in `window`.

        Raises:
            TransportError: if the query fails or finds no pods.
        """
        spec = QuerySpec(
            metric="kube_pod_owner",
            filters={"owner_kind": controller_kind},
            functions=["max_over_time"],
            window=window,
        )
        response = await self.run_query(spec)
        pods = {series.pod: series.namespace for series in response.result if series.pod}
        if not pods:
            raise TransportError(f"no {controller_kind} pods found in Prometheus metrics for window {window}")
        return pods
