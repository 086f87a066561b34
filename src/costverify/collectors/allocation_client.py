import logging
from typing import Optional

import httpx
from pydantic import ValidationError

from ..core.config import Config, config
from ..core.exceptions import TransportError
from ..models.allocation import AllocationRequest, AllocationResponse
from ..utils.http_client import get_async_http_client
from .base_client import BaseClient

logger = logging.getLogger(__name__)


class AllocationClient(BaseClient):
    """
    Reads cost allocations from an OpenCost-compatible `/allocation` endpoint.
    The base URL is read from configuration (`config.OPENCOST_URL`).
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        settings: Optional[Config] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.settings = settings or config
        super().__init__(base_url or self.settings.OPENCOST_URL, http_client=http_client)
        self.verify = self.settings.OPENCOST_VERIFY_CERTS

    def _build_http_client(self) -> httpx.AsyncClient:
        return get_async_http_client(verify=self.verify)

    def url(self, relative_url: str) -> str:
        return f"{self.base_url}/{relative_url.lstrip('/')}"

    async def get_allocation(self, request: AllocationRequest) -> AllocationResponse:
        """
        Fetches GET /allocation for the given request.

        Raises:
            TransportError: if the API is unreachable, returns a non-200 code
                or a payload that does not match the allocation schema.
        """
        url = self.url("/allocation")
        params = request.query_params()
        logger.info("Requesting allocations from %s with %s", url, params)

        payload = await self._get_json(url, params=params)
        try:
            response = AllocationResponse.model_validate(payload)
        except ValidationError as exc:
            logger.error("Allocation API at %s returned an unexpected payload: %s", url, exc)
            raise TransportError(f"unexpected allocation payload from {url}") from exc

        if response.code != 200:
            logger.error("Allocation API returned code %d: %s", response.code, response.message)
            raise TransportError(f"allocation API error code: {response.code}")

        logger.info("Allocation API returned %d set(s)", len(response.data))
        return response
