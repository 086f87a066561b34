# src/costverify/collectors/base_client.py
"""
This module defines the base class for the HTTP clients the harness talks
through. Each client owns one httpx.AsyncClient for its lifetime and can be
used as an async context manager.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import httpx

from ..core.exceptions import TransportError

logger = logging.getLogger(__name__)


class BaseClient(ABC):
    """
    Abstract Base Class for API clients.
    """

    def __init__(self, base_url: str, http_client: Optional[httpx.AsyncClient] = None):
        self.base_url = base_url.rstrip("/")
        self._client = http_client

    @abstractmethod
    def _build_http_client(self) -> httpx.AsyncClient:
        """Creates the httpx client used when none was injected."""
        pass

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = self._build_http_client()
        return self._client

    async def _get_json(self, url: str, params: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        """
        GETs `url` and decodes the JSON body.

        Raises:
            TransportError: on connection errors, non-2xx statuses or non-JSON bodies.
        """
        try:
            response = await self.client.get(url, params=params)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.error("Request to %s failed: %s", url, exc)
            raise TransportError(f"request to {url} failed: {exc}") from exc

        try:
            return response.json()
        except ValueError as exc:
            logger.error("Failed to decode JSON from %s. Server sent non-JSON response.", url)
            logger.debug("Raw response content from %s: %s", url, response.text[:500])
            raise TransportError(f"non-JSON response from {url}") from exc

    async def close(self):
        """
        Clean up the underlying HTTP client.
        """
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()
