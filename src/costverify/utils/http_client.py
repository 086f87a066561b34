import logging
from typing import Optional, Tuple

import httpx

from ..core.config import config

logger = logging.getLogger(__name__)


def get_async_http_client(
    connect_timeout: Optional[float] = None,
    read_timeout: Optional[float] = None,
    verify: bool = True,
    bearer_token: Optional[str] = None,
    auth: Optional[Tuple[str, str]] = None,
) -> httpx.AsyncClient:
    """
    Builds the httpx.AsyncClient shared by the Prometheus and allocation
    clients. Timeouts default to DEFAULT_TIMEOUT_CONNECT / DEFAULT_TIMEOUT_READ
    and every request carries the configured User-Agent. A bearer token, if
    given, takes the Authorization header; `auth` is basic auth.
    """
    timeout = httpx.Timeout(
        config.DEFAULT_TIMEOUT_READ if read_timeout is None else read_timeout,
        connect=config.DEFAULT_TIMEOUT_CONNECT if connect_timeout is None else connect_timeout,
    )
    headers = {"User-Agent": config.USER_AGENT}
    if bearer_token:
        headers["Authorization"] = f"Bearer {bearer_token}"
    if not verify:
        logger.debug("TLS certificate verification is disabled for this client.")

    # No retry policy: a failed call surfaces as TransportError at the call site.
    return httpx.AsyncClient(timeout=timeout, headers=headers, verify=verify, auth=auth, follow_redirects=True)
