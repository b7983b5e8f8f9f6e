"""
Shared HTTP client with connection pooling.

Every outbound provider call (Resend, Meta Graph API) goes through one
httpx.AsyncClient so connections are reused and timeouts are uniform.
"""

import logging
from typing import Optional

import httpx

logger = logging.getLogger(__name__)

_client: Optional[httpx.AsyncClient] = None


async def get_http_client() -> httpx.AsyncClient:
    """
    Return the singleton HTTP client, creating it on first use.

    Returns:
        httpx.AsyncClient with pooling configured
    """
    global _client
    if _client is None:
        _client = httpx.AsyncClient(
            timeout=httpx.Timeout(
                connect=10.0,
                read=30.0,
                write=30.0,
                pool=5.0,
            ),
            limits=httpx.Limits(
                max_connections=100,
                max_keepalive_connections=20,
                keepalive_expiry=30.0,
            ),
            http2=True,
            headers={
                "User-Agent": "leadflow/1.0",
            },
            follow_redirects=True,
        )
        logger.info("HTTP client singleton created")

    return _client


async def close_http_client() -> None:
    """
    Close the HTTP client.

    Called on application shutdown.
    """
    global _client
    if _client is not None:
        await _client.aclose()
        _client = None
        logger.info("HTTP client singleton closed")
