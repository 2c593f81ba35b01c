"""Shared HTTP client for probing providers"""
import httpx
from typing import Optional

from switchboard.core.config import get_config


_http_client: Optional[httpx.AsyncClient] = None


def get_http_client() -> httpx.AsyncClient:
    """
    Get or create the shared HTTP client instance

    Per-probe deadlines are enforced by the caller; the client timeout only
    acts as an upper bound.

    Returns:
        Shared httpx.AsyncClient configured with app settings
    """
    global _http_client
    if _http_client is None:
        config = get_config()
        _http_client = httpx.AsyncClient(
            verify=config.verify_ssl,
            timeout=httpx.Timeout(60.0),
            follow_redirects=False,
            limits=httpx.Limits(
                max_keepalive_connections=10,
                max_connections=50,
                keepalive_expiry=30.0
            )
        )
    return _http_client


async def close_http_client() -> None:
    """Close the shared HTTP client"""
    global _http_client
    if _http_client is not None:
        await _http_client.aclose()
        _http_client = None
