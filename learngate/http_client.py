"""Shared httpx.AsyncClient used by outbound gateway calls."""

import httpx

from learngate.config import get_settings
from learngate.constants import HTTP_CONNECT_TIMEOUT

_client: httpx.AsyncClient | None = None


def _build_client() -> httpx.AsyncClient:
    settings = get_settings()
    return httpx.AsyncClient(
        timeout=httpx.Timeout(settings.gateway_timeout, connect=HTTP_CONNECT_TIMEOUT),
        headers={"User-Agent": f"{settings.app_name}/payments"},
    )


def get_http_client() -> httpx.AsyncClient:
    """Return the shared client, creating it lazily outside the app lifespan (worker, scripts)."""
    global _client
    if _client is None:
        _client = _build_client()
    return _client


async def init_http_client() -> None:
    global _client
    if _client is None:
        _client = _build_client()


async def close_http_client() -> None:
    global _client
    if _client:
        await _client.aclose()
        _client = None
