"""
Shared httpx client for vote sources.

One AsyncClient is reused for every Snapshot request in the process so
connections are pooled. Timeouts and User-Agent are read from the
environment when the client is first built:

    DT_HTTP_TIMEOUT          read/write timeout in seconds (default 15)
    DT_HTTP_CONNECT_TIMEOUT  connect timeout in seconds (default 5)
    DT_HTTP_UA               User-Agent header
"""

import os
from typing import Optional

import httpx

from delegate_tracker import __version__

_async_client: Optional[httpx.AsyncClient] = None


def build_async_client() -> httpx.AsyncClient:
    timeout = httpx.Timeout(
        float(os.getenv("DT_HTTP_TIMEOUT", "15")),
        connect=float(os.getenv("DT_HTTP_CONNECT_TIMEOUT", "5")),
    )
    return httpx.AsyncClient(
        timeout=timeout,
        limits=httpx.Limits(max_keepalive_connections=10, max_connections=20),
        headers={
            "User-Agent": os.getenv("DT_HTTP_UA", f"delegate-tracker/{__version__}"),
            "Content-Type": "application/json",
        },
    )


def get_async_client() -> httpx.AsyncClient:
    global _async_client
    if _async_client is None or _async_client.is_closed:
        _async_client = build_async_client()
    return _async_client


async def aclose_async_client() -> None:
    global _async_client
    if _async_client is not None:
        await _async_client.aclose()
        _async_client = None
