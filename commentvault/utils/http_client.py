"""Shared persistent httpx clients for outbound platform calls.

Using persistent clients avoids creating a new TCP connection + TLS handshake
for every call. httpx binds proxies at the client level, so the pool keeps one
client per egress identity (plus one for direct connections).
"""

from collections.abc import Callable
from typing import Any

import httpx

from commentvault.constants import HTTPX_TIMEOUT

# Connection pool limits
_POOL_LIMITS = httpx.Limits(
    max_connections=20,
    max_keepalive_connections=10,
    keepalive_expiry=30,
)

ClientFactory = Callable[..., httpx.AsyncClient]


def build_client(**options: Any) -> httpx.AsyncClient:
    """Create a client with cookie persistence and redirect following."""
    return httpx.AsyncClient(
        timeout=HTTPX_TIMEOUT,
        limits=_POOL_LIMITS,
        follow_redirects=True,
        http2=False,
        **options,
    )


def _client_key(options: dict[str, Any]) -> str:
    proxy = options.get("proxy")
    if proxy is None:
        return "direct"
    if isinstance(proxy, httpx.Proxy):
        user = proxy.auth[0] if proxy.auth else ""
        return f"{proxy.url}|{user}"
    return str(proxy)


class ClientPool:
    """Persistent clients keyed by their transport options."""

    def __init__(self, factory: ClientFactory = build_client) -> None:
        self._factory = factory
        self._clients: dict[str, httpx.AsyncClient] = {}

    def get(self, options: dict[str, Any] | None = None) -> httpx.AsyncClient:
        """Get (or create) the client for the given transport options."""
        options = options or {}
        key = _client_key(options)
        client = self._clients.get(key)
        if client is None:
            client = self._factory(**options)
            self._clients[key] = client
        return client

    async def aclose(self) -> None:
        """Close every pooled client."""
        for client in self._clients.values():
            await client.aclose()
        self._clients.clear()


_client_pool: ClientPool | None = None


def get_client_pool() -> ClientPool:
    """Get the process-wide client pool."""
    global _client_pool
    if _client_pool is None:
        _client_pool = ClientPool()
    return _client_pool


async def close_all_clients() -> None:
    """Close all persistent httpx clients. Call during app shutdown."""
    global _client_pool
    if _client_pool is not None:
        await _client_pool.aclose()
        _client_pool = None
