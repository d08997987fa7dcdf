"""Transport implementations of the Hrana client.

Supports multiple transports:
- http: one pipeline exchange per request (protocol version 2)
- websocket: persistent duplex connection (protocol version 1 or 2)
- mock: in-memory, for tests

Callers depend on the Client interface only; pick a transport with
`open_client()` based on the URL scheme.
"""

from __future__ import annotations

from urllib.parse import urlsplit

import httpx

from ..client import Client
from ..config import ClientConfig
from .http import HttpClient, HttpStream
from .mock import MockClient
from .websocket import TransportState, WsClient


def open_http(
    url: str,
    auth_token: str | None = None,
    http_client: httpx.AsyncClient | None = None,
    timeout: float = 30.0,
) -> HttpClient:
    """Create a client that talks to the server over HTTP."""
    return HttpClient(url, auth_token, http_client=http_client, timeout=timeout)


def open_ws(url: str, auth_token: str | None = None) -> WsClient:
    """Create a client that talks to the server over WebSocket.

    The connection is opened lazily.
    """
    return WsClient(url, auth_token)


def open_client(target: str | ClientConfig, auth_token: str | None = None) -> Client:
    """Create a client for a URL or config, choosing the transport by scheme.

    Raises:
        ValueError: The URL scheme is not supported
    """
    config = target if isinstance(target, ClientConfig) else ClientConfig(target, auth_token)
    scheme = urlsplit(config.url).scheme.lower()
    if scheme in ("http", "https"):
        return open_http(config.url, config.auth_token, timeout=config.timeout)
    if scheme in ("ws", "wss"):
        return open_ws(config.url, config.auth_token)
    raise ValueError(f"Unsupported URL scheme {scheme!r} in {config.url!r}")


__all__ = [
    "HttpClient",
    "HttpStream",
    "MockClient",
    "TransportState",
    "WsClient",
    "open_client",
    "open_http",
    "open_ws",
]
