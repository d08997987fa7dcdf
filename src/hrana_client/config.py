"""Client configuration."""

from __future__ import annotations

import os
from dataclasses import dataclass

ENV_URL = "HRANA_URL"
ENV_AUTH_TOKEN = "HRANA_AUTH_TOKEN"
ENV_TIMEOUT = "HRANA_TIMEOUT"


@dataclass
class ClientConfig:
    """Where and how to connect.

    The URL scheme selects the transport: http(s) for the HTTP pipeline,
    ws(s) for WebSocket.
    """

    url: str
    auth_token: str | None = None
    timeout: float = 30.0  # HTTP request timeout

    @classmethod
    def from_env(cls) -> ClientConfig:
        """Build a config from HRANA_URL, HRANA_AUTH_TOKEN and HRANA_TIMEOUT.

        Raises:
            ValueError: HRANA_URL is not set, or HRANA_TIMEOUT is not a number
        """
        url = os.getenv(ENV_URL)
        if not url:
            raise ValueError(f"Environment variable {ENV_URL} is not set")
        timeout = os.getenv(ENV_TIMEOUT)
        return cls(
            url=url,
            auth_token=os.getenv(ENV_AUTH_TOKEN) or None,
            timeout=float(timeout) if timeout else 30.0,
        )
