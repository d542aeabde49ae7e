"""Shared upstream HTTP client for streaming requests."""
from typing import Optional

import httpx


class UpstreamHTTPClient:
    """Connection-pooled HTTP client shared by all relayed streams.

    No retries and no overall read timeout: a failed request is terminal,
    and once a stream is flowing it may legitimately run for minutes. The
    relay bounds only the wait for the first chunk.
    """

    def __init__(
        self,
        connect_timeout_s: float = 5.0,
        max_connections: int = 100,
        max_keepalive_connections: int = 20,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            connect_timeout_s: TCP/TLS connect timeout in seconds
            max_connections: Connection pool size
            max_keepalive_connections: Idle connections kept open
            transport: Custom transport (tests use httpx.MockTransport)
        """
        self.client = httpx.AsyncClient(
            timeout=httpx.Timeout(None, connect=connect_timeout_s),
            limits=httpx.Limits(
                max_connections=max_connections,
                max_keepalive_connections=max_keepalive_connections,
            ),
            transport=transport,
        )

    async def close(self):
        """Close HTTP client."""
        await self.client.aclose()
