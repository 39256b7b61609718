"""
Network collaborator. Transport failures and timeouts surface as NetworkError;
any HTTP status, including non-2xx, is a Response.
"""

from abc import ABC, abstractmethod
from typing import Optional

import httpx

from ..cache.types import Request, Response
from ..core.config import NETWORK_TIMEOUT_SEC, UPSTREAM_URL

# Hop-by-hop headers are never forwarded
_HOP_HEADERS = {"connection", "keep-alive", "transfer-encoding", "upgrade", "host", "content-length"}


class NetworkError(Exception):
    """The request did not produce an HTTP response (offline, DNS, timeout, reset)."""


class INetwork(ABC):
    """Abstract interface for outbound HTTP."""

    @abstractmethod
    async def init(self) -> None:
        pass

    @abstractmethod
    async def teardown(self) -> None:
        pass

    @abstractmethod
    async def fetch(self, request: Request, timeout: Optional[float] = None) -> Response:
        """Send a request. Raises NetworkError when no response arrives."""
        pass


class HttpxNetwork(INetwork):
    """INetwork over a shared httpx.AsyncClient rooted at the upstream API."""

    def __init__(self, base_url: str = None, timeout: float = None, transport: httpx.AsyncBaseTransport = None):
        self.base_url = base_url or UPSTREAM_URL
        self.timeout = timeout or NETWORK_TIMEOUT_SEC
        self._transport = transport
        self.client: Optional[httpx.AsyncClient] = None

    async def init(self) -> None:
        if self.client is None:
            self.client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
                follow_redirects=True,
            )

    async def teardown(self) -> None:
        if self.client is not None:
            await self.client.aclose()
            self.client = None

    async def fetch(self, request: Request, timeout: Optional[float] = None) -> Response:
        if self.client is None:
            await self.init()

        headers = {k: v for k, v in request.headers.items() if k not in _HOP_HEADERS}
        try:
            upstream = await self.client.request(
                request.method,
                request.url,
                headers=headers,
                content=request.body or None,
                timeout=timeout if timeout is not None else self.timeout,
            )
        except httpx.TransportError as e:
            # ConnectError, ReadTimeout, RemoteProtocolError, ...
            raise NetworkError(f"{request.method} {request.url}: {e.__class__.__name__}: {e}") from e
        except httpx.InvalidURL as e:
            raise NetworkError(f"{request.method} {request.url}: invalid URL: {e}") from e

        return Response(
            status=upstream.status_code,
            headers={k: v for k, v in upstream.headers.items() if k.lower() not in _HOP_HEADERS | {"content-encoding"}},
            body=upstream.content,
        )
