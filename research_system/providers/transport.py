"""HTTP transport seam between the executor and the research provider.

The executor depends only on ProviderRequest, ProviderResponse and a
per-request timeout; any object with a matching async ``send`` can stand in
for HttpxTransport (tests use an in-memory fake).
"""

from dataclasses import dataclass, field
from typing import Any, Optional, Protocol, runtime_checkable

import httpx

from research_system.errors import APIError


@dataclass(frozen=True)
class ProviderRequest:
    """Request descriptor: method, url, JSON body, headers."""

    method: str
    url: str
    body: Optional[dict[str, Any]] = None
    headers: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class ProviderResponse:
    """Response descriptor: status, headers, decoded JSON body."""

    status: int
    headers: dict[str, str] = field(default_factory=dict)
    body: Any = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def to_cache(self) -> dict[str, Any]:
        return {"status": self.status, "headers": dict(self.headers), "body": self.body}

    @classmethod
    def from_cache(cls, payload: dict[str, Any]) -> "ProviderResponse":
        return cls(
            status=payload.get("status", 200),
            headers=dict(payload.get("headers") or {}),
            body=payload.get("body"),
        )


@runtime_checkable
class Transport(Protocol):
    async def send(self, request: ProviderRequest, timeout: float) -> ProviderResponse:
        """Issue one request. Raises APIError(retryable=True) on transport failure."""
        ...


class HttpxTransport:
    """
    Production transport over httpx.AsyncClient.

    Non-2xx responses are returned, not raised: status classification belongs
    to the executor. Connection-level failures become retryable APIErrors with
    no status code.
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        max_connections: int = 20,
    ):
        self._client = client
        self._owns_client = client is None
        self._max_connections = max_connections

    def _get_client(self) -> httpx.AsyncClient:
        """Lazy-init HTTP client with connection pooling."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                limits=httpx.Limits(
                    max_keepalive_connections=5,
                    max_connections=self._max_connections,
                ),
                headers={"User-Agent": "research-system/0.1"},
            )
        return self._client

    async def send(self, request: ProviderRequest, timeout: float) -> ProviderResponse:
        client = self._get_client()
        try:
            response = await client.request(
                request.method,
                request.url,
                json=request.body,
                headers=request.headers,
                timeout=httpx.Timeout(timeout),
            )
        except httpx.TimeoutException as e:
            raise APIError(
                f"Request to {request.url} timed out after {timeout}s",
                status_code=None,
                retryable=True,
                details={"url": request.url},
            ) from e
        except httpx.RequestError as e:
            raise APIError(
                f"Network error for {request.url}: {type(e).__name__}",
                status_code=None,
                retryable=True,
                details={"url": request.url},
            ) from e

        try:
            body = response.json() if response.content else None
        except ValueError:
            body = response.text

        return ProviderResponse(
            status=response.status_code,
            headers=dict(response.headers),
            body=body,
        )

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
