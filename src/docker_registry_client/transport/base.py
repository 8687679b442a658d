"""
Transport interface for the resolver.

This protocol defines the boundary between manifest resolution and the HTTP
layer (auth, TLS, retries), enabling clean dependency injection and testing
with fakes.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping, Optional, Protocol, runtime_checkable


@dataclass(frozen=True)
class TransportResponse:
    """
    Status, headers and body of one registry response.

    Header names are stored lowercased; use ``header()`` for lookups.
    """
    status_code: int
    headers: Mapping[str, str] = field(default_factory=dict)
    body: bytes = b""

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "headers", {name.lower(): value for name, value in self.headers.items()}
        )

    def header(self, name: str) -> Optional[str]:
        return self.headers.get(name.lower())

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


__all__ = ["TransportResponse", "Transport"]


@runtime_checkable
class Transport(Protocol):
    """Protocol for registry HTTP operations."""

    async def request(
        self,
        method: str,
        registry: str,
        path: str,
        headers: Optional[Mapping[str, str]] = None,
    ) -> TransportResponse:
        """
        Perform a request against a registry endpoint.

        Args:
            method: HTTP method ("GET" or "HEAD")
            registry: Registry host with optional port
            path: Absolute API path (e.g., "/v2/library/alpine/manifests/3.20")
            headers: Extra request headers

        Returns:
            Response for every HTTP status; callers classify non-2xx

        Raises:
            TransportError: If no response could be obtained (network error, timeout)
        """
        ...
