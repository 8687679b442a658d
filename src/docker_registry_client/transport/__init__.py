"""Registry transports."""
from .base import Transport, TransportResponse
from .http import DockerAuth, HttpTransport
from .probe import check_registry

__all__ = ["Transport", "TransportResponse", "DockerAuth", "HttpTransport", "check_registry"]
