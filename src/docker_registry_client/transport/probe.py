"""
Registry availability probe (``GET /v2/``).

Not part of manifest resolution; used by surrounding tooling to check that
a host speaks the Distribution API before resolving against it.
"""
from __future__ import annotations

import logging

from .base import Transport

logger = logging.getLogger(__name__)

__all__ = ["check_registry"]


async def check_registry(transport: Transport, registry: str) -> bool:
    """
    Check whether ``registry`` implements the Distribution v2 API.

    A 200 or a 401 (API present, credentials required) counts as available.

    Raises:
        TransportError: If the registry cannot be reached
    """
    response = await transport.request("GET", registry, "/v2/")
    available = response.ok or response.status_code == 401
    logger.debug(f"Probe {registry}/v2/ -> {response.status_code} (available={available})")
    return available
