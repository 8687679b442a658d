"""
Operations Facade - Application service layer.

Provides a clean interface between CLI and the resolver APIs, centralizing
command orchestration while keeping CLI commands thin and testable.
"""
from __future__ import annotations

from typing import Optional

from ..cli_context import CLIContext
from ..models import Manifest, Platform, SignatureResult
from ..reference import Reference
from ..transport.probe import check_registry


class Operations:
    """
    Application service facade for CLI operations.

    One async method per CLI verb. Exceptions bubble up for central mapping
    to exit codes.
    """

    def __init__(self, context: CLIContext):
        self.context = context

    async def resolve(self, ref: Reference, platform: Optional[Platform] = None) -> Manifest:
        """
        Resolve a reference to its platform manifest.

        Args:
            ref: Image reference
            platform: Target platform (None for the configured default)

        Returns:
            Digest-verified single-platform manifest
        """
        return await self.context.resolver.resolve(ref, platform)

    async def signature(self, ref: Reference, platform: Optional[Platform] = None) -> SignatureResult:
        """Locate the cosign signature manifest of an image."""
        return await self.context.signatures.find_signature(ref, platform=platform)

    async def ping(self, registry: str) -> bool:
        """Check that a registry serves the Distribution API."""
        return await check_registry(self.context.transport, registry)


__all__ = ["Operations"]
