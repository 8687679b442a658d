"""
CLI Context for managing application dependencies.

Provides a clean way to manage CLI-level dependencies like settings, the
transport and the cache, avoiding global state and enabling proper
dependency injection.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .cache.base import Cache
from .cache.factory import make_cache
from .models import Platform
from .resolver import ManifestResolver
from .settings import Settings, create_settings_from_env
from .signatures import SignatureLocator
from .transport.base import Transport
from .transport.http import HttpTransport


@dataclass
class CLIContext:
    """
    Shared context for CLI commands.

    Manages application-level dependencies (settings, transport, cache,
    resolver) that are initialized once and shared across a CLI command
    execution. Components are created on first access; ones injected at
    construction (e.g., fakes in tests) are used as given.
    """
    settings: Settings
    _transport: Optional[Transport] = None
    _cache: Optional[Cache] = None
    _resolver: Optional[ManifestResolver] = None

    @classmethod
    def from_env(cls) -> CLIContext:
        """
        Create CLI context from environment variables.

        Returns:
            CLIContext with settings loaded from environment
        """
        settings = create_settings_from_env()
        return cls(settings=settings)

    @property
    def transport(self) -> Transport:
        if self._transport is None:
            self._transport = HttpTransport(self.settings)
        return self._transport

    @property
    def cache(self) -> Cache:
        if self._cache is None:
            self._cache = make_cache(self.settings)
        return self._cache

    @property
    def resolver(self) -> ManifestResolver:
        """
        Get or create the resolver (lazy initialization).

        Returns:
            ManifestResolver over this context's transport and cache
        """
        if self._resolver is None:
            default_platform = (
                Platform.parse(self.settings.default_platform)
                if self.settings.default_platform else None
            )
            self._resolver = ManifestResolver(
                self.transport, self.cache, default_platform=default_platform
            )
        return self._resolver

    @property
    def signatures(self) -> SignatureLocator:
        return SignatureLocator(self.resolver)

    async def aclose(self) -> None:
        """Release connections held by the transport and cache."""
        for resource in (self._transport, self._cache):
            close = getattr(resource, "aclose", None)
            if close is not None:
                await close()
