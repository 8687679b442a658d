"""
docker-registry-client: read-only OCI/Docker registry client.

Fetches manifests, resolves manifest lists to a single platform, and
locates cosign signature manifests, behind a pluggable cache.
"""
from .cache import Cache, InFlight, MemoryCache, RedisCache, make_cache
from .errors import (
    CacheError,
    DigestMismatch,
    InvalidReference,
    NotFound,
    PlatformNotFound,
    RegistryClientError,
    TransportError,
    UnsupportedMediaType,
)
from .models import Manifest, Platform, PlatformManifest, SignatureResult
from .reference import Digest, Reference, Tag, derive_signature_reference, parse_reference
from .resolver import ManifestResolver
from .settings import Settings, create_settings_from_env
from .signatures import SignatureLocator
from .transport import HttpTransport, Transport, TransportResponse, check_registry

__version__ = "0.1.0"

__all__ = [
    "Cache",
    "InFlight",
    "MemoryCache",
    "RedisCache",
    "make_cache",
    "CacheError",
    "DigestMismatch",
    "InvalidReference",
    "NotFound",
    "PlatformNotFound",
    "RegistryClientError",
    "TransportError",
    "UnsupportedMediaType",
    "Manifest",
    "Platform",
    "PlatformManifest",
    "SignatureResult",
    "Digest",
    "Reference",
    "Tag",
    "derive_signature_reference",
    "parse_reference",
    "ManifestResolver",
    "Settings",
    "create_settings_from_env",
    "SignatureLocator",
    "HttpTransport",
    "Transport",
    "TransportResponse",
    "check_registry",
]
