"""
Registry client error classes.

Provides a clear taxonomy of errors that can occur while resolving manifests.
Every error names the stage that failed so callers can report "fetch",
"digest-check" or "media-type-selection" failures distinctly.
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Optional, Sequence

# Error code registries use for a manifest that does not exist
MANIFEST_UNKNOWN = "MANIFEST_UNKNOWN"


@dataclass(frozen=True)
class RegistryErrorDetail:
    """One entry of a registry error body: {"errors": [{code, message, detail}]}."""
    code: str
    message: str = ""
    detail: Any = field(default=None, compare=False)


def parse_registry_errors(body: bytes) -> tuple[RegistryErrorDetail, ...]:
    """
    Parse a Distribution API error body.

    Bodies that are empty, not JSON, or not shaped like an error document
    yield an empty tuple; error bodies are informational only.
    """
    if not body:
        return ()
    try:
        document = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return ()
    if not isinstance(document, dict):
        return ()

    errors = document.get("errors")
    if not isinstance(errors, list):
        return ()

    details = []
    for entry in errors:
        if not isinstance(entry, dict) or not isinstance(entry.get("code"), str):
            continue
        details.append(RegistryErrorDetail(
            code=entry["code"],
            message=str(entry.get("message") or ""),
            detail=entry.get("detail"),
        ))
    return tuple(details)


class RegistryClientError(Exception):
    """
    Base class for all registry client errors.

    Attributes:
        stage: Resolution stage that failed (parse, fetch, digest-check,
            media-type-selection, cache)
    """
    stage: str = "resolve"


class InvalidReference(RegistryClientError, ValueError):
    """
    Malformed image reference. Raised locally, before any I/O.
    """
    stage = "parse"


class NotFound(RegistryClientError):
    """
    Registry affirmatively reports the manifest does not exist.

    Raised when:
    - HTTP 404 Not Found (usually with a MANIFEST_UNKNOWN error code)
    """
    stage = "fetch"

    def __init__(self, message: str, reference: str | None = None,
                 errors: Sequence[RegistryErrorDetail] = ()):
        super().__init__(message)
        self.reference = reference
        self.errors = tuple(errors)

    @property
    def codes(self) -> tuple[str, ...]:
        return tuple(error.code for error in self.errors)


class TransportError(RegistryClientError):
    """
    Network or HTTP-layer failure.

    Raised when:
    - Any non-2xx, non-404 manifest response (status_code preserved)
    - Connection failures and timeouts (status_code is None)
    """
    stage = "fetch"

    def __init__(self, message: str, status_code: Optional[int] = None,
                 errors: Sequence[RegistryErrorDetail] = ()):
        super().__init__(message)
        self.status_code = status_code
        self.errors = tuple(errors)


class DigestMismatch(RegistryClientError):
    """
    Content digest validation failed.

    Raised when:
    - A manifest requested by digest hashes to a different digest
    - The Docker-Content-Digest header disagrees with the received bytes

    Never retried: it indicates corruption or content substitution.
    """
    stage = "digest-check"

    def __init__(self, message: str, expected: str | None = None, actual: str | None = None):
        super().__init__(message)
        self.expected = expected
        self.actual = actual


class UnsupportedMediaType(RegistryClientError):
    """
    Unknown or ambiguous manifest shape.

    Raised when:
    - The manifest media type is not one we accept
    - Body and Content-Type declare different manifest types
    - The body is not decodable JSON
    """
    stage = "media-type-selection"

    def __init__(self, message: str, media_type: str | None = None):
        super().__init__(message)
        self.media_type = media_type


class PlatformNotFound(UnsupportedMediaType):
    """No single manifest list entry matches the requested platform."""

    def __init__(self, message: str, platform: str, available: Sequence[str] = (),
                 media_type: str | None = None):
        super().__init__(message, media_type=media_type)
        self.platform = platform
        self.available = tuple(available)


class CacheError(RegistryClientError):
    """A cache backend operation failed."""
    stage = "cache"


__all__ = [
    "MANIFEST_UNKNOWN",
    "RegistryErrorDetail",
    "parse_registry_errors",
    "RegistryClientError",
    "InvalidReference",
    "NotFound",
    "TransportError",
    "DigestMismatch",
    "UnsupportedMediaType",
    "PlatformNotFound",
    "CacheError",
]
