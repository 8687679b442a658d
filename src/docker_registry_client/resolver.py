"""
Manifest resolution with caching and in-flight coalescing.

ManifestResolver turns a Reference into a digest-verified Manifest. Fetched
documents (leaf manifests and indices alike) are cached under the key of the
reference they were fetched by; platform selection runs on top of the cache,
so resolving a cached tag for any platform needs no network access once the
selected leaf is cached too.
"""
from __future__ import annotations

import logging
from functools import partial
from typing import Any, Optional

from .cache.base import Cache
from .cache.inflight import InFlight
from .errors import (
    CacheError,
    DigestMismatch,
    InvalidReference,
    NotFound,
    PlatformNotFound,
    TransportError,
    UnsupportedMediaType,
    parse_registry_errors,
)
from .manifests import decode_manifest, platform_entries, signed_v1_payload
from .media_types import ACCEPT_HEADER, is_index
from .models import Manifest, Platform, PlatformManifest
from .reference import Digest, Reference
from .transport.base import Transport

logger = logging.getLogger(__name__)

__all__ = ["ManifestResolver", "select_platform", "content_digests", "MAX_INDEX_DEPTH"]

# Indices nested deeper than this are rejected
MAX_INDEX_DEPTH = 4


def content_digests(body: bytes, algorithm: str = "sha256") -> list[Digest]:
    """
    Digests a registry may legitimately report for ``body``.

    For signed schema 1 manifests registries digest the canonical payload
    (signatures stripped), so that digest comes first; the digest of the raw
    bytes is always a candidate.
    """
    candidates = []
    payload = signed_v1_payload(body)
    if payload is not None and payload != body:
        candidates.append(Digest.of(payload, algorithm))
    candidates.append(Digest.of(body, algorithm))
    return candidates


def select_platform(manifest: Manifest, platform: Platform) -> PlatformManifest:
    """
    Pick the single index entry matching ``platform``.

    Matching requires equal os and architecture; the variant must match when
    the target names one. A target without a variant matching several
    entries is ambiguous.

    Raises:
        PlatformNotFound: If no entry or more than one entry matches
    """
    entries = manifest.platform_manifests or ()
    matches = [entry for entry in entries if platform.matches(entry.platform)]
    if len(matches) == 1:
        return matches[0]

    available = [str(entry.platform) for entry in entries]
    if not matches:
        raise PlatformNotFound(
            f"No manifest for platform {platform} (available: {', '.join(available) or 'none'})",
            str(platform), available, media_type=manifest.media_type,
        )
    raise PlatformNotFound(
        f"Platform {platform} is ambiguous, matching "
        f"{', '.join(str(entry.platform) for entry in matches)}; specify a variant",
        str(platform), available, media_type=manifest.media_type,
    )


class ManifestResolver:
    """
    Fetch, verify, cache and platform-resolve manifests.

    Example:
        >>> resolver = ManifestResolver(HttpTransport(settings), MemoryCache(300))
        >>> manifest = await resolver.resolve(parse_reference("registry.access.redhat.com/ubi8:8.9"))
        >>> str(manifest.digest)
        'sha256:...'
    """

    def __init__(self, transport: Transport, cache: Cache, *,
                 default_platform: Optional[Platform] = None):
        """
        Initialize resolver with injected dependencies.

        Args:
            transport: Registry transport
            cache: Cache backend
            default_platform: Platform used when resolve() is given none
                (defaults to the host platform)
        """
        self.transport = transport
        self.cache = cache
        self.default_platform = default_platform
        self._inflight: InFlight[Manifest] = InFlight()

    async def fetch(self, ref: Reference) -> Manifest:
        """
        Fetch the document ``ref`` points at, without platform selection.

        Concurrent calls for the same reference share one cache lookup and at
        most one registry request.

        Raises:
            NotFound: If the registry reports the manifest does not exist
            TransportError: For any other failed request
            DigestMismatch: If the content does not hash to the requested or
                advertised digest
            UnsupportedMediaType: If the document type cannot be determined
        """
        return await self._inflight.run(ref.cache_key, partial(self._fetch, ref))

    async def resolve(self, ref: Reference, platform: Optional[Platform] = None) -> Manifest:
        """
        Resolve ``ref`` to a single-platform manifest.

        Indices are walked by selecting the entry for ``platform`` (or the
        default platform) and fetching it by digest, up to MAX_INDEX_DEPTH
        levels.

        Raises:
            PlatformNotFound: If an index has no single entry for the platform
            UnsupportedMediaType: If indices nest too deeply
            (and everything fetch() raises)
        """
        target = platform or self.default_platform or Platform.host()
        current = ref
        manifest = await self.fetch(current)

        depth = 0
        while manifest.is_index:
            if depth >= MAX_INDEX_DEPTH:
                raise UnsupportedMediaType(
                    f"Manifest index nesting exceeds {MAX_INDEX_DEPTH} levels at {current}",
                    manifest.media_type,
                )
            entry = select_platform(manifest, target)
            logger.debug(f"Selected {entry.platform} -> {entry.digest} from {current}")
            current = current.with_digest(entry.digest)
            manifest = await self.fetch(current)
            depth += 1

        logger.info(f"Resolved {ref} for {target} to {manifest.digest}")
        return manifest

    async def _fetch(self, ref: Reference) -> Manifest:
        cached = await self._cache_lookup(ref)
        if cached is not None:
            logger.debug(f"Cache hit: {ref.cache_key}")
            return cached

        logger.debug(f"Cache miss: {ref.cache_key}")
        manifest = await self._download(ref)

        await self._cache_store(ref.cache_key, manifest, pinned=ref.pinned)
        if not ref.pinned:
            # Content fetched by tag is also addressable by its digest
            await self._cache_store(ref.with_digest(manifest.digest).cache_key, manifest, pinned=True)
        return manifest

    async def _download(self, ref: Reference) -> Manifest:
        response = await self.transport.request(
            "GET", ref.registry, ref.manifest_path, headers={"Accept": ACCEPT_HEADER}
        )

        if response.status_code == 404:
            errors = parse_registry_errors(response.body)
            raise NotFound(f"Manifest not found: {ref}", reference=str(ref), errors=errors)
        if not response.ok:
            errors = parse_registry_errors(response.body)
            detail = f": {errors[0].message}" if errors and errors[0].message else ""
            raise TransportError(
                f"Registry returned HTTP {response.status_code} for {ref}{detail}",
                status_code=response.status_code,
                errors=errors,
            )

        body = response.body
        header_digest = self._advertised_digest(response.header("Docker-Content-Digest"))
        digest = self._verify_digest(ref, body, header_digest)

        media_type, document = decode_manifest(body, response.header("Content-Type"))
        return self._build(media_type, digest, body, document)

    @staticmethod
    def _advertised_digest(value: Optional[str]) -> Optional[Digest]:
        if not value:
            return None
        try:
            return Digest.parse(value.strip())
        except InvalidReference:
            logger.warning(f"Ignoring unverifiable Docker-Content-Digest header: {value}")
            return None

    @staticmethod
    def _verify_digest(ref: Reference, body: bytes, advertised: Optional[Digest]) -> Digest:
        """
        Compute the content digest and check it against the requested and
        advertised digests.

        Raises:
            DigestMismatch: If either disagrees with the content
        """
        expected = ref.digest
        if expected is not None:
            algorithm = expected.algorithm
        elif advertised is not None:
            algorithm = advertised.algorithm
        else:
            algorithm = "sha256"

        candidates = content_digests(body, algorithm)
        if expected is not None and expected not in candidates:
            logger.error(f"Digest mismatch for {ref}: content hashes to {candidates[0]}")
            raise DigestMismatch(
                f"Manifest for {ref} hashes to {candidates[0]}, expected {expected}",
                expected=str(expected), actual=str(candidates[0]),
            )

        if advertised is not None:
            advertised_candidates = (
                candidates if advertised.algorithm == algorithm
                else content_digests(body, advertised.algorithm)
            )
            if advertised not in advertised_candidates:
                logger.error(
                    f"Docker-Content-Digest {advertised} for {ref} does not match content "
                    f"{advertised_candidates[0]}"
                )
                raise DigestMismatch(
                    f"Registry advertised {advertised} for {ref} but content hashes to "
                    f"{advertised_candidates[0]}",
                    expected=str(advertised), actual=str(advertised_candidates[0]),
                )

        if expected is not None:
            return expected
        if advertised is not None and advertised.algorithm == algorithm:
            return advertised
        return candidates[0]

    @staticmethod
    def _build(media_type: str, digest: Digest, raw: bytes, document: dict[str, Any]) -> Manifest:
        return Manifest(
            media_type=media_type,
            digest=digest,
            raw=raw,
            platform_manifests=platform_entries(document) if is_index(media_type) else None,
        )

    async def _cache_lookup(self, ref: Reference) -> Optional[Manifest]:
        key = ref.cache_key
        try:
            data = await self.cache.get(key)
        except CacheError as e:
            logger.warning(f"Cache read failed, treating as miss: {e}")
            return None
        if data is None:
            return None

        try:
            media_type, digest, raw = Manifest.envelope_fields(data)
            if digest not in content_digests(raw, digest.algorithm):
                raise ValueError(f"payload does not hash to {digest}")
            if ref.digest is not None and ref.digest != digest:
                raise ValueError(f"entry holds {digest}, key pins {ref.digest}")
            _, document = decode_manifest(raw, media_type)
            return self._build(media_type, digest, raw, document)
        except (ValueError, UnsupportedMediaType) as e:
            logger.warning(f"Discarding corrupt cache entry {key}: {e}")
            await self._cache_invalidate(key)
            return None

    async def _cache_store(self, key: str, manifest: Manifest, *, pinned: bool) -> None:
        try:
            await self.cache.put(key, manifest.to_cache_bytes(), pinned=pinned)
        except CacheError as e:
            logger.warning(f"Cache write failed, result not stored: {e}")

    async def _cache_invalidate(self, key: str) -> None:
        try:
            await self.cache.invalidate(key)
        except CacheError as e:
            logger.warning(f"Cache invalidation failed for {key}: {e}")
