"""
Tests for ManifestResolver.

Covers digest integrity, response classification, cache behavior (hits,
TTL versus pinning, corrupt entries, degraded backends), in-flight
coalescing and platform selection.
"""
from __future__ import annotations

import asyncio
import json

import pytest

from docker_registry_client.cache.memory import MemoryCache
from docker_registry_client.errors import (
    CacheError,
    DigestMismatch,
    NotFound,
    PlatformNotFound,
    TransportError,
    UnsupportedMediaType,
)
from docker_registry_client.media_types import (
    DOCKER_MANIFEST_LIST_V2,
    DOCKER_MANIFEST_V1_SIGNED,
    OCI_IMAGE_INDEX,
    OCI_IMAGE_MANIFEST,
)
from docker_registry_client.models import Manifest, Platform
from docker_registry_client.reference import Digest, parse_reference
from docker_registry_client.resolver import MAX_INDEX_DEPTH, ManifestResolver
from docker_registry_client.transport.base import TransportResponse

from tests.conftest import TAG_TTL_S
from tests.helpers.manifest_helpers import (
    create_image_index,
    create_image_manifest,
    create_signed_v1_manifest,
    digest_of,
    seed_multiarch_image,
)

REGISTRY = "registry.example.com"
REPOSITORY = "team/app"


class BrokenCache:
    """Cache whose backend is unreachable."""

    def __init__(self):
        self.calls = 0

    async def get(self, key):
        self.calls += 1
        raise CacheError("connection refused")

    async def put(self, key, value, *, pinned):
        self.calls += 1
        raise CacheError("connection refused")

    async def invalidate(self, key):
        self.calls += 1
        raise CacheError("connection refused")


class TestFetch:
    """Test fetching and verifying single documents."""

    @pytest.mark.anyio
    async def test_fetch_by_tag(self, resolver, transport):
        """Test that a tag fetch returns the locally digested document."""
        body = create_image_manifest("v1")
        digest = transport.put_manifest(REGISTRY, REPOSITORY, body, OCI_IMAGE_MANIFEST, tag="v1")

        manifest = await resolver.fetch(parse_reference(f"{REGISTRY}/{REPOSITORY}:v1"))

        assert str(manifest.digest) == digest
        assert manifest.raw == body
        assert manifest.media_type == OCI_IMAGE_MANIFEST
        assert manifest.platform_manifests is None

    @pytest.mark.anyio
    async def test_accept_header_sent(self, resolver, transport):
        """Test that every supported manifest type is requested."""
        transport.put_manifest(REGISTRY, REPOSITORY, create_image_manifest("a"), OCI_IMAGE_MANIFEST, tag="a")
        await resolver.fetch(parse_reference(f"{REGISTRY}/{REPOSITORY}:a"))

        method, registry, path, headers = transport.requests[0]
        assert (method, registry, path) == ("GET", REGISTRY, f"/v2/{REPOSITORY}/manifests/a")
        assert OCI_IMAGE_INDEX in headers["Accept"]
        assert DOCKER_MANIFEST_LIST_V2 in headers["Accept"]

    @pytest.mark.anyio
    async def test_digest_mismatch_on_pinned_reference(self, resolver, transport, cache):
        """Test that content not hashing to the requested digest is rejected and not cached."""
        wanted = digest_of(b"expected content")
        path = f"/v2/{REPOSITORY}/manifests/{wanted}"
        transport.set_response(REGISTRY, path, TransportResponse(
            status_code=200,
            headers={"Content-Type": OCI_IMAGE_MANIFEST},
            body=create_image_manifest("substituted"),
        ))
        ref = parse_reference(f"{REGISTRY}/{REPOSITORY}@{wanted}")

        with pytest.raises(DigestMismatch) as exc_info:
            await resolver.fetch(ref)

        assert exc_info.value.expected == wanted
        assert exc_info.value.actual == digest_of(create_image_manifest("substituted"))
        assert exc_info.value.stage == "digest-check"
        assert await cache.get(ref.cache_key) is None

    @pytest.mark.anyio
    async def test_digest_mismatch_with_content_digest_header(self, resolver, transport, cache):
        """Test that a disagreeing Docker-Content-Digest header is rejected."""
        body = create_image_manifest("a")
        path = f"/v2/{REPOSITORY}/manifests/a"
        transport.set_response(REGISTRY, path, TransportResponse(
            status_code=200,
            headers={"Content-Type": OCI_IMAGE_MANIFEST, "Docker-Content-Digest": digest_of(b"other")},
            body=body,
        ))
        ref = parse_reference(f"{REGISTRY}/{REPOSITORY}:a")

        with pytest.raises(DigestMismatch) as exc_info:
            await resolver.fetch(ref)

        assert exc_info.value.expected == digest_of(b"other")
        assert exc_info.value.actual == digest_of(body)
        assert await cache.get(ref.cache_key) is None

    @pytest.mark.anyio
    async def test_missing_content_digest_header_is_fine(self, resolver, transport):
        """Test that the header is advisory."""
        transport.send_digest_header = False
        body = create_image_manifest("a")
        transport.put_manifest(REGISTRY, REPOSITORY, body, OCI_IMAGE_MANIFEST, tag="a")

        manifest = await resolver.fetch(parse_reference(f"{REGISTRY}/{REPOSITORY}:a"))
        assert str(manifest.digest) == digest_of(body)

    @pytest.mark.anyio
    async def test_signed_schema1_digest_covers_payload(self, resolver, transport):
        """Test that signed schema 1 manifests verify against their canonical payload."""
        body, payload = create_signed_v1_manifest()
        payload_digest = digest_of(payload)
        transport.set_response(REGISTRY, f"/v2/legacy/app/manifests/{payload_digest}", TransportResponse(
            status_code=200,
            headers={"Content-Type": DOCKER_MANIFEST_V1_SIGNED, "Docker-Content-Digest": payload_digest},
            body=body,
        ))

        manifest = await resolver.fetch(parse_reference(f"{REGISTRY}/legacy/app@{payload_digest}"))

        assert str(manifest.digest) == payload_digest
        assert manifest.media_type == DOCKER_MANIFEST_V1_SIGNED
        assert manifest.raw == body

    @pytest.mark.anyio
    async def test_not_found_preserves_error_codes(self, resolver, transport):
        """Test that 404 MANIFEST_UNKNOWN is classified as NotFound."""
        with pytest.raises(NotFound) as exc_info:
            await resolver.fetch(parse_reference(f"{REGISTRY}/{REPOSITORY}:missing"))

        assert exc_info.value.codes == ("MANIFEST_UNKNOWN",)
        assert exc_info.value.reference == f"{REGISTRY}/{REPOSITORY}:missing"

    @pytest.mark.anyio
    @pytest.mark.parametrize("status", [401, 403, 429, 500, 503])
    async def test_other_statuses_are_transport_errors(self, resolver, transport, status):
        """Test that non-404 failures keep their status code."""
        body = json.dumps({"errors": [{"code": "DENIED", "message": "requested access is denied"}]})
        transport.set_response(REGISTRY, f"/v2/{REPOSITORY}/manifests/a", TransportResponse(
            status_code=status, headers={}, body=body.encode(),
        ))

        with pytest.raises(TransportError) as exc_info:
            await resolver.fetch(parse_reference(f"{REGISTRY}/{REPOSITORY}:a"))

        assert exc_info.value.status_code == status
        assert [error.code for error in exc_info.value.errors] == ["DENIED"]
        assert "requested access is denied" in str(exc_info.value)

    @pytest.mark.anyio
    async def test_unsupported_media_type(self, resolver, transport):
        """Test that unknown documents are rejected."""
        transport.put_manifest(
            REGISTRY, REPOSITORY,
            json.dumps({"schemaVersion": 2, "mediaType": "application/vnd.example+json"}).encode(),
            "application/vnd.example+json", tag="odd",
        )
        with pytest.raises(UnsupportedMediaType):
            await resolver.fetch(parse_reference(f"{REGISTRY}/{REPOSITORY}:odd"))


class TestCaching:
    """Test cache interaction."""

    @pytest.mark.anyio
    async def test_second_fetch_served_from_cache(self, resolver, transport):
        """Test that a cached tag needs no network access."""
        transport.put_manifest(REGISTRY, REPOSITORY, create_image_manifest("a"), OCI_IMAGE_MANIFEST, tag="a")
        ref = parse_reference(f"{REGISTRY}/{REPOSITORY}:a")

        first = await resolver.fetch(ref)
        second = await resolver.fetch(ref)

        assert first == second
        assert transport.manifest_requests() == 1

    @pytest.mark.anyio
    async def test_tag_entries_expire_digest_entries_do_not(self, resolver, transport, clock):
        """Test TTL for tag keys versus pinning for digest keys."""
        body = create_image_manifest("a")
        digest = transport.put_manifest(REGISTRY, REPOSITORY, body, OCI_IMAGE_MANIFEST, tag="a")
        tag_ref = parse_reference(f"{REGISTRY}/{REPOSITORY}:a")
        digest_ref = parse_reference(f"{REGISTRY}/{REPOSITORY}@{digest}")

        await resolver.fetch(tag_ref)
        await resolver.fetch(digest_ref)
        assert transport.manifest_requests() == 1

        clock.advance(TAG_TTL_S + 1)

        await resolver.fetch(digest_ref)
        assert transport.manifest_requests() == 1

        await resolver.fetch(tag_ref)
        assert transport.manifest_requests(f"/v2/{REPOSITORY}/manifests/a") == 2

    @pytest.mark.anyio
    async def test_retargeted_tag_seen_after_expiry(self, resolver, transport, clock):
        """Test that a moved tag is observed once its entry expires."""
        ref = parse_reference(f"{REGISTRY}/{REPOSITORY}:latest")
        old = transport.put_manifest(REGISTRY, REPOSITORY, create_image_manifest("old"), OCI_IMAGE_MANIFEST, tag="latest")
        assert str((await resolver.fetch(ref)).digest) == old

        new = transport.put_manifest(REGISTRY, REPOSITORY, create_image_manifest("new"), OCI_IMAGE_MANIFEST, tag="latest")
        assert str((await resolver.fetch(ref)).digest) == old

        clock.advance(TAG_TTL_S)
        assert str((await resolver.fetch(ref)).digest) == new

    @pytest.mark.anyio
    async def test_corrupt_cache_entry_invalidated(self, resolver, transport, cache):
        """Test that an entry whose payload does not match its digest is discarded."""
        body = create_image_manifest("a")
        transport.put_manifest(REGISTRY, REPOSITORY, body, OCI_IMAGE_MANIFEST, tag="a")
        ref = parse_reference(f"{REGISTRY}/{REPOSITORY}:a")

        tampered = Manifest(
            media_type=OCI_IMAGE_MANIFEST,
            digest=Digest.of(body),
            raw=create_image_manifest("tampered"),
        )
        await cache.put(ref.cache_key, tampered.to_cache_bytes(), pinned=False)

        manifest = await resolver.fetch(ref)

        assert manifest.raw == body
        assert transport.manifest_requests() == 1

    @pytest.mark.anyio
    async def test_garbage_cache_entry_treated_as_miss(self, resolver, transport, cache):
        """Test that undecodable entries are discarded."""
        transport.put_manifest(REGISTRY, REPOSITORY, create_image_manifest("a"), OCI_IMAGE_MANIFEST, tag="a")
        ref = parse_reference(f"{REGISTRY}/{REPOSITORY}:a")
        await cache.put(ref.cache_key, b"\x00not an envelope", pinned=False)

        await resolver.fetch(ref)

        assert transport.manifest_requests() == 1
        assert cache.entry(ref.cache_key).value != b"\x00not an envelope"

    @pytest.mark.anyio
    async def test_unreachable_cache_degrades(self, transport):
        """Test that cache failures never change the resolution result."""
        body = create_image_manifest("a")
        transport.put_manifest(REGISTRY, REPOSITORY, body, OCI_IMAGE_MANIFEST, tag="a")
        broken = BrokenCache()
        resolver = ManifestResolver(transport, broken, default_platform=Platform("amd64", "linux"))

        manifest = await resolver.fetch(parse_reference(f"{REGISTRY}/{REPOSITORY}:a"))

        assert manifest.raw == body
        assert broken.calls > 0

    @pytest.mark.anyio
    async def test_failures_are_not_cached(self, resolver, transport):
        """Test that a NotFound is retried on the next call."""
        ref = parse_reference(f"{REGISTRY}/{REPOSITORY}:later")
        with pytest.raises(NotFound):
            await resolver.fetch(ref)

        transport.put_manifest(REGISTRY, REPOSITORY, create_image_manifest("later"), OCI_IMAGE_MANIFEST, tag="later")
        await resolver.fetch(ref)
        assert transport.manifest_requests() == 2


class TestCoalescing:
    """Test in-flight request coalescing."""

    @pytest.mark.anyio
    async def test_concurrent_fetches_share_one_request(self, resolver, transport):
        """Test that N concurrent callers cause exactly one registry fetch."""
        transport.put_manifest(REGISTRY, REPOSITORY, create_image_manifest("a"), OCI_IMAGE_MANIFEST, tag="a")
        ref = parse_reference(f"{REGISTRY}/{REPOSITORY}:a")
        transport.gate = asyncio.Event()

        tasks = [asyncio.create_task(resolver.fetch(ref)) for _ in range(10)]
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        transport.gate.set()
        results = await asyncio.gather(*tasks)

        assert transport.manifest_requests() == 1
        assert len({result.digest for result in results}) == 1

    @pytest.mark.anyio
    async def test_concurrent_failures_reach_every_caller(self, resolver, transport):
        """Test that a shared failure is raised to all waiters."""
        ref = parse_reference(f"{REGISTRY}/{REPOSITORY}:missing")
        transport.gate = asyncio.Event()

        tasks = [asyncio.create_task(resolver.fetch(ref)) for _ in range(5)]
        await asyncio.sleep(0)
        transport.gate.set()
        results = await asyncio.gather(*tasks, return_exceptions=True)

        assert all(isinstance(result, NotFound) for result in results)
        assert transport.manifest_requests() == 1

    @pytest.mark.anyio
    async def test_cancelled_caller_does_not_cancel_shared_fetch(self, resolver, transport, cache):
        """Test that the shared fetch completes and populates the cache."""
        transport.put_manifest(REGISTRY, REPOSITORY, create_image_manifest("a"), OCI_IMAGE_MANIFEST, tag="a")
        ref = parse_reference(f"{REGISTRY}/{REPOSITORY}:a")
        transport.gate = asyncio.Event()

        first = asyncio.create_task(resolver.fetch(ref))
        second = asyncio.create_task(resolver.fetch(ref))
        await asyncio.sleep(0)
        await asyncio.sleep(0)

        first.cancel()
        with pytest.raises(asyncio.CancelledError):
            await first

        transport.gate.set()
        manifest = await second

        assert transport.manifest_requests() == 1
        assert await cache.get(ref.cache_key) is not None
        assert manifest.raw == create_image_manifest("a")

    @pytest.mark.anyio
    async def test_different_keys_fetch_independently(self, resolver, transport):
        """Test that coalescing is per key."""
        transport.put_manifest(REGISTRY, REPOSITORY, create_image_manifest("a"), OCI_IMAGE_MANIFEST, tag="a")
        transport.put_manifest(REGISTRY, REPOSITORY, create_image_manifest("b"), OCI_IMAGE_MANIFEST, tag="b")

        await asyncio.gather(
            resolver.fetch(parse_reference(f"{REGISTRY}/{REPOSITORY}:a")),
            resolver.fetch(parse_reference(f"{REGISTRY}/{REPOSITORY}:b")),
        )
        assert transport.manifest_requests() == 2


class TestResolve:
    """Test platform resolution through indices."""

    @pytest.mark.anyio
    async def test_resolve_selects_platform(self, resolver, transport):
        """Test that arm64 selects the arm64 leaf."""
        _, leaves = seed_multiarch_image(transport, REGISTRY, REPOSITORY, "8.9")

        manifest = await resolver.resolve(
            parse_reference(f"{REGISTRY}/{REPOSITORY}:8.9"), Platform.parse("linux/arm64")
        )

        assert str(manifest.digest) == leaves["linux/arm64"]
        assert manifest.media_type == OCI_IMAGE_MANIFEST

    @pytest.mark.anyio
    async def test_resolve_uses_default_platform(self, resolver, transport):
        """Test fallback to the resolver's default platform."""
        _, leaves = seed_multiarch_image(transport, REGISTRY, REPOSITORY, "8.9")
        manifest = await resolver.resolve(parse_reference(f"{REGISTRY}/{REPOSITORY}:8.9"))
        assert str(manifest.digest) == leaves["linux/amd64"]

    @pytest.mark.anyio
    async def test_missing_platform_lists_available(self, resolver, transport):
        """Test that riscv64 is reported as unavailable."""
        seed_multiarch_image(transport, REGISTRY, REPOSITORY, "8.9")

        with pytest.raises(PlatformNotFound) as exc_info:
            await resolver.resolve(
                parse_reference(f"{REGISTRY}/{REPOSITORY}:8.9"), Platform.parse("linux/riscv64")
            )

        assert isinstance(exc_info.value, UnsupportedMediaType)
        assert exc_info.value.platform == "linux/riscv64"
        assert set(exc_info.value.available) == {
            "linux/amd64", "linux/arm64", "linux/ppc64le", "linux/s390x"
        }

    @pytest.mark.anyio
    async def test_variant_ambiguity(self, resolver, transport):
        """Test that a variant-less target matching several variants is ambiguous."""
        platforms = (("linux", "arm", "v6"), ("linux", "arm", "v7"))
        _, leaves = seed_multiarch_image(transport, REGISTRY, REPOSITORY, "multi", platforms=platforms)
        ref = parse_reference(f"{REGISTRY}/{REPOSITORY}:multi")

        with pytest.raises(PlatformNotFound, match="ambiguous"):
            await resolver.resolve(ref, Platform.parse("linux/arm"))

        manifest = await resolver.resolve(ref, Platform.parse("linux/arm/v7"))
        assert str(manifest.digest) == leaves["linux/arm/v7"]

    @pytest.mark.anyio
    async def test_leaf_resolves_to_itself(self, resolver, transport):
        """Test that non-index documents need no selection."""
        digest = transport.put_manifest(REGISTRY, REPOSITORY, create_image_manifest("a"), OCI_IMAGE_MANIFEST, tag="a")
        manifest = await resolver.resolve(
            parse_reference(f"{REGISTRY}/{REPOSITORY}:a"), Platform.parse("linux/s390x")
        )
        assert str(manifest.digest) == digest

    @pytest.mark.anyio
    async def test_docker_manifest_list(self, resolver, transport):
        """Test Docker manifest lists resolve like OCI indices."""
        _, leaves = seed_multiarch_image(
            transport, REGISTRY, REPOSITORY, "docker", index_media_type=DOCKER_MANIFEST_LIST_V2
        )
        manifest = await resolver.resolve(
            parse_reference(f"{REGISTRY}/{REPOSITORY}:docker"), Platform.parse("linux/ppc64le")
        )
        assert str(manifest.digest) == leaves["linux/ppc64le"]

    @pytest.mark.anyio
    async def test_nested_index(self, resolver, transport):
        """Test that an index pointing at an index is followed."""
        inner_digest, leaves = seed_multiarch_image(transport, REGISTRY, REPOSITORY, "inner")
        outer = create_image_index([(("linux", "arm64", None), inner_digest, OCI_IMAGE_INDEX)])
        transport.put_manifest(REGISTRY, REPOSITORY, outer, OCI_IMAGE_INDEX, tag="outer")

        manifest = await resolver.resolve(
            parse_reference(f"{REGISTRY}/{REPOSITORY}:outer"), Platform.parse("linux/arm64")
        )
        assert str(manifest.digest) == leaves["linux/arm64"]

    @pytest.mark.anyio
    async def test_index_nesting_limit(self, resolver, transport):
        """Test that too deeply nested indices are rejected."""
        _, leaves = seed_multiarch_image(transport, REGISTRY, REPOSITORY, "base")
        child = leaves["linux/amd64"]
        child_type = OCI_IMAGE_MANIFEST
        for level in range(MAX_INDEX_DEPTH + 1):
            index = create_image_index([(("linux", "amd64", None), child, child_type)])
            child = transport.put_manifest(REGISTRY, REPOSITORY, index, OCI_IMAGE_INDEX, tag=f"level{level}")
            child_type = OCI_IMAGE_INDEX

        with pytest.raises(UnsupportedMediaType, match="nesting"):
            await resolver.resolve(parse_reference(f"{REGISTRY}/{REPOSITORY}:level{MAX_INDEX_DEPTH}"))

    @pytest.mark.anyio
    async def test_cached_tag_resolves_for_any_platform_offline(self, resolver, transport):
        """Test that the cached index serves every platform without refetching it."""
        _, leaves = seed_multiarch_image(transport, REGISTRY, REPOSITORY, "8.9")
        ref = parse_reference(f"{REGISTRY}/{REPOSITORY}:8.9")

        await resolver.resolve(ref, Platform.parse("linux/arm64"))
        await resolver.resolve(ref, Platform.parse("linux/s390x"))
        requests_before = transport.manifest_requests()

        arm = await resolver.resolve(ref, Platform.parse("linux/arm64"))
        s390x = await resolver.resolve(ref, Platform.parse("linux/s390x"))

        assert transport.manifest_requests() == requests_before
        assert transport.manifest_requests(f"/v2/{REPOSITORY}/manifests/8.9") == 1
        assert str(arm.digest) == leaves["linux/arm64"]
        assert str(s390x.digest) == leaves["linux/s390x"]

    @pytest.mark.anyio
    async def test_tag_fetch_also_caches_by_digest(self, transport, clock):
        """Test that content fetched by tag is reusable by digest."""
        cache = MemoryCache(TAG_TTL_S, clock=clock)
        resolver = ManifestResolver(transport, cache)
        digest = transport.put_manifest(REGISTRY, REPOSITORY, create_image_manifest("a"), OCI_IMAGE_MANIFEST, tag="a")

        await resolver.fetch(parse_reference(f"{REGISTRY}/{REPOSITORY}:a"))
        digest_ref = parse_reference(f"{REGISTRY}/{REPOSITORY}@{digest}")

        assert cache.entry(digest_ref.cache_key).digest_pinned is True
        await resolver.fetch(digest_ref)
        assert transport.manifest_requests() == 1
