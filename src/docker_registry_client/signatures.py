"""
Detached signature lookup.

Cosign stores the signature of an image as a manifest in the image's own
repository, tagged ``<alg>-<hex>.sig`` after the signed manifest digest.
Only the location is computed here; signature contents are not verified.
"""
from __future__ import annotations

import logging
from typing import Optional

from .errors import NotFound
from .models import Platform, SignatureResult
from .reference import Digest, Reference, derive_signature_reference
from .resolver import ManifestResolver

logger = logging.getLogger(__name__)

__all__ = ["SignatureLocator"]


class SignatureLocator:
    """Find the signature manifest of an image."""

    def __init__(self, resolver: ManifestResolver):
        self.resolver = resolver

    async def find_signature(
        self,
        image: Reference,
        digest: Optional[Digest] = None,
        *,
        platform: Optional[Platform] = None,
    ) -> SignatureResult:
        """
        Look up the signature manifest for an image.

        Args:
            image: Image reference; its registry and repository hold the signature
            digest: Leaf manifest digest to look up. When omitted, the image is
                resolved (for ``platform``) to its leaf manifest first; a pinned
                index resolves through to the selected leaf
            platform: Platform used when resolving the image

        Returns:
            SignatureResult; ``manifest`` is None when the image is unsigned

        Raises:
            NotFound: If the image itself does not exist
            TransportError, DigestMismatch, UnsupportedMediaType: Lookup failures
        """
        if digest is None:
            digest = (await self.resolver.resolve(image, platform)).digest

        signature_ref = derive_signature_reference(image, digest)
        try:
            manifest = await self.resolver.fetch(signature_ref)
        except NotFound:
            logger.info(f"No signature for {image} ({digest})")
            return SignatureResult(reference=signature_ref, manifest=None)

        logger.info(f"Found signature {signature_ref} -> {manifest.digest}")
        return SignatureResult(reference=signature_ref, manifest=manifest)
