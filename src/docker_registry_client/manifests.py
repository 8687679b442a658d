"""
Manifest body decoding.

Determines the media type of a fetched manifest, decodes manifest list
entries, and recovers the canonical payload of signed schema 1 manifests
(whose registry digest covers the payload without its JWS signatures).
"""
from __future__ import annotations

import base64
import json
import logging
from typing import Any, Optional

from .errors import InvalidReference, UnsupportedMediaType
from .media_types import (
    DOCKER_MANIFEST_V1,
    DOCKER_MANIFEST_V1_SIGNED,
    OCI_IMAGE_INDEX,
    OCI_IMAGE_MANIFEST,
    is_index,
    is_supported,
)
from .models import Platform, PlatformManifest
from .reference import Digest

logger = logging.getLogger(__name__)

__all__ = ["decode_manifest", "platform_entries", "signed_v1_payload"]


def decode_manifest(body: bytes, content_type: Optional[str] = None) -> tuple[str, dict[str, Any]]:
    """
    Decode a manifest body and determine its media type.

    The body's own ``mediaType`` wins; the Content-Type header is used when
    the body has none; schema 1 and OCI documents without either are
    recognized by shape.

    Args:
        body: Raw manifest bytes
        content_type: Content-Type response header, if any

    Returns:
        (media_type, parsed_document)

    Raises:
        UnsupportedMediaType: If the body is not a JSON object, the media type is
            unknown, or body and header declare different manifest types
    """
    try:
        document = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise UnsupportedMediaType(f"Manifest is not valid JSON: {e}")
    if not isinstance(document, dict):
        raise UnsupportedMediaType("Manifest is not a JSON object")

    header_type = _normalize_content_type(content_type)
    body_type = document.get("mediaType")

    if isinstance(body_type, str) and body_type:
        if not is_supported(body_type):
            raise UnsupportedMediaType(f"Unsupported manifest media type: {body_type}", body_type)
        if header_type and header_type != body_type:
            if is_supported(header_type):
                raise UnsupportedMediaType(
                    f"Content-Type {header_type} contradicts manifest mediaType {body_type}",
                    body_type,
                )
            logger.warning(f"Ignoring Content-Type {header_type} for manifest of type {body_type}")
        media_type = body_type
    elif header_type and is_supported(header_type):
        media_type = header_type
    else:
        media_type = _infer_media_type(document)

    if is_index(media_type) and not isinstance(document.get("manifests"), list):
        raise UnsupportedMediaType(f"{media_type} document has no manifests list", media_type)

    return media_type, document


def platform_entries(document: dict[str, Any]) -> tuple[PlatformManifest, ...]:
    """
    Decode the per-platform entries of a manifest list / image index.

    Entries without a platform (e.g. attestation manifests) cannot be
    selected and are skipped.

    Raises:
        UnsupportedMediaType: If an entry is not a descriptor with a valid digest
    """
    entries = []
    for raw_entry in document.get("manifests", []):
        if not isinstance(raw_entry, dict):
            raise UnsupportedMediaType(f"Invalid manifest list entry: {raw_entry!r}")
        try:
            digest = Digest.parse(str(raw_entry.get("digest", "")))
        except InvalidReference as e:
            raise UnsupportedMediaType(f"Invalid digest in manifest list entry: {e}") from e

        platform = raw_entry.get("platform")
        if not isinstance(platform, dict):
            logger.debug(f"Skipping manifest list entry {digest} without platform")
            continue

        try:
            size = int(raw_entry.get("size", 0) or 0)
        except (TypeError, ValueError) as e:
            raise UnsupportedMediaType(f"Invalid size in manifest list entry {digest}: {e}") from e

        entries.append(PlatformManifest(
            platform=Platform.from_descriptor(platform),
            digest=digest,
            media_type=str(raw_entry.get("mediaType", "")),
            size=size,
        ))
    return tuple(entries)


def signed_v1_payload(body: bytes) -> Optional[bytes]:
    """
    Canonical payload of a signed schema 1 manifest.

    The JWS protected header records ``formatLength`` and ``formatTail``: the
    payload is the first formatLength bytes of the body followed by the
    decoded tail. Returns None when the body is not a signed schema 1 manifest.
    """
    try:
        document = json.loads(body)
        protected = document["signatures"][0]["protected"]
        header = json.loads(_b64url_decode(protected))
        format_length = int(header["formatLength"])
        format_tail = _b64url_decode(header["formatTail"])
    except (KeyError, IndexError, TypeError, ValueError):
        return None
    if format_length < 0 or format_length > len(body):
        return None
    return body[:format_length] + format_tail


def _infer_media_type(document: dict[str, Any]) -> str:
    if document.get("schemaVersion") == 1:
        return DOCKER_MANIFEST_V1_SIGNED if "signatures" in document else DOCKER_MANIFEST_V1
    if isinstance(document.get("manifests"), list):
        return OCI_IMAGE_INDEX
    if "config" in document and "layers" in document:
        return OCI_IMAGE_MANIFEST
    raise UnsupportedMediaType("Cannot determine manifest media type")


def _normalize_content_type(content_type: Optional[str]) -> Optional[str]:
    if not content_type:
        return None
    return content_type.split(";", 1)[0].strip().lower() or None


def _b64url_decode(value: str) -> bytes:
    return base64.urlsafe_b64decode(value + "=" * (-len(value) % 4))
