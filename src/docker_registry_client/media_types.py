"""
Manifest media types and constants.

Single source of truth for the Docker and OCI manifest media types the
resolver accepts.
"""
from __future__ import annotations

# Docker schema 1 (legacy) manifests
DOCKER_MANIFEST_V1 = "application/vnd.docker.distribution.manifest.v1+json"
DOCKER_MANIFEST_V1_SIGNED = "application/vnd.docker.distribution.manifest.v1+prettyjws"

# Docker schema 2
DOCKER_MANIFEST_V2 = "application/vnd.docker.distribution.manifest.v2+json"
DOCKER_MANIFEST_LIST_V2 = "application/vnd.docker.distribution.manifest.list.v2+json"

# OCI image format
OCI_IMAGE_MANIFEST = "application/vnd.oci.image.manifest.v1+json"
OCI_IMAGE_INDEX = "application/vnd.oci.image.index.v1+json"
OCI_ARTIFACT_MANIFEST = "application/vnd.oci.artifact.manifest.v1+json"

# Manifests that enumerate per-platform children
INDEX_MEDIA_TYPES = frozenset({
    DOCKER_MANIFEST_LIST_V2,
    OCI_IMAGE_INDEX,
})

# Manifests that reference a config and layers
LEAF_MEDIA_TYPES = frozenset({
    DOCKER_MANIFEST_V1,
    DOCKER_MANIFEST_V1_SIGNED,
    DOCKER_MANIFEST_V2,
    OCI_IMAGE_MANIFEST,
    OCI_ARTIFACT_MANIFEST,
})

# Order is the preference order sent in the Accept header
ACCEPTED_MANIFEST_TYPES = (
    OCI_IMAGE_INDEX,
    DOCKER_MANIFEST_LIST_V2,
    OCI_IMAGE_MANIFEST,
    DOCKER_MANIFEST_V2,
    OCI_ARTIFACT_MANIFEST,
    DOCKER_MANIFEST_V1_SIGNED,
    DOCKER_MANIFEST_V1,
)

ACCEPT_HEADER = ", ".join(ACCEPTED_MANIFEST_TYPES)


def is_index(media_type: str) -> bool:
    return media_type in INDEX_MEDIA_TYPES


def is_supported(media_type: str) -> bool:
    return media_type in INDEX_MEDIA_TYPES or media_type in LEAF_MEDIA_TYPES


__all__ = [
    "DOCKER_MANIFEST_V1",
    "DOCKER_MANIFEST_V1_SIGNED",
    "DOCKER_MANIFEST_V2",
    "DOCKER_MANIFEST_LIST_V2",
    "OCI_IMAGE_MANIFEST",
    "OCI_IMAGE_INDEX",
    "OCI_ARTIFACT_MANIFEST",
    "INDEX_MEDIA_TYPES",
    "LEAF_MEDIA_TYPES",
    "ACCEPTED_MANIFEST_TYPES",
    "ACCEPT_HEADER",
    "is_index",
    "is_supported",
]
