"""
Image reference parsing.

Provides consistent parsing and validation of ``registry/repository[:tag|@digest]``
references, plus the cosign signature tag derivation. Registry and repository
are both mandatory: there is no implicit ``docker.io/library`` expansion.
"""
from __future__ import annotations

import dataclasses
import hashlib
import re
from dataclasses import dataclass
from typing import Optional, Union

from .errors import InvalidReference

__all__ = [
    "Tag",
    "Digest",
    "Selector",
    "Reference",
    "DEFAULT_TAG",
    "parse_reference",
    "signature_tag",
    "derive_signature_reference",
]

DEFAULT_TAG = "latest"

# Hex lengths of the digest algorithms we can verify locally
_DIGEST_HEX_LENGTHS = {"sha256": 64, "sha384": 96, "sha512": 128}

_DIGEST_RE = re.compile(r"^([a-z0-9]+(?:[.+_-][a-z0-9]+)*):([a-zA-Z0-9=_-]+)$")
_TAG_RE = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9_.-]{0,127}$")
_REPO_COMPONENT_RE = re.compile(r"^[a-z0-9]+(?:(?:[._]|__|-+)[a-z0-9]+)*$")
_HOST_LABEL = r"[a-zA-Z0-9](?:[a-zA-Z0-9-]*[a-zA-Z0-9])?"
_REGISTRY_RE = re.compile(rf"^{_HOST_LABEL}(?:\.{_HOST_LABEL})*(?::[0-9]+)?$")

MAX_REPOSITORY_LENGTH = 255


@dataclass(frozen=True)
class Tag:
    """Mutable pointer to a manifest; may be retargeted by the registry operator."""
    name: str

    def __post_init__(self) -> None:
        if not _TAG_RE.match(self.name):
            raise InvalidReference(f"Invalid tag: {self.name!r}")

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class Digest:
    """
    Algorithm-prefixed content hash.

    Invariants:
    - algorithm: one of sha256, sha384, sha512
    - hex: lowercase hex of the algorithm's exact length
    """
    algorithm: str
    hex: str

    def __post_init__(self) -> None:
        expected_length = _DIGEST_HEX_LENGTHS.get(self.algorithm)
        if expected_length is None:
            raise InvalidReference(f"Unsupported digest algorithm: {self.algorithm!r}")
        if len(self.hex) != expected_length or not re.fullmatch(r"[a-f0-9]+", self.hex):
            raise InvalidReference(
                f"Invalid {self.algorithm} digest: expected {expected_length} lowercase hex chars, "
                f"got {self.hex!r}"
            )

    @classmethod
    def parse(cls, text: str) -> Digest:
        """
        Parse ``algorithm:hex``.

        Raises:
            InvalidReference: If the digest is malformed or uses an unsupported algorithm
        """
        match = _DIGEST_RE.match(text)
        if not match:
            raise InvalidReference(f"Invalid digest format: {text!r}")
        algorithm, value = match.groups()
        return cls(algorithm=algorithm, hex=value)

    @classmethod
    def of(cls, data: bytes, algorithm: str = "sha256") -> Digest:
        """Compute the digest of ``data`` locally."""
        if algorithm not in _DIGEST_HEX_LENGTHS:
            raise InvalidReference(f"Unsupported digest algorithm: {algorithm!r}")
        return cls(algorithm=algorithm, hex=hashlib.new(algorithm, data).hexdigest())

    def __str__(self) -> str:
        return f"{self.algorithm}:{self.hex}"


Selector = Union[Tag, Digest]


@dataclass(frozen=True)
class Reference:
    """
    Registry-scoped pointer to a manifest, by tag or by digest.

    Attributes:
        registry: Registry host with optional port (e.g., "ghcr.io", "localhost:5000")
        repository: Repository path (e.g., "sigstore/cosign/cosign")
        selector: Tag (mutable) or Digest (immutable)
    """
    registry: str
    repository: str
    selector: Selector

    @property
    def pinned(self) -> bool:
        """True when the reference addresses immutable content."""
        return isinstance(self.selector, Digest)

    @property
    def digest(self) -> Optional[Digest]:
        return self.selector if isinstance(self.selector, Digest) else None

    @property
    def tag(self) -> Optional[str]:
        return self.selector.name if isinstance(self.selector, Tag) else None

    @property
    def cache_key(self) -> str:
        return f"{self.registry}|{self.repository}|{self.selector}"

    @property
    def manifest_path(self) -> str:
        return f"/v2/{self.repository}/manifests/{self.selector}"

    def with_digest(self, digest: Digest) -> Reference:
        """Same repository, addressed by ``digest``."""
        return dataclasses.replace(self, selector=digest)

    def signature_reference(self, digest: Digest) -> Reference:
        return derive_signature_reference(self, digest)

    def __str__(self) -> str:
        separator = "@" if self.pinned else ":"
        return f"{self.registry}/{self.repository}{separator}{self.selector}"


def parse_reference(text: str) -> Reference:
    """
    Parse and validate an image reference.

    Accepts references in the form ``registry/repository[:tag|@digest]``.

    Validation:
    - The first path component must be a host: it contains "." or ":",
      or is "localhost"
    - Every repository component follows the distribution name grammar
    - A missing selector means tag "latest"
    - With both tag and digest, the digest wins

    Args:
        text: Reference string to parse

    Returns:
        Reference with validated components

    Raises:
        InvalidReference: If the reference is malformed or lacks a registry

    Examples:
        >>> parse_reference("registry.access.redhat.com/ubi8:8.9")
        Reference(registry='registry.access.redhat.com', repository='ubi8', selector=Tag(name='8.9'))

        >>> str(parse_reference("ghcr.io/sigstore/cosign/cosign"))
        'ghcr.io/sigstore/cosign/cosign:latest'
    """
    if text is None or not text.strip():
        raise InvalidReference("Reference cannot be empty")

    name = text.strip()

    selector: Optional[Selector] = None
    if "@" in name:
        name, digest_text = name.split("@", 1)
        selector = Digest.parse(digest_text)

    # A colon after the last slash separates the tag; earlier colons belong to a port
    colon = name.rfind(":")
    if colon > name.rfind("/"):
        name, tag_text = name[:colon], name[colon + 1:]
        tag = Tag(tag_text)
        if selector is None:
            selector = tag

    if "/" not in name:
        raise InvalidReference(
            f"Reference must include registry and repository (registry/repository): {text!r}"
        )

    registry, repository = name.split("/", 1)

    if not registry or not (
        "." in registry or ":" in registry or registry == "localhost"
    ):
        raise InvalidReference(f"Reference does not start with a registry host: {text!r}")
    if not _REGISTRY_RE.match(registry):
        raise InvalidReference(f"Invalid registry host: {registry!r}")

    if not repository:
        raise InvalidReference(f"Repository cannot be empty: {text!r}")
    if len(repository) > MAX_REPOSITORY_LENGTH:
        raise InvalidReference(f"Repository name too long: {repository!r}")
    for component in repository.split("/"):
        if not _REPO_COMPONENT_RE.match(component):
            raise InvalidReference(f"Invalid repository component {component!r} in {text!r}")

    return Reference(
        registry=registry,
        repository=repository,
        selector=selector if selector is not None else Tag(DEFAULT_TAG),
    )


def signature_tag(digest: Digest) -> str:
    """
    Cosign signature tag for an image digest.

    ``sha256:abc...`` becomes ``sha256-abc....sig``.
    """
    return f"{digest.algorithm}-{digest.hex}.sig"


def derive_signature_reference(image: Reference, digest: Digest) -> Reference:
    """
    Reference of the detached signature manifest for ``digest``.

    Same registry and repository as ``image``; the selector is the cosign tag.
    ``digest`` must be the leaf (platform) manifest digest, not an index digest.
    """
    return Reference(
        registry=image.registry,
        repository=image.repository,
        selector=Tag(signature_tag(digest)),
    )
