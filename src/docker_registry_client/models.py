"""
Value types produced by manifest resolution.

Platform is the selection key for manifest lists, Manifest is a fetched and
digest-verified document, and SignatureResult carries the outcome of a
signature lookup where "no signature" is a result rather than an error.
"""
from __future__ import annotations

import base64
import json
import platform as _platform
import sys
from dataclasses import dataclass
from typing import Any, Optional

from .media_types import is_index
from .reference import Digest, Reference

__all__ = ["Platform", "PlatformManifest", "Manifest", "SignatureResult"]

# Python's machine names -> GOARCH (architecture, variant)
_MACHINE_TO_GOARCH = {
    "x86_64": ("amd64", None),
    "amd64": ("amd64", None),
    "aarch64": ("arm64", None),
    "arm64": ("arm64", None),
    "armv7l": ("arm", "v7"),
    "armv6l": ("arm", "v6"),
    "i386": ("386", None),
    "i686": ("386", None),
    "x86": ("386", None),
    "ppc64le": ("ppc64le", None),
    "s390x": ("s390x", None),
    "riscv64": ("riscv64", None),
}

# Version of the cache envelope format
_ENVELOPE_VERSION = 1


@dataclass(frozen=True)
class Platform:
    """
    Selection key for a manifest list entry.

    Uses Go's GOOS/GOARCH vocabulary ("linux", "arm64", variant "v8").
    """
    architecture: str
    os: str
    variant: Optional[str] = None

    @classmethod
    def parse(cls, text: str) -> Platform:
        """
        Parse docker's ``os/arch[/variant]`` notation.

        Raises:
            ValueError: If the text does not have two or three non-empty parts
        """
        parts = text.strip().split("/")
        if len(parts) not in (2, 3) or not all(parts):
            raise ValueError(f"Invalid platform {text!r}, expected os/arch[/variant]")
        return cls(
            os=parts[0],
            architecture=parts[1],
            variant=parts[2] if len(parts) == 3 else None,
        )

    @classmethod
    def host(cls) -> Platform:
        """Platform of the running interpreter. Images are linux unless on windows."""
        machine = _platform.machine().lower()
        architecture, variant = _MACHINE_TO_GOARCH.get(machine, (machine, None))
        os_name = "windows" if sys.platform.startswith("win") else "linux"
        return cls(architecture=architecture, os=os_name, variant=variant)

    @classmethod
    def from_descriptor(cls, data: dict[str, Any]) -> Platform:
        return cls(
            architecture=str(data.get("architecture", "")),
            os=str(data.get("os", "")),
            variant=data.get("variant") or None,
        )

    def matches(self, candidate: Platform) -> bool:
        """
        True when ``candidate`` satisfies this target platform.

        A target without a variant accepts candidates of any variant.
        """
        if self.os != candidate.os or self.architecture != candidate.architecture:
            return False
        return self.variant is None or self.variant == candidate.variant

    def __str__(self) -> str:
        text = f"{self.os}/{self.architecture}"
        return f"{text}/{self.variant}" if self.variant else text


@dataclass(frozen=True)
class PlatformManifest:
    """One entry of a manifest list / image index."""
    platform: Platform
    digest: Digest
    media_type: str
    size: int = 0


@dataclass(frozen=True)
class Manifest:
    """
    A fetched manifest document.

    Invariants:
    - digest is computed locally from raw, never copied from a response header
    - platform_manifests is set only for manifest lists / indices
    """
    media_type: str
    digest: Digest
    raw: bytes
    platform_manifests: Optional[tuple[PlatformManifest, ...]] = None

    @property
    def is_index(self) -> bool:
        return is_index(self.media_type)

    def json(self) -> Any:
        return json.loads(self.raw)

    def to_cache_bytes(self) -> bytes:
        """Serialize into the envelope stored in a cache backend."""
        envelope = {
            "v": _ENVELOPE_VERSION,
            "mediaType": self.media_type,
            "digest": str(self.digest),
            "payload": base64.b64encode(self.raw).decode("ascii"),
        }
        return json.dumps(envelope, sort_keys=True, separators=(",", ":")).encode()

    @staticmethod
    def envelope_fields(data: bytes) -> tuple[str, Digest, bytes]:
        """
        Decode a cache envelope into (media_type, digest, raw).

        Raises:
            ValueError: If the envelope is malformed or from another format version
        """
        try:
            envelope = json.loads(data)
            if envelope.get("v") != _ENVELOPE_VERSION:
                raise ValueError(f"Unknown cache envelope version: {envelope.get('v')!r}")
            return (
                envelope["mediaType"],
                Digest.parse(envelope["digest"]),
                base64.b64decode(envelope["payload"], validate=True),
            )
        except (KeyError, TypeError, AttributeError, json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ValueError(f"Malformed cache envelope: {e}") from e


@dataclass(frozen=True)
class SignatureResult:
    """
    Outcome of a signature lookup.

    ``manifest is None`` means the registry has no signature for the image:
    an expected outcome for unsigned images, distinct from a failed lookup.
    """
    reference: Reference
    manifest: Optional[Manifest] = None

    @property
    def found(self) -> bool:
        return self.manifest is not None
