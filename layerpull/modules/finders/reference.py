# reference.py
# Image reference model and parsing of oci:// reference strings.

import enum
import re
from dataclasses import dataclass, field, replace
from typing import Optional

from layerpull.modules.errors import InvalidReferenceError
from layerpull.modules.formatters import DOCKER_HUB_REGISTRY

OCI_SCHEME = "oci://"
DEFAULT_TAG = "latest"

# =============================================================================
# Registry naming rules
# =============================================================================

_PATH_COMPONENT = re.compile(r"^[a-z0-9]+(?:(?:\.|_|__|-+)[a-z0-9]+)*$")
_TAG = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9._-]{0,127}$")
_DIGEST = re.compile(r"^[a-z0-9]+(?:[.+_-][a-z0-9]+)*:[a-zA-Z0-9=_-]+$")
_SHA256_HEX = re.compile(r"^[a-f0-9]{64}$")
_HOST = re.compile(r"^[a-zA-Z0-9.-]+(?::[0-9]+)?$")


class ReferenceKind(enum.Enum):
    TAG = "tag"
    DIGEST = "digest"


@dataclass(frozen=True)
class ImageReference:
    """
    A parsed artifact reference.

    Once a digest is present it is authoritative: `identifier` returns it and
    the tag is only kept for logging.
    """
    registry: str
    repository: str
    tag: Optional[str] = None
    digest: Optional[str] = None
    scheme: str = OCI_SCHEME

    @property
    def kind(self) -> ReferenceKind:
        if self.digest:
            return ReferenceKind.DIGEST
        return ReferenceKind.TAG

    @property
    def identifier(self) -> str:
        return self.digest or self.tag or DEFAULT_TAG

    @property
    def revision(self) -> str:
        if self.tag and self.digest:
            return f"{self.tag}@{self.digest}"
        return self.identifier

    @property
    def name(self) -> str:
        return f"{self.registry}/{self.repository}"

    def with_digest(self, digest: str) -> "ImageReference":
        return replace(self, digest=digest)

    def __str__(self):
        if self.digest:
            return f"{self.scheme}{self.name}@{self.digest}"
        return f"{self.scheme}{self.name}:{self.identifier}"


@dataclass(frozen=True)
class Descriptor:
    """A content descriptor as found in manifests and indexes."""
    media_type: str
    digest: str
    size: int
    platform: Optional[dict] = None

    @classmethod
    def from_dict(cls, data: dict) -> "Descriptor":
        """
        Build a descriptor from its JSON form.

        Raises:
            ValueError: if the digest or size is missing or malformed
        """
        digest = data.get("digest")
        size = data.get("size")
        if not isinstance(digest, str) or not _DIGEST.match(digest):
            raise ValueError(f"invalid descriptor digest: {digest!r}")
        if not isinstance(size, int) or isinstance(size, bool) or size < 0:
            raise ValueError(f"invalid descriptor size: {size!r}")
        return cls(
            media_type=data.get("mediaType", ""),
            digest=digest,
            size=size,
            platform=data.get("platform"),
        )


@dataclass
class Manifest:
    """An image manifest or an image index, keeping the raw layer entries in order."""
    media_type: str
    digest: Optional[str] = None
    layers: list = field(default_factory=list)
    manifests: list = field(default_factory=list)
    raw: dict = field(default_factory=dict)

    @property
    def is_index(self) -> bool:
        return "manifest.list" in self.media_type or "image.index" in self.media_type or (
            not self.media_type and bool(self.manifests) and not self.layers
        )

    @classmethod
    def from_dict(cls, data: dict, digest: Optional[str] = None) -> "Manifest":
        if not isinstance(data, dict):
            raise ValueError("manifest is not a JSON object")
        layers = data.get("layers", [])
        manifests = data.get("manifests", [])
        if not isinstance(layers, list) or not isinstance(manifests, list):
            raise ValueError("manifest layers/manifests must be lists")
        return cls(
            media_type=data.get("mediaType", ""),
            digest=digest,
            layers=layers,
            manifests=manifests,
            raw=data,
        )


# =============================================================================
# Parsing
# =============================================================================

def is_valid_repository(repository: str) -> bool:
    if not repository or len(repository) > 255:
        return False
    return all(_PATH_COMPONENT.match(part) for part in repository.split("/"))


def is_valid_tag(tag: str) -> bool:
    return bool(_TAG.match(tag))


def is_valid_digest(digest: str) -> bool:
    if not _DIGEST.match(digest):
        return False
    algorithm, _, encoded = digest.partition(":")
    if algorithm == "sha256":
        return bool(_SHA256_HEX.match(encoded))
    return True


def _split_registry(path: str):
    """Split host from repository path, defaulting to Docker Hub like `docker pull` does."""
    first, sep, rest = path.partition("/")
    if sep and ("." in first or ":" in first or first == "localhost"):
        if not _HOST.match(first):
            raise InvalidReferenceError(f"invalid registry host {first!r}")
        return first, rest

    if "/" not in path:
        path = f"library/{path}"
    return DOCKER_HUB_REGISTRY, path


def parse_image_ref(raw: str) -> ImageReference:
    """
    Parse `oci://<host>/<org>/<repo>[:<tag>|@<digest>]`.

    Args:
        raw: the user supplied reference

    Returns:
        ImageReference with either a tag (defaulting to `latest`) or a digest.

    Raises:
        InvalidReferenceError: on a missing scheme or any naming violation
    """
    if not raw or not raw.startswith(OCI_SCHEME):
        raise InvalidReferenceError(
            f"Image must be in the format {OCI_SCHEME}<domain>/<org>/<repo>, got {raw!r}"
        )

    remainder = raw[len(OCI_SCHEME):]
    tag = None
    digest = None

    if "@" in remainder:
        remainder, _, digest = remainder.partition("@")
        if not is_valid_digest(digest):
            raise InvalidReferenceError(f"invalid digest {digest!r}")

    # a ':' after the last '/' separates the tag; earlier ones belong to host:port
    head, sep, candidate = remainder.rpartition(":")
    if sep and "/" not in candidate:
        remainder, tag = head, candidate
        if not is_valid_tag(tag):
            raise InvalidReferenceError(f"invalid tag {tag!r}")

    if not digest and not tag:
        tag = DEFAULT_TAG

    registry, repository = _split_registry(remainder)
    if not is_valid_repository(repository):
        raise InvalidReferenceError(f"invalid repository name {repository!r}")

    return ImageReference(
        registry=registry,
        repository=repository,
        tag=tag,
        digest=digest,
    )
