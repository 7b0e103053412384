# extractor.py
# Fetches the manifest of a resolved reference and writes its first layer to disk.

import contextlib
import hashlib
import logging
import os
import shutil
import tempfile
from dataclasses import dataclass
from typing import Optional

import requests

from layerpull.modules.errors import (
    BlobReadError,
    DigestMismatchError,
    ManifestFetchError,
    NoLayersError,
    RegistryError,
    WriteError,
)
from layerpull.modules.finders.reference import Descriptor, ImageReference, Manifest
from layerpull.modules.formatters import format_platform, human_readable_size

LAYER_FILENAME = "layer.tar.gz"
DEFAULT_PLATFORM = "linux/amd64"
DEFAULT_CHUNK_SIZE = 65536  # 64KB chunks
FILE_MODE = 0o644


# =============================================================================
# Data Classes
# =============================================================================

@dataclass
class ExtractResult:
    """Result of extracting a layer."""
    path: str
    layer: Descriptor
    manifest_digest: Optional[str]
    bytes_written: int


def _platform_matches(platform: Optional[dict], wanted: str) -> bool:
    if not platform:
        return False
    os_name, _, rest = wanted.partition("/")
    arch, _, variant = rest.partition("/")
    if platform.get("os") != os_name or platform.get("architecture") != arch:
        return False
    return not variant or platform.get("variant") == variant


class LayerExtractor:
    """
    Write the first layer of an image to `<dir>/layer.tar.gz`.

    Args:
        client: registry client for the reference's repository
        logger: diagnostics sink
        verify_digest: check the downloaded bytes against the layer digest
        platform: os/arch[/variant] picked when the reference is an index
        tmp_root: parent directory for temporary output directories
    """

    def __init__(
        self,
        client,
        logger: Optional[logging.Logger] = None,
        verify_digest: bool = False,
        platform: str = DEFAULT_PLATFORM,
        tmp_root: Optional[str] = None,
    ):
        self.client = client
        self.logger = logger or logging.getLogger(__name__)
        self.verify_digest = verify_digest
        self.platform = platform
        self.tmp_root = tmp_root

    def extract(self, ref: ImageReference, output_dir: Optional[str] = None) -> ExtractResult:
        """
        Fetch the manifest for `ref` and persist its first layer.

        Args:
            ref: resolved reference; its digest is used when present
            output_dir: directory to write into; a fresh temporary directory
                is created when omitted

        Returns:
            ExtractResult with the path of the written file

        Raises:
            ManifestFetchError, NoLayersError, BlobReadError, WriteError
        """
        manifest = self._fetch_manifest(ref)
        self._log_layers(manifest)

        if not manifest.layers:
            raise NoLayersError(f"manifest {manifest.digest} for {ref} has no layers")

        try:
            layer = Descriptor.from_dict(manifest.layers[0])
        except (ValueError, AttributeError) as e:
            raise ManifestFetchError(f"first layer of {ref} is malformed: {e}") from e

        target_dir, created = self._prepare_dir(output_dir)
        try:
            data = self._read_blob(layer)
            path = self._write(target_dir, data)
        except Exception:
            if created:
                shutil.rmtree(target_dir, ignore_errors=True)
            raise

        self.logger.info("Layer written to %s", path)
        return ExtractResult(
            path=path,
            layer=layer,
            manifest_digest=manifest.digest,
            bytes_written=len(data),
        )

    # =========================================================================
    # Manifest
    # =========================================================================

    def _fetch_manifest(self, ref: ImageReference) -> Manifest:
        try:
            manifest = self.client.get_manifest(ref.identifier)
        except RegistryError as e:
            raise ManifestFetchError(f"could not fetch manifest for {ref}: {e}") from e

        if manifest.is_index:
            manifest = self._select_platform(ref, manifest)
        return manifest

    def _select_platform(self, ref: ImageReference, index: Manifest) -> Manifest:
        """Pick the child manifest for the configured platform, else the first one."""
        if not index.manifests:
            raise ManifestFetchError(f"index {index.digest} for {ref} lists no manifests")

        chosen = None
        for entry in index.manifests:
            self.logger.debug("Index entry %s (%s)", entry.get("digest"), format_platform(entry.get("platform")))
            if chosen is None and _platform_matches(entry.get("platform"), self.platform):
                chosen = entry
        if chosen is None:
            chosen = index.manifests[0]
            self.logger.warning(
                "No manifest for platform %s in %s, using %s",
                self.platform, ref, format_platform(chosen.get("platform")),
            )

        digest = chosen.get("digest")
        if not digest:
            raise ManifestFetchError(f"index entry for {ref} carries no digest")

        try:
            manifest = self.client.get_manifest(digest)
        except RegistryError as e:
            raise ManifestFetchError(f"could not fetch platform manifest {digest}: {e}") from e

        if manifest.is_index:
            raise ManifestFetchError(f"platform manifest {digest} is itself an index")
        return manifest

    def _log_layers(self, manifest: Manifest):
        """Report every layer. Malformed entries are logged and skipped, never fatal."""
        for idx, entry in enumerate(manifest.layers):
            try:
                layer = Descriptor.from_dict(entry)
            except (ValueError, AttributeError) as e:
                self.logger.error("Error reading metadata of layer %d: %s", idx, e)
                continue
            self.logger.debug("Layer Digest: %s", layer.digest)
            self.logger.debug("MediaType: %s", layer.media_type)
            self.logger.debug("Size: %d (%s)", layer.size, human_readable_size(layer.size))

    # =========================================================================
    # Blob -> disk
    # =========================================================================

    def _prepare_dir(self, output_dir: Optional[str]):
        try:
            if output_dir:
                os.makedirs(output_dir, exist_ok=True)
                return output_dir, False
            if self.tmp_root:
                os.makedirs(self.tmp_root, exist_ok=True)
            return tempfile.mkdtemp(prefix="layer", dir=self.tmp_root), True
        except OSError as e:
            raise WriteError(f"could not create output directory: {e}") from e

    def _read_blob(self, layer: Descriptor) -> bytes:
        try:
            resp = self.client.open_blob(layer.digest)
        except RegistryError as e:
            raise BlobReadError(f"could not open blob {layer.digest}: {e}") from e

        chunks = []
        try:
            with resp:
                for chunk in resp.iter_content(chunk_size=DEFAULT_CHUNK_SIZE):
                    if chunk:
                        chunks.append(chunk)
        except requests.RequestException as e:
            raise BlobReadError(f"interrupted reading blob {layer.digest}: {e}") from e

        data = b"".join(chunks)
        if layer.size and len(data) != layer.size:
            raise BlobReadError(
                f"truncated blob {layer.digest}: got {len(data)} of {layer.size} bytes"
            )

        if self.verify_digest:
            algorithm, _, expected = layer.digest.partition(":")
            try:
                actual = hashlib.new(algorithm, data).hexdigest()
            except ValueError as e:
                raise BlobReadError(f"cannot verify {layer.digest}: {e}") from e
            if actual != expected:
                raise DigestMismatchError(layer.digest, f"{algorithm}:{actual}")
            self.logger.debug("Verified blob digest %s", layer.digest)

        return data

    def _write(self, target_dir: str, data: bytes) -> str:
        path = os.path.join(target_dir, LAYER_FILENAME)
        try:
            with open(path, "wb") as f:
                f.write(data)
            os.chmod(path, FILE_MODE)
        except OSError as e:
            # never leave a partial layer behind
            with contextlib.suppress(OSError):
                os.remove(path)
            raise WriteError(f"could not write {path}: {e}") from e
        return path
