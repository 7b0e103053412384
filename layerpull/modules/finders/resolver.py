# resolver.py
# Turns a user supplied reference string into a digest-pinned ImageReference.

import logging
from typing import Callable, Optional

from layerpull.modules.errors import DigestResolutionError, RegistryError
from layerpull.modules.finders.reference import ImageReference, ReferenceKind, parse_image_ref


class ReferenceResolver:
    """
    Resolve `oci://` references against a registry.

    Args:
        client_factory: builds a registry client for a parsed reference. It is
            only called once the reference has been validated, so malformed
            input never reaches the network.
        logger: diagnostics sink
    """

    def __init__(self, client_factory: Callable, logger: Optional[logging.Logger] = None):
        self.client_factory = client_factory
        self.logger = logger or logging.getLogger(__name__)

    def resolve(self, raw: str, client=None) -> ImageReference:
        """
        Parse and resolve a reference.

        Tag references are pinned to a digest (HEAD first, one GET fallback).
        Digest references are returned as given.

        Args:
            raw: reference string, e.g. oci://ghcr.io/org/app:v1
            client: registry client to reuse; built from client_factory if omitted

        Returns:
            ImageReference carrying a digest

        Raises:
            InvalidReferenceError: malformed input (no network access made)
            DigestResolutionError: neither HEAD nor GET produced a digest
        """
        self.logger.debug("Checking image %s", raw)
        ref = parse_image_ref(raw)
        self.logger.debug("Repository: %s, tag: %s, digest: %s", ref.name, ref.tag, ref.digest)

        if client is None:
            client = self.client_factory(ref)

        self._check_tag_listed(client, ref)

        if ref.kind is ReferenceKind.DIGEST:
            self.logger.debug("Digest reference, using %s as given", ref.digest)
            return ref

        resolved = ref.with_digest(self._resolve_tag(client, ref))
        self.logger.info("Pulling image %s", resolved.revision)
        return resolved

    def _check_tag_listed(self, client, ref: ImageReference):
        """Listing is diagnostic only: a missing tag or a failed listing never aborts."""
        try:
            tags = client.list_tags()
        except RegistryError as e:
            self.logger.warning("Could not list tags for %s: %s", ref.name, e)
            return

        self.logger.debug("Tags: %s", tags)
        if ref.tag and ref.tag not in tags:
            self.logger.warning("Tag %s not found in repository %s", ref.tag, ref.name)

    def _resolve_tag(self, client, ref: ImageReference) -> str:
        self.logger.debug("Tagged image, resolving %s", ref.tag)
        try:
            desc = client.head_manifest(ref.tag)
        except RegistryError as head_error:
            self.logger.debug("HEAD failed (%s), falling back to GET", head_error)
        else:
            self.logger.debug("Digest from HEAD: %s", desc.digest)
            return desc.digest

        try:
            manifest = client.get_manifest(ref.tag)
        except RegistryError as e:
            raise DigestResolutionError(f"could not resolve digest for {ref}: {e}") from e

        if not manifest.digest:
            raise DigestResolutionError(f"registry returned no digest for {ref}")
        self.logger.debug("Digest from GET: %s", manifest.digest)
        return manifest.digest
