# errors.py
# Exception taxonomy for reference resolution and layer extraction.
#
# Nothing here exits the process: every error propagates to the caller and
# only the CLI turns it into an exit status.

from typing import Optional


class LayerPullError(Exception):
    """Base class for every failure raised while pulling a layer."""


class InvalidReferenceError(LayerPullError):
    """The reference string is malformed. Raised before any network access."""


class DigestResolutionError(LayerPullError):
    """The registry answered, but no digest could be determined for a tag."""


class ManifestFetchError(LayerPullError):
    """The image manifest could not be fetched or parsed."""


class NoLayersError(LayerPullError):
    """The manifest lists no layers."""


class BlobReadError(LayerPullError):
    """The layer blob could not be read to completion."""


class DigestMismatchError(BlobReadError):
    """The blob content does not hash to the digest advertised by the manifest."""

    def __init__(self, expected: str, actual: str):
        super().__init__(f"blob digest mismatch: expected {expected}, got {actual}")
        self.expected = expected
        self.actual = actual


class WriteError(LayerPullError):
    """The layer could not be persisted to the local filesystem."""


class RegistryError(LayerPullError):
    """
    A registry API call failed.

    Args:
        message: human readable description
        status_code: HTTP status of the response, None for transport errors
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code

    @property
    def not_found(self) -> bool:
        return self.status_code == 404
