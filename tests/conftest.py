from unittest.mock import MagicMock

import pytest

from helpers import LAYER_BYTES, MANIFEST_DIGEST, blob_response, layer_entry, make_manifest
from layerpull.modules.finders.reference import Descriptor


@pytest.fixture
def client():
    """A registry client double with a one-layer image behind every call."""
    client = MagicMock()
    client.list_tags.return_value = ["v1", "latest"]
    client.head_manifest.return_value = Descriptor(
        media_type="application/vnd.oci.image.manifest.v1+json",
        digest=MANIFEST_DIGEST,
        size=512,
    )
    client.get_manifest.return_value = make_manifest([layer_entry()])
    client.open_blob.side_effect = lambda digest: blob_response(LAYER_BYTES)
    return client


@pytest.fixture
def client_factory(client):
    return MagicMock(return_value=client)
