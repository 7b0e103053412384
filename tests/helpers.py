import hashlib
from unittest.mock import MagicMock

import requests

from layerpull.modules.finders.reference import Manifest

LAYER_BYTES = b"\x1f\x8b\x08\x00layer-one"
LAYER_DIGEST = "sha256:" + hashlib.sha256(LAYER_BYTES).hexdigest()
MANIFEST_DIGEST = "sha256:" + "a" * 64
OCI_LAYER = "application/vnd.oci.image.layer.v1.tar+gzip"


def make_manifest(layers, digest=MANIFEST_DIGEST, media_type="application/vnd.oci.image.manifest.v1+json"):
    return Manifest.from_dict({"mediaType": media_type, "layers": layers}, digest=digest)


def layer_entry(data=LAYER_BYTES, media_type=OCI_LAYER):
    return {
        "mediaType": media_type,
        "digest": "sha256:" + hashlib.sha256(data).hexdigest(),
        "size": len(data),
    }


def blob_response(*chunks):
    resp = MagicMock()
    resp.iter_content.return_value = iter(chunks)
    return resp


def make_response(status=200, body=b"", headers=None, url="https://reg.example.com/v2/org/app/"):
    """A real requests.Response with canned content."""
    resp = requests.Response()
    resp.status_code = status
    resp._content = body
    resp._content_consumed = True
    resp.headers.update(headers or {})
    resp.url = url
    return resp
