import hashlib
import logging
from typing import List, Optional
from urllib.parse import urljoin

import requests

from layerpull.modules.auth import RegistryAuth
from layerpull.modules.errors import RegistryError
from layerpull.modules.finders.reference import Descriptor, Manifest
from layerpull.modules.formatters import registry_base_url

logger = logging.getLogger(__name__)


def _next_link(resp: requests.Response) -> Optional[str]:
    """Return the rel="next" target of a paginated response, if any."""
    link = resp.links.get("next", {}).get("url")
    if not link:
        return None
    return urljoin(resp.url, link)


class RegistryClient:
    """
    Thin distribution API client bound to one repository.

    All failures surface as RegistryError; no call is retried beyond the
    single authentication retry performed by RegistryAuth.
    """

    def __init__(self, auth: RegistryAuth):
        self.auth = auth
        self.base_url = registry_base_url(auth.registry, auth.repository, plain_http=auth.plain_http)

    def _request(self, method: str, url: str, **kwargs) -> requests.Response:
        try:
            resp = self.auth.request_with_retry(method, url, **kwargs)
        except (requests.RequestException, ValueError) as e:
            raise RegistryError(f"{method} {url} failed: {e}") from e

        if resp.status_code >= 400:
            resp.close()
            raise RegistryError(
                f"{method} {url} returned HTTP {resp.status_code}",
                status_code=resp.status_code,
            )
        return resp

    # =========================================================================
    # Tags
    # =========================================================================

    def list_tags(self) -> List[str]:
        """Fetch every tag of the repository, following pagination links."""
        tags = []
        url = f"{self.base_url}/tags/list"
        while url:
            resp = self._request("GET", url)
            try:
                body = resp.json()
            except ValueError as e:
                raise RegistryError(f"invalid tag list from {url}: {e}") from e
            if not isinstance(body, dict):
                raise RegistryError(f"invalid tag list from {url}: not a JSON object")
            page = body.get("tags") or []
            if not isinstance(page, list):
                raise RegistryError(f"invalid tag list from {url}: tags is not a list")
            tags.extend(page)
            url = _next_link(resp)
        return tags

    # =========================================================================
    # Manifests
    # =========================================================================

    def head_manifest(self, reference: str) -> Descriptor:
        """
        Look up a manifest digest without downloading the body.

        Raises:
            RegistryError: on any HTTP failure or when the registry omits the
                Docker-Content-Digest header
        """
        url = f"{self.base_url}/manifests/{reference}"
        resp = self._request("HEAD", url)
        digest = resp.headers.get("Docker-Content-Digest")
        if not digest:
            raise RegistryError(f"HEAD {url} returned no Docker-Content-Digest header")

        return Descriptor(
            media_type=resp.headers.get("Content-Type", ""),
            digest=digest,
            size=int(resp.headers.get("Content-Length") or 0),
        )

    def get_manifest(self, reference: str) -> Manifest:
        """
        Fetch a manifest or index.

        The digest comes from the Docker-Content-Digest header, or is computed
        from the body when the registry does not send one.
        """
        url = f"{self.base_url}/manifests/{reference}"
        resp = self._request("GET", url)
        body = resp.content
        digest = resp.headers.get("Docker-Content-Digest") or "sha256:" + hashlib.sha256(body).hexdigest()

        try:
            manifest = Manifest.from_dict(resp.json(), digest=digest)
        except ValueError as e:
            raise RegistryError(f"invalid manifest from {url}: {e}") from e

        if not manifest.media_type:
            manifest.media_type = resp.headers.get("Content-Type", "").split(";")[0]
        return manifest

    # =========================================================================
    # Blobs
    # =========================================================================

    def open_blob(self, digest: str) -> requests.Response:
        """
        Open a streaming download of a blob.

        The caller owns the response and must close it; it is usable as a
        context manager.
        """
        url = f"{self.base_url}/blobs/{digest}"
        return self._request("GET", url, stream=True)
