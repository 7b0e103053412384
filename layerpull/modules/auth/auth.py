"""
Registry authentication.

Provides RegistryAuth for all registry API calls with:
- Bearer token handshake driven by the registry's WWW-Authenticate challenge
- Basic auth for registries that ask for it
- Session management
- Proper cleanup via invalidate()
"""

import base64
import json
import logging
import os
import re
from dataclasses import dataclass
from typing import Optional

import requests

from layerpull.modules.formatters import registry_host

logger = logging.getLogger(__name__)

_CHALLENGE_PARAM = re.compile(r'(\w+)="([^"]*)"')

MANIFEST_ACCEPT = ", ".join([
    "application/vnd.oci.image.manifest.v1+json",
    "application/vnd.oci.image.index.v1+json",
    "application/vnd.docker.distribution.manifest.v2+json",
    "application/vnd.docker.distribution.manifest.list.v2+json",
])


@dataclass(frozen=True)
class Credentials:
    username: str
    password: str

    def __repr__(self):
        return f"Credentials(username={self.username!r}, password='***')"


def _docker_config_entry(auths: dict, registry: str) -> Optional[dict]:
    candidates = [registry, f"https://{registry}", f"https://{registry}/v1/", f"http://{registry}"]
    if registry_host(registry) != registry:
        # Docker Hub credentials are stored under the legacy index URL
        candidates += ["https://index.docker.io/v1/", "docker.io", "registry-1.docker.io"]
    for key in candidates:
        if key in auths:
            return auths[key]
    return None


def resolve_credentials(
    registry: str,
    username: Optional[str] = None,
    password: Optional[str] = None,
    docker_config: Optional[str] = None,
) -> Optional[Credentials]:
    """
    Find credentials for a registry host.

    Explicit username/password win; otherwise the `auths` section of a Docker
    `config.json` is consulted. Returns None for anonymous access.
    """
    if username and password:
        return Credentials(username, password)

    if not docker_config or not os.path.isfile(docker_config):
        return None

    try:
        with open(docker_config, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        logger.warning("Could not read docker config %s: %s", docker_config, e)
        return None

    auths = data.get("auths", {}) if isinstance(data, dict) else None
    if not isinstance(auths, dict):
        logger.warning("Ignoring docker config %s: auths is not a mapping", docker_config)
        return None

    entry = _docker_config_entry(auths, registry)
    if not entry:
        return None
    if not isinstance(entry, dict):
        logger.warning("Ignoring malformed auth entry for %s", registry)
        return None

    if isinstance(entry.get("auth"), str) and entry["auth"]:
        try:
            decoded = base64.b64decode(entry["auth"]).decode("utf-8")
        except (ValueError, UnicodeDecodeError):
            logger.warning("Ignoring malformed auth entry for %s", registry)
            return None
        user, _, secret = decoded.partition(":")
        if user and secret:
            return Credentials(user, secret)
        return None

    if entry.get("username") and entry.get("password"):
        return Credentials(entry["username"], entry["password"])
    return None


def parse_challenge(header: str):
    """
    Parse a WWW-Authenticate header.

    Returns:
        (scheme, params) e.g. ("bearer", {"realm": ..., "service": ...})
    """
    scheme, _, rest = header.strip().partition(" ")
    return scheme.lower(), dict(_CHALLENGE_PARAM.findall(rest))


class RegistryAuth:
    """
    Authenticated access to one repository on one registry.

    Usage:
        auth = RegistryAuth("ghcr.io", "org/app")
        resp = auth.request_with_retry("GET", url)
        # ... do work ...
        auth.invalidate()  # cleanup when done
    """

    def __init__(
        self,
        registry: str,
        repository: str,
        credentials: Optional[Credentials] = None,
        plain_http: bool = False,
        timeout: float = 30,
    ):
        """
        Args:
            registry: registry host as written in the reference (e.g. "ghcr.io")
            repository: repository path (e.g. "org/app")
            credentials: optional username/password for the token endpoint
            plain_http: talk to the registry over http
            timeout: seconds for every request
        """
        self.registry = registry
        self.repository = repository
        self.credentials = credentials
        self.plain_http = plain_http
        self.timeout = timeout
        self._token: Optional[str] = None
        self._basic = False
        self._session: Optional[requests.Session] = None

    def _fetch_token(self, params: dict) -> str:
        """Exchange credentials (or nothing, for anonymous pulls) for a bearer token."""
        realm = params.get("realm")
        if not realm:
            raise ValueError("Bearer challenge carries no realm")

        query = {"scope": params.get("scope") or f"repository:{self.repository}:pull"}
        if params.get("service"):
            query["service"] = params["service"]

        auth = None
        if self.credentials:
            auth = (self.credentials.username, self.credentials.password)

        resp = requests.get(realm, params=query, auth=auth, timeout=self.timeout)
        resp.raise_for_status()
        body = resp.json()
        token = body.get("token") or body.get("access_token")
        if not token:
            raise ValueError("Auth endpoint returned no token")
        return token

    def _authenticate(self, resp: requests.Response) -> bool:
        """Answer a 401 challenge. Returns False if there is nothing to retry with."""
        scheme, params = parse_challenge(resp.headers.get("WWW-Authenticate", ""))
        if scheme == "bearer":
            logger.debug("Fetching token from %s", params.get("realm"))
            self._token = self._fetch_token(params)
            self._basic = False
            return True
        if scheme == "basic" and self.credentials:
            self._basic = True
            return True
        return False

    def get_session(self) -> requests.Session:
        """
        Get the session, creating it on first call.

        The current token, if any, is injected into the Authorization header.
        """
        if not self._session:
            self._session = requests.Session()
            self._session.headers.update({"Accept": MANIFEST_ACCEPT})

        if self._token:
            self._session.headers["Authorization"] = f"Bearer {self._token}"
            self._session.auth = None
        elif self._basic and self.credentials:
            self._session.headers.pop("Authorization", None)
            self._session.auth = (self.credentials.username, self.credentials.password)
        return self._session

    def request_with_retry(self, method: str, url: str, **kwargs) -> requests.Response:
        """
        Make an HTTP request, answering one authentication challenge.

        On 401 the challenge is resolved (token fetch or basic auth) and the
        request is retried once.

        Args:
            method: HTTP method ("GET", "HEAD", etc.)
            url: Full URL to request
            **kwargs: Passed to requests (e.g., stream=True)

        Returns:
            requests.Response object
        """
        kwargs.setdefault("timeout", self.timeout)
        session = self.get_session()
        resp = session.request(method, url, **kwargs)

        if resp.status_code == 401:
            resp.close()
            self._token = None
            if self._authenticate(resp):
                session = self.get_session()
                resp = session.request(method, url, **kwargs)

        return resp

    def invalidate(self):
        """
        Close the session and forget the token.

        Call this at operation boundaries so a token scoped to one repository
        is not reused for another.
        """
        if self._session:
            self._session.close()
        self._session = None
        self._token = None
        self._basic = False
