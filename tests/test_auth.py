import base64
import json
from unittest.mock import patch

import pytest

from helpers import make_response
from layerpull.modules.auth import Credentials, RegistryAuth, resolve_credentials
from layerpull.modules.auth.auth import parse_challenge

URL = "https://reg.example.com/v2/org/app/manifests/v1"
CHALLENGE = 'Bearer realm="https://auth.example.com/token",service="reg.example.com",scope="repository:org/app:pull"'


def test_parse_challenge():
    scheme, params = parse_challenge(CHALLENGE)

    assert scheme == "bearer"
    assert params == {
        "realm": "https://auth.example.com/token",
        "service": "reg.example.com",
        "scope": "repository:org/app:pull",
    }


def test_request_with_retry__fetches_token_on_401():
    auth = RegistryAuth("reg.example.com", "org/app", credentials=Credentials("me", "secret"))
    session = auth.get_session()
    token_resp = make_response(body=b'{"token": "abc"}')

    with patch.object(session, "request", side_effect=[
        make_response(status=401, headers={"WWW-Authenticate": CHALLENGE}),
        make_response(status=200),
    ]) as request, patch("requests.get", return_value=token_resp) as get:
        resp = auth.request_with_retry("GET", URL)

    assert resp.status_code == 200
    assert request.call_count == 2
    assert session.headers["Authorization"] == "Bearer abc"
    get.assert_called_once_with(
        "https://auth.example.com/token",
        params={"scope": "repository:org/app:pull", "service": "reg.example.com"},
        auth=("me", "secret"),
        timeout=30,
    )


def test_request_with_retry__basic_challenge_uses_credentials():
    auth = RegistryAuth("reg.example.com", "org/app", credentials=Credentials("me", "secret"))
    session = auth.get_session()

    with patch.object(session, "request", side_effect=[
        make_response(status=401, headers={"WWW-Authenticate": 'Basic realm="registry"'}),
        make_response(status=200),
    ]):
        resp = auth.request_with_retry("GET", URL)

    assert resp.status_code == 200
    assert session.auth == ("me", "secret")


def test_request_with_retry__no_challenge_returns_401():
    auth = RegistryAuth("reg.example.com", "org/app")
    session = auth.get_session()

    with patch.object(session, "request", return_value=make_response(status=401)) as request:
        resp = auth.request_with_retry("GET", URL)

    assert resp.status_code == 401
    assert request.call_count == 1


def test_invalidate_closes_session():
    auth = RegistryAuth("reg.example.com", "org/app")
    session = auth.get_session()

    with patch.object(session, "close") as close:
        auth.invalidate()

    close.assert_called_once()
    assert auth._session is None


def _write_docker_config(tmp_path, auths):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"auths": auths}))
    return str(path)


def test_resolve_credentials__explicit_wins(tmp_path):
    path = _write_docker_config(tmp_path, {"reg.example.com": {"username": "a", "password": "b"}})

    creds = resolve_credentials("reg.example.com", username="me", password="secret", docker_config=path)

    assert creds == Credentials("me", "secret")


def test_resolve_credentials__docker_config_auth_field(tmp_path):
    encoded = base64.b64encode(b"me:s3cret:with-colon").decode()
    path = _write_docker_config(tmp_path, {"https://reg.example.com": {"auth": encoded}})

    creds = resolve_credentials("reg.example.com", docker_config=path)

    assert creds == Credentials("me", "s3cret:with-colon")


def test_resolve_credentials__docker_hub_legacy_key(tmp_path):
    encoded = base64.b64encode(b"hubuser:pw").decode()
    path = _write_docker_config(tmp_path, {"https://index.docker.io/v1/": {"auth": encoded}})

    creds = resolve_credentials("index.docker.io", docker_config=path)

    assert creds == Credentials("hubuser", "pw")


@pytest.mark.parametrize(["auths"], [({},), ({"other.example.com": {"auth": "eDp5"}},)])
def test_resolve_credentials__anonymous(tmp_path, auths):
    path = _write_docker_config(tmp_path, auths)

    assert resolve_credentials("reg.example.com", docker_config=path) is None


def test_resolve_credentials__missing_file(tmp_path):
    assert resolve_credentials("reg.example.com", docker_config=str(tmp_path / "nope.json")) is None


@pytest.mark.parametrize(
    ["content"],
    [
        ('["not", "a", "mapping"]',),
        ('{"auths": ["reg.example.com"]}',),
        ('{"auths": {"reg.example.com": "me:secret"}}',),
        ('{"auths": {"reg.example.com": {"auth": 42}}}',),
    ],
)
def test_resolve_credentials__malformed_docker_config_is_anonymous(tmp_path, content):
    path = tmp_path / "config.json"
    path.write_text(content)

    assert resolve_credentials("reg.example.com", docker_config=str(path)) is None
