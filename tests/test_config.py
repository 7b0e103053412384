import logging
import os

import pytest

from layerpull import config as config_module
from layerpull.config import Config, ConfigError, load_config


@pytest.fixture(autouse=True)
def no_home_config(tmp_path, monkeypatch):
    monkeypatch.setattr(config_module, "DEFAULT_CONFIG_PATH", str(tmp_path / "absent.yaml"))


def test_load_config__defaults():
    config = load_config(environ={})

    assert config == Config()
    assert config.platform == "linux/amd64"
    assert config.verify_digest is False


def test_load_config__reads_yaml(tmp_path):
    path = tmp_path / "layerpull.yaml"
    path.write_text(
        "username: me\n"
        "verify-digest: true\n"
        "insecure_registries:\n"
        "  - localhost:5000\n"
        "timeout: 5\n"
    )

    config = load_config(str(path), environ={})

    assert config.username == "me"
    assert config.verify_digest is True
    assert config.is_insecure("localhost:5000")
    assert config.timeout == 5.0


def test_load_config__environment_overrides_file(tmp_path):
    path = tmp_path / "layerpull.yaml"
    path.write_text("platform: linux/arm64\n")

    config = load_config(str(path), environ={
        "LAYERPULL_PLATFORM": "linux/arm/v7",
        "LAYERPULL_INSECURE_REGISTRIES": "a.local:5000, b.local",
        "LAYERPULL_VERIFY_DIGEST": "yes",
    })

    assert config.platform == "linux/arm/v7"
    assert config.insecure_registries == ["a.local:5000", "b.local"]
    assert config.verify_digest is True


def test_load_config__home_file_used_when_present(tmp_path, monkeypatch):
    path = tmp_path / "home.yaml"
    path.write_text("tmp_dir: /var/tmp\n")
    monkeypatch.setattr(config_module, "DEFAULT_CONFIG_PATH", str(path))

    assert load_config(environ={}).tmp_dir == "/var/tmp"


@pytest.mark.parametrize(
    ["content"],
    [
        ("bogus_key: 1\n",),
        ("timeout: soon\n",),
        ("timeout: -1\n",),
        ("verify_digest: maybe\n",),
        ("platform: amd64\n",),
        ("- just\n- a list\n",),
        ("key: [unclosed\n",),
    ],
)
def test_load_config__rejects_invalid_file(tmp_path, content):
    path = tmp_path / "layerpull.yaml"
    path.write_text(content)

    with pytest.raises(ConfigError):
        load_config(str(path), environ={})


def test_load_config__missing_explicit_file(tmp_path):
    with pytest.raises(ConfigError):
        load_config(str(tmp_path / "missing.yaml"), environ={})


def test_load_config__credentials_are_not_expanded_as_paths(tmp_path):
    config = load_config(environ={
        "LAYERPULL_USERNAME": "~me",
        "LAYERPULL_PASSWORD": "~/p4ss",
        "LAYERPULL_TMP_DIR": "~/scratch",
    })

    assert config.username == "~me"
    assert config.password == "~/p4ss"
    assert config.tmp_dir == os.path.expanduser("~/scratch")


def test_load_config__logs_config_file_used(tmp_path, caplog):
    path = tmp_path / "layerpull.yaml"
    path.write_text("timeout: 5\n")

    with caplog.at_level(logging.INFO, logger="layerpull.config"):
        load_config(str(path), environ={})

    assert f"Using config file: {path}" in caplog.text
