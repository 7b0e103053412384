"""Configuration management for layerpull."""

import logging
import os
from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Optional

import yaml

DEFAULT_CONFIG_PATH = os.path.join(os.path.expanduser("~"), ".layerpull.yaml")
DEFAULT_DOCKER_CONFIG = os.path.join(os.path.expanduser("~"), ".docker", "config.json")

ENV_PREFIX = "LAYERPULL_"
PATH_KEYS = ("docker_config", "tmp_dir")

logger = logging.getLogger(__name__)


class ConfigError(Exception):
    """The configuration file or environment holds invalid values."""


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ("1", "true", "yes", "on"):
        return True
    if text in ("0", "false", "no", "off", ""):
        return False
    raise ConfigError(f"expected a boolean, got {value!r}")


def _parse_list(value: Any) -> List[str]:
    if isinstance(value, (list, tuple)):
        return [str(v).strip() for v in value if str(v).strip()]
    return [v.strip() for v in str(value).split(",") if v.strip()]


@dataclass
class Config:
    """Settings for one layerpull invocation."""
    username: Optional[str] = None
    password: Optional[str] = None
    docker_config: str = DEFAULT_DOCKER_CONFIG
    insecure_registries: List[str] = field(default_factory=list)
    tmp_dir: str = "/tmp"
    timeout: float = 30.0
    verify_digest: bool = False
    platform: str = "linux/amd64"

    def is_insecure(self, registry: str) -> bool:
        return registry in self.insecure_registries

    def update(self, values: Dict[str, Any]):
        """Apply raw values (from YAML or the environment), coercing types."""
        known = {f.name for f in fields(self)}
        unknown = set(values) - known
        if unknown:
            raise ConfigError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")

        for key, value in values.items():
            if value is None:
                continue
            if key == "insecure_registries":
                value = _parse_list(value)
            elif key == "verify_digest":
                value = _parse_bool(value)
            elif key == "timeout":
                try:
                    value = float(value)
                except (TypeError, ValueError) as e:
                    raise ConfigError(f"timeout must be a number, got {value!r}") from e
                if value <= 0:
                    raise ConfigError("timeout must be positive")
            elif key == "platform":
                value = str(value)
                if value.count("/") not in (1, 2):
                    raise ConfigError(f"platform must be os/arch[/variant], got {value!r}")
            elif key in PATH_KEYS:
                value = os.path.expanduser(str(value))
            else:
                value = str(value)
            setattr(self, key, value)


def _read_file(path: str) -> Dict[str, Any]:
    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigError(f"Could not read config file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Malformed config file {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")
    return {str(k).replace("-", "_"): v for k, v in data.items()}


def _read_env(environ) -> Dict[str, Any]:
    values = {}
    for f in fields(Config):
        key = ENV_PREFIX + f.name.upper()
        if key in environ:
            values[f.name] = environ[key]
    return values


def load_config(path: Optional[str] = None, environ=None) -> Config:
    """
    Build the configuration.

    An explicit `path` must exist. Without one, `~/.layerpull.yaml` is read
    when present. Environment variables (LAYERPULL_<FIELD>) override the file.
    """
    environ = os.environ if environ is None else environ
    config = Config()

    if path:
        config.update(_read_file(path))
        logger.info("Using config file: %s", path)
    elif os.path.isfile(DEFAULT_CONFIG_PATH):
        config.update(_read_file(DEFAULT_CONFIG_PATH))
        logger.info("Using config file: %s", DEFAULT_CONFIG_PATH)

    config.update(_read_env(environ))
    return config
