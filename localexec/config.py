"""YAML config parsing, defaults, validation."""

from __future__ import annotations

import os
from dataclasses import dataclass, field

import yaml

from localexec.executor import DEFAULT_KILL_GRACE, DEFAULT_SHELL

DEFAULT_CONFIG = os.path.join(".localexec", "localexec.yaml")


class ConfigError(Exception):
    pass


@dataclass
class ExecDefaults:
    shell: str = DEFAULT_SHELL
    timeout: float | None = None      # seconds; None = wait forever
    kill_grace: float = DEFAULT_KILL_GRACE


@dataclass
class LocalExecConfig:
    version: str
    defaults: ExecDefaults
    # name → raw attribute mapping, decoded at read time
    data: dict[str, dict] = field(default_factory=dict)


def validate_version(raw: dict) -> None:
    version = raw.get("version")
    if not version:
        raise ConfigError("Missing 'version' field in config")
    if str(version) not in ("1.0", "1"):
        raise ConfigError(f"Unsupported config version: {version}")


def _parse_seconds(raw: dict, key: str, default: float | None) -> float | None:
    value = raw.get(key, default)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"defaults.{key} must be a number of seconds, got {value!r}")
    if value <= 0:
        raise ConfigError(f"defaults.{key} must be positive, got {value}")
    return float(value)


def parse_defaults(raw: dict | None) -> ExecDefaults:
    if raw is None:
        return ExecDefaults()
    if not isinstance(raw, dict):
        raise ConfigError("'defaults' must be a mapping")

    _DEFAULT_KEYS = {"shell", "timeout", "kill_grace"}
    unknown = set(raw.keys()) - _DEFAULT_KEYS
    if unknown:
        raise ConfigError(f"Unknown defaults key(s): {', '.join(sorted(map(str, unknown)))}")

    shell = raw.get("shell", DEFAULT_SHELL)
    if not isinstance(shell, str) or not shell.strip():
        raise ConfigError("defaults.shell must be a non-empty string")

    return ExecDefaults(
        shell=shell,
        timeout=_parse_seconds(raw, "timeout", None),
        kill_grace=_parse_seconds(raw, "kill_grace", DEFAULT_KILL_GRACE),
    )


def parse_data(raw: dict | None) -> dict[str, dict]:
    """Check the shape of the 'data' section; attributes are left undecoded."""
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigError("'data' must be a mapping of name → attributes")

    data: dict[str, dict] = {}
    for name, attrs in raw.items():
        if not isinstance(name, str) or not name:
            raise ConfigError(f"Invalid data source name: {name!r}")
        if not isinstance(attrs, dict):
            raise ConfigError(f"Data source '{name}' must be a mapping of attributes")
        data[name] = attrs
    return data


def load_config(path: str) -> LocalExecConfig:
    """Load and validate localexec.yaml."""
    try:
        with open(path) as f:
            raw = yaml.safe_load(f)
    except FileNotFoundError:
        raise ConfigError(f"Config file not found: {path}") from None
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if not raw:
        raise ConfigError(f"Empty config file: {path}")
    if not isinstance(raw, dict):
        raise ConfigError(f"Config file must contain a mapping: {path}")

    validate_version(raw)

    return LocalExecConfig(
        version=str(raw["version"]),
        defaults=parse_defaults(raw.get("defaults")),
        data=parse_data(raw.get("data")),
    )
