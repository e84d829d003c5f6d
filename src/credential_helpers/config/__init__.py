"""Configuration loader for the credential helpers.

Loads settings from a YAML file with built-in defaults. Supports environment
variable overrides using the CREDENTIAL_HELPERS_ prefix with double-underscore
nesting (e.g., CREDENTIAL_HELPERS_GOPASS__COMMAND_TIMEOUT=30).
"""

from __future__ import annotations

import os
import pathlib
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator


# ---------------------------------------------------------------------------
# Config sub-models
# ---------------------------------------------------------------------------

_LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG", "NOTSET")


class LoggingConfig(BaseModel):
    level: str = "WARNING"
    format: str = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

    @field_validator("level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        level = value.upper()
        if level not in _LOG_LEVELS:
            raise ValueError(
                f"unknown log level {value!r}, expected one of {', '.join(_LOG_LEVELS)}"
            )
        return level


class GopassConfig(BaseModel):
    binary: str = "gopass"
    namespace: str = "docker-credential-helpers"
    file_suffix: str = ".gpg"
    command_timeout: float | None = 60.0


class KeychainConfig(BaseModel):
    binary: str = "security"
    namespace: str = "docker-credential-helpers"
    command_timeout: float | None = 60.0


class FileConfig(BaseModel):
    path: str = "~/.local/share/credential-helpers/credentials.enc"
    passphrase: str = ""


# ---------------------------------------------------------------------------
# Top-level settings
# ---------------------------------------------------------------------------

class Settings(BaseModel):
    backend: str = "gopass"
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    gopass: GopassConfig = Field(default_factory=GopassConfig)
    keychain: KeychainConfig = Field(default_factory=KeychainConfig)
    file: FileConfig = Field(default_factory=FileConfig)


# ---------------------------------------------------------------------------
# Deep merge helper
# ---------------------------------------------------------------------------

def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge *override* into *base*, returning a new dict."""
    merged = dict(base)
    for key, value in override.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


# ---------------------------------------------------------------------------
# Environment variable overrides
# ---------------------------------------------------------------------------

_ENV_PREFIX = "CREDENTIAL_HELPERS_"
CONFIG_FILE_ENV = "CREDENTIAL_HELPERS_CONFIG_FILE"


def _collect_env_overrides() -> dict[str, Any]:
    """Collect CREDENTIAL_HELPERS_* env vars and build a nested dict.

    Double-underscore separates nesting levels.
    Example: CREDENTIAL_HELPERS_GOPASS__BINARY=/opt/bin/gopass
    becomes  {"gopass": {"binary": "/opt/bin/gopass"}}
    """
    overrides: dict[str, Any] = {}
    for key, value in os.environ.items():
        if not key.startswith(_ENV_PREFIX) or key == CONFIG_FILE_ENV:
            continue
        parts = key[len(_ENV_PREFIX) :].lower().split("__")
        current = overrides
        for part in parts[:-1]:
            current = current.setdefault(part, {})
        # Left as strings; the models coerce numeric and boolean fields
        current[parts[-1]] = value
    return overrides


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------

def default_config_path() -> pathlib.Path:
    """Location of the config file when none is given explicitly."""
    explicit = os.environ.get(CONFIG_FILE_ENV)
    if explicit:
        return pathlib.Path(explicit).expanduser()
    config_home = os.environ.get("XDG_CONFIG_HOME") or os.path.join("~", ".config")
    return pathlib.Path(config_home).expanduser() / "credential-helpers" / "config.yaml"


def load_settings(
    config_path: pathlib.Path | None = None,
) -> Settings:
    """Load settings with layered precedence: defaults < file < env vars.

    Parameters
    ----------
    config_path:
        Path to a YAML config file. If ``None``, :func:`default_config_path`
        is used. A missing file means built-in defaults.
    """
    # Layer 1: built-in defaults (always loaded from the model defaults)
    base: dict[str, Any] = {}

    # Layer 2: YAML config file
    path = config_path if config_path is not None else default_config_path()
    if path.exists():
        with open(path) as fh:
            file_data = yaml.safe_load(fh)
        if isinstance(file_data, dict):
            base = _deep_merge(base, file_data)

    # Layer 3: environment variable overrides
    env_overrides = _collect_env_overrides()
    if env_overrides:
        base = _deep_merge(base, env_overrides)

    return Settings(**base)
