"""Configuration for fmail.

Settings come from, in order of precedence: command-line flags, ``FMAIL_<KEY>``
environment variables, the config file, and built-in defaults.

Use `fmail config set <key> <value>` to configure, or edit
~/.config/fmail/config.json directly.
"""

from __future__ import annotations

import json
import os
from pathlib import Path

from .errors import ConfigError
from .jmap import DEFAULT_SESSION_URL
from .logging import get_logger
from .paths import CONFIG_DIR, CONFIG_FILE

logger = get_logger(__name__)

ENV_PREFIX = "FMAIL_"

# Default configuration values
DEFAULT_CONFIG = {
    "session_url": DEFAULT_SESSION_URL,
    "account_id": "",
    "credential_command": "",
    "format": "json",
    "timeout": 30.0,
}


def _load_config(path: Path | None = None) -> dict:
    """Load configuration from the config file.

    A missing file is empty config, whether it is the default or one named
    with --config. An unreadable default file is logged and ignored; an
    unreadable file the user named explicitly raises ConfigError.
    """
    config_file = path or CONFIG_FILE
    if not config_file.exists():
        return {}
    try:
        data = json.loads(config_file.read_text())
    except (json.JSONDecodeError, OSError) as e:
        if path is not None:
            raise ConfigError(f"cannot read config file {config_file}: {e}") from e
        logger.warning("Ignoring unreadable config file", path=str(config_file), error=str(e))
        return {}
    if not isinstance(data, dict):
        if path is not None:
            raise ConfigError(f"config file {config_file} must contain a JSON object")
        logger.warning("Ignoring malformed config file", path=str(config_file))
        return {}
    return data


def _coerce(key: str, value):
    if key == "timeout":
        try:
            timeout = float(value)
        except (TypeError, ValueError):
            raise ConfigError(f"timeout must be a number of seconds, got {value!r}") from None
        if timeout <= 0:
            raise ConfigError(f"timeout must be positive, got {value!r}")
        return timeout
    if key == "format":
        value = str(value).lower()
        if value not in ("json", "text"):
            raise ConfigError(f"format must be 'json' or 'text', got {value!r}")
        return value
    return "" if value is None else str(value)


def get_config(path: Path | None = None) -> dict:
    """Get the full configuration with defaults applied.

    Returns a dict with all config keys, using file values where present
    and defaults otherwise.
    """
    config = _load_config(path)
    return {**DEFAULT_CONFIG, **config}


def resolve_settings(overrides: dict | None = None, path: Path | None = None) -> dict:
    """Resolve every known setting: flag > environment > file > default.

    Args:
        overrides: Values given on the command line (None means not given)
        path: Explicit config file, or None for the default location
    """
    config = get_config(path)
    settings = {}
    for key, default in DEFAULT_CONFIG.items():
        value = config.get(key, default)
        env_value = os.environ.get(ENV_PREFIX + key.upper())
        if env_value:
            value = env_value
        if overrides and overrides.get(key) is not None:
            value = overrides[key]
        settings[key] = _coerce(key, value)
    return settings


def set_config_value(key: str, value: str, path: Path | None = None) -> None:
    """Set a configuration value and persist to file.

    Args:
        key: Configuration key (one of DEFAULT_CONFIG)
        value: Value to set; validated the same way as when it is read
    """
    if key not in DEFAULT_CONFIG:
        raise ConfigError(
            f"unknown config key {key!r}",
            hint=f"Valid keys: {', '.join(DEFAULT_CONFIG)}",
        )
    config_file = path or CONFIG_FILE

    # Load existing config
    config = _load_config(path) if config_file.exists() else {}

    # Update the value
    config[key] = _coerce(key, value)

    # Ensure config directory exists
    (config_file.parent if path else CONFIG_DIR).mkdir(parents=True, exist_ok=True)

    config_file.write_text(json.dumps(config, indent=2) + "\n")
    logger.info("Config updated", key=key)
