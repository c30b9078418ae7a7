"""
Configuration management for layersign.

Stores signing defaults (keystore, alias, signer identity, reserved
size, digest) in ~/.layersign/config.json.  Values resolve with the
priority: explicit argument > environment > config file > built-in
default.

Password management lives in ``credentials.py``.
"""

from __future__ import annotations

__all__ = [
    "CONFIG_DIR",
    "CONFIG_FILE",
    "SigningDefaults",
    "get_signing_defaults",
    "reset_all",
    "save_signing_config",
]

import logging
import os
from typing import TypedDict

from ..constants import (
    DEFAULT_DIGEST_ALGORITHM,
    DEFAULT_REASON,
    ENV_ALIAS,
    ENV_DIGEST,
    ENV_KEYSTORE,
    ENV_LOCATION,
    ENV_NAME,
    ENV_REASON,
    ENV_RESERVED_BYTES,
    MAX_RESERVED_SIZE,
    SUPPORTED_DIGEST_ALGORITHMS,
)
from ..errors import ConfigError
from ._storage import CONFIG_DIR, CONFIG_FILE, load_config, load_raw_config, save_config

_logger = logging.getLogger(__name__)


class SigningDefaults(TypedDict):
    """Resolved signing defaults; None means "not configured"."""

    keystore: str | None
    alias: str | None
    name: str | None
    location: str
    reason: str
    reserved_bytes: int | None
    digest_algorithm: str


def _env(key: str) -> str | None:
    value = os.environ.get(key, "").strip()
    return value or None


def _env_reserved_bytes() -> int | None:
    raw = _env(ENV_RESERVED_BYTES)
    if raw is None:
        return None
    try:
        value = int(raw)
    except ValueError:
        _logger.warning("Invalid %s value %r, ignoring", ENV_RESERVED_BYTES, raw)
        return None
    if not 0 < value <= MAX_RESERVED_SIZE:
        _logger.warning(
            "%s=%d out of range [1, %d], ignoring", ENV_RESERVED_BYTES, value, MAX_RESERVED_SIZE
        )
        return None
    return value


def _env_digest() -> str | None:
    raw = _env(ENV_DIGEST)
    if raw is None:
        return None
    if raw.lower() not in SUPPORTED_DIGEST_ALGORITHMS:
        _logger.warning("Unsupported %s value %r, ignoring", ENV_DIGEST, raw)
        return None
    return raw.lower()


def get_signing_defaults() -> SigningDefaults:
    """
    Resolve signing defaults from the environment and the config file.

    Priority: env vars > config file > built-in default.
    """
    config = load_config()
    return {
        "keystore": _env(ENV_KEYSTORE) or config.get("keystore"),
        "alias": _env(ENV_ALIAS) or config.get("alias"),
        "name": _env(ENV_NAME) or config.get("name"),
        "location": _env(ENV_LOCATION) or config.get("location", ""),
        "reason": _env(ENV_REASON) or config.get("reason", DEFAULT_REASON),
        "reserved_bytes": _env_reserved_bytes() or config.get("reserved_bytes"),
        "digest_algorithm": (
            _env_digest() or config.get("digest_algorithm", DEFAULT_DIGEST_ALGORITHM)
        ),
    }


_SAVABLE_STR_KEYS = ("keystore", "alias", "name", "location", "reason", "digest_algorithm")


def save_signing_config(**values: str | int | None) -> None:
    """
    Merge signing defaults into the config file.

    Keys given as None are left unchanged; an empty string removes the key.
    Unknown keys already in the file are preserved.

    Raises:
        ConfigError: Unknown key, or a value of the wrong type or range.
    """
    config = load_raw_config()
    for key, value in values.items():
        if value is None:
            continue
        if key == "reserved_bytes":
            if isinstance(value, bool) or not isinstance(value, int):
                raise ConfigError(f"reserved_bytes must be an integer, got {value!r}")
            if not 0 < value <= MAX_RESERVED_SIZE:
                raise ConfigError(
                    f"reserved_bytes must be between 1 and {MAX_RESERVED_SIZE}, got {value}"
                )
            config[key] = value
        elif key in _SAVABLE_STR_KEYS:
            if not isinstance(value, str):
                raise ConfigError(f"{key} must be a string, got {value!r}")
            if key == "digest_algorithm":
                value = value.lower()
            if value and key == "digest_algorithm" and value not in SUPPORTED_DIGEST_ALGORITHMS:
                raise ConfigError(
                    f"Unsupported digest algorithm {value!r}. "
                    f"Supported: {', '.join(SUPPORTED_DIGEST_ALGORITHMS)}"
                )
            if value:
                config[key] = value
            else:
                config.pop(key, None)
        else:
            raise ConfigError(f"Unknown config key: {key}")
    save_config(config)
    _logger.debug("Saved config keys: %s", sorted(k for k, v in values.items() if v is not None))


def reset_all() -> None:
    """Clear all config: saved password, session cache, and signing defaults."""
    from .credentials import clear_keystore_password, clear_session_passwords

    clear_keystore_password()
    clear_session_passwords()
    save_config({})
