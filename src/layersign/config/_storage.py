"""
Low-level config file I/O for layersign.

Handles reading, writing, and validating the on-disk config.json.
Shared by config.py and credentials.py; a storage layer
that neither module owns privately.
"""

from __future__ import annotations

__all__ = [
    "CONFIG_DIR",
    "CONFIG_FILE",
    "ConfigDict",
    "load_config",
    "load_raw_config",
    "save_config",
]

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, TypedDict, cast

from ..constants import MAX_RESERVED_SIZE, SUPPORTED_DIGEST_ALGORITHMS

_logger = logging.getLogger(__name__)

CONFIG_DIR = Path.home() / ".layersign"
CONFIG_FILE = CONFIG_DIR / "config.json"


class ConfigDict(TypedDict, total=False):
    """Type definition for the config file structure."""

    keystore: str
    alias: str
    name: str
    location: str
    reason: str
    reserved_bytes: int
    digest_algorithm: str
    keystore_password: str


_STR_KEYS = ("keystore", "alias", "name", "location", "reason", "keystore_password")


def load_raw_config() -> dict[str, object]:
    """Load raw config dict from disk, preserving all keys.

    Used for merge-and-save operations to preserve unknown keys
    (forward-compatibility with newer config versions).
    """
    try:
        data: Any = json.loads(CONFIG_FILE.read_text(encoding="utf-8"))
        if isinstance(data, dict):
            return cast("dict[str, object]", data)
        _logger.warning("Config file is not a JSON object, ignoring")
    except FileNotFoundError:
        pass
    except json.JSONDecodeError as e:
        _logger.warning("Config file corrupted, ignoring: %s", e)
    except OSError as e:
        _logger.warning("Cannot read config file: %s", e)
    return {}


def _pick_str(data: dict[str, object], key: str) -> str | None:
    """Return data[key] if it's a str, else None."""
    val = data.get(key)
    if val is None or isinstance(val, str):
        return val
    _logger.warning("Config %s has type %s, expected string; ignoring", key, type(val).__name__)
    return None


def _validate_config_dict(data: dict[str, object]) -> ConfigDict:
    """Validate and return config dict, picking only known keys with correct types."""
    result: ConfigDict = {}
    for key in _STR_KEYS:
        val = _pick_str(data, key)
        if val is not None:
            result[key] = val  # type: ignore[literal-required]  # dynamic key from known set

    reserved = data.get("reserved_bytes")
    if reserved is not None:
        if isinstance(reserved, int) and not isinstance(reserved, bool):
            if 0 < reserved <= MAX_RESERVED_SIZE:
                result["reserved_bytes"] = reserved
            else:
                _logger.warning(
                    "Config reserved_bytes=%d out of range [1, %d], ignoring",
                    reserved,
                    MAX_RESERVED_SIZE,
                )
        else:
            _logger.warning("Config reserved_bytes is not an integer, ignoring")

    digest = _pick_str(data, "digest_algorithm")
    if digest is not None:
        if digest.lower() in SUPPORTED_DIGEST_ALGORITHMS:
            result["digest_algorithm"] = digest.lower()
        else:
            _logger.warning("Config digest_algorithm=%r not supported, ignoring", digest)
    return result


def load_config() -> ConfigDict:
    """Load config from disk, returning only known typed keys."""
    return _validate_config_dict(load_raw_config())


def save_config(config: dict[str, object]) -> None:
    """Save config to disk with restricted permissions (0600).

    Uses atomic write (temp file + rename) to prevent corruption
    if the process is interrupted mid-write.
    """
    CONFIG_DIR.mkdir(parents=True, exist_ok=True, mode=0o700)
    # Enforce directory permissions even if the directory already existed
    if os.name != "nt":
        try:
            CONFIG_DIR.chmod(0o700)
        except OSError:
            _logger.warning("Failed to set restrictive permissions on %s", CONFIG_DIR)
    content = json.dumps(config, indent=2, ensure_ascii=False) + "\n"
    # Write through the fd directly to avoid a window where the file has wrong permissions
    fd, tmp_path = tempfile.mkstemp(dir=CONFIG_DIR, suffix=".tmp")
    tmp = Path(tmp_path)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        fd = -1  # closed by the context manager
        if os.name != "nt":
            try:
                tmp.chmod(0o600)
            except OSError:
                _logger.exception(
                    "Failed to set restrictive permissions on %s. "
                    "Config file may be readable by other users.",
                    tmp,
                )
        tmp.replace(CONFIG_FILE)  # atomic on POSIX
    except BaseException:
        if fd >= 0:
            os.close(fd)
        tmp.unlink(missing_ok=True)
        raise
