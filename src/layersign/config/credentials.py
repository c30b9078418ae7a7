"""
Keystore password management for layersign.

Passwords are stored in the system keychain (keyring), one entry per
keystore path, and fall back to the config file in plaintext only when
the keychain backend fails.
"""

from __future__ import annotations

__all__ = [
    "KEYRING_SERVICE",
    "clear_keystore_password",
    "clear_session_passwords",
    "get_credential_storage_info",
    "get_keystore_password",
    "keystore_account",
    "migrate_plaintext_password",
    "resolve_keystore_password",
    "save_keystore_password",
    "set_session_password",
]

import logging
import os
import threading
from pathlib import Path

import keyring
from keyring.errors import KeyringError

from ..constants import ENV_KEYSTORE_PASSWORD
from ._storage import CONFIG_FILE, load_config, load_raw_config, save_config

# Keyring service name for credential storage
KEYRING_SERVICE = "layersign"

_logger = logging.getLogger(__name__)

# Session-level password cache (not persisted to disk), keyed by keystore account.
_session_lock = threading.Lock()
_session_passwords: dict[str, str] = {}


def keystore_account(keystore: str | Path) -> str:
    """Keyring user name for a keystore: its absolute path."""
    return str(Path(keystore).expanduser().resolve())


def set_session_password(keystore: str | Path, password: str) -> None:
    """Cache a keystore password in memory for the current process."""
    with _session_lock:
        _session_passwords[keystore_account(keystore)] = password


def clear_session_passwords() -> None:
    """Clear the in-memory password cache."""
    with _session_lock:
        _session_passwords.clear()


def _keyring_get(account: str) -> str | None:
    try:
        return keyring.get_password(KEYRING_SERVICE, account)
    except KeyringError as e:
        # Expected keyring failure (locked, access denied, no backend)
        _logger.debug("Keyring read failed: %s", e)
    except (OSError, RuntimeError) as e:
        # OS-level failures from certain keyring backends
        _logger.debug("Keyring backend error: %s", e)
    return None


def _keyring_delete(account: str) -> None:
    """Delete a single keyring entry (best-effort)."""
    try:
        keyring.delete_password(KEYRING_SERVICE, account)
        _logger.debug("Deleted keyring entry")
    except KeyringError:
        _logger.debug("No keyring entry to delete")
    except (OSError, RuntimeError) as e:
        _logger.debug("Keyring delete failed: %s", e)


def get_credential_storage_info() -> str:
    """Return human-readable description of where passwords are stored."""
    backend = keyring.get_keyring()
    module = type(backend).__module__ or ""
    if "fail" in module or "null" in module:
        return f"{CONFIG_FILE} (plaintext)"
    if "macOS" in module:
        return "macOS Keychain"
    if "Windows" in module or "WinVault" in module:
        return "Windows Credential Manager"
    if "SecretService" in module:
        return "Linux Secret Service"
    if "KWallet" in module:
        return "KDE Wallet"
    return f"System keychain ({type(backend).__name__})"


def migrate_plaintext_password() -> None:
    """Remove the plaintext password from the config file if the keychain has it.

    Idempotent -- safe to call multiple times.
    """
    config = load_config()
    keystore = config.get("keystore")
    if not keystore or not config.get("keystore_password"):
        return
    if _keyring_get(keystore_account(keystore)):
        raw = load_raw_config()
        if raw.pop("keystore_password", None):
            save_config(raw)
            _logger.info("Migrated: removed plaintext keystore password from config file")


def get_keystore_password(keystore: str | Path) -> str | None:
    """
    Get the saved password for *keystore*.

    Reads the system keychain first, then the plaintext fallback in the
    config file (only used when it belongs to the configured keystore).
    """
    account = keystore_account(keystore)
    password = _keyring_get(account)
    if password:
        _logger.debug("get_keystore_password: found password in keyring")
        return password

    config = load_config()
    saved = config.get("keystore_password")
    configured = config.get("keystore")
    if saved and configured and keystore_account(configured) == account:
        _logger.debug("get_keystore_password: found password in config file (plaintext)")
        return saved
    return None


def resolve_keystore_password(keystore: str | Path) -> str | None:
    """Resolve the password for *keystore*.

    Priority: env var > session cache > saved (keychain, then config file).
    """
    pwd = os.environ.get(ENV_KEYSTORE_PASSWORD)
    if pwd:
        _logger.debug("resolve_keystore_password: source=env")
        return pwd

    with _session_lock:
        cached = _session_passwords.get(keystore_account(keystore))
    if cached:
        _logger.debug("resolve_keystore_password: source=session")
        return cached

    migrate_plaintext_password()
    saved = get_keystore_password(keystore)
    _logger.debug("resolve_keystore_password: source=%s", "saved" if saved else "none")
    return saved


def save_keystore_password(keystore: str | Path, password: str) -> bool:
    """
    Save the password for *keystore*.

    Returns:
        True if the password went to the system keychain (secure),
        False if it fell back to the config file (plaintext).
    """
    account = keystore_account(keystore)
    config = load_raw_config()
    try:
        keyring.set_password(KEYRING_SERVICE, account, password)
    except KeyringError as e:
        _logger.warning("Keyring save failed, using config file: %s", e)
    except (OSError, RuntimeError) as e:
        _logger.warning("Keyring backend error, using config file: %s", e)
    else:
        if config.pop("keystore_password", None) is not None:
            save_config(config)
        return True

    _logger.warning("Keystore password will be saved in plaintext (%s)", CONFIG_FILE)
    config["keystore"] = account
    config["keystore_password"] = password
    save_config(config)
    return False


def clear_keystore_password(keystore: str | Path | None = None) -> None:
    """Remove the saved password for *keystore* (default: the configured one)."""
    config = load_raw_config()
    if keystore is None:
        configured = config.get("keystore")
        keystore = configured if isinstance(configured, str) and configured else None
    if keystore is not None:
        _keyring_delete(keystore_account(keystore))
    if config.pop("keystore_password", None) is not None:
        save_config(config)
    _logger.info("Cleared saved keystore password")
