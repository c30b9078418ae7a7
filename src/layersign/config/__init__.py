"""
Configuration and keystore password management.

Unified API for all config-related functionality. Instead of importing
from individual submodules (config, credentials), import from this
package directly.
"""

from __future__ import annotations

from .config import (
    CONFIG_DIR,
    CONFIG_FILE,
    SigningDefaults,
    get_signing_defaults,
    reset_all,
    save_signing_config,
)
from .credentials import (
    KEYRING_SERVICE,
    clear_keystore_password,
    clear_session_passwords,
    get_credential_storage_info,
    get_keystore_password,
    keystore_account,
    migrate_plaintext_password,
    resolve_keystore_password,
    save_keystore_password,
    set_session_password,
)

__all__ = [
    "CONFIG_DIR",
    "CONFIG_FILE",
    "KEYRING_SERVICE",
    "SigningDefaults",
    "clear_keystore_password",
    "clear_session_passwords",
    "get_credential_storage_info",
    "get_keystore_password",
    "get_signing_defaults",
    "keystore_account",
    "migrate_plaintext_password",
    "reset_all",
    "resolve_keystore_password",
    "save_keystore_password",
    "save_signing_config",
    "set_session_password",
]
