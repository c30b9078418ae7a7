"""Core signing and PDF operations."""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

from ..errors import LayersignError

if TYPE_CHECKING:
    import types

__all__ = ["crypto_initialized", "init_crypto", "require_pikepdf"]

_logger = logging.getLogger(__name__)

_init_lock = threading.Lock()
_crypto_ready = False


def require_pikepdf() -> types.ModuleType:
    """Lazily import pikepdf to avoid loading the C extension at startup.

    pikepdf is a required dependency; this defers the import for
    startup performance, not optionality.
    """
    try:
        import pikepdf
    except ImportError as exc:
        raise LayersignError(
            "pikepdf is required for this operation.\nInstall with: pip install pikepdf"
        ) from exc
    else:
        return pikepdf


def init_crypto() -> None:
    """Initialize the cryptographic backend once per process.

    Call before the first signing operation. Safe to call any number of
    times from any thread; only the first call does work. Signing entry
    points call it themselves, so explicit calls only move the cost to
    process start.

    Raises:
        LayersignError: If the backend lacks the digests signing needs.
    """
    global _crypto_ready
    with _init_lock:
        if _crypto_ready:
            return
        from cryptography.hazmat.backends.openssl import backend
        from cryptography.hazmat.primitives import hashes

        for algo in (hashes.SHA256(), hashes.SHA384(), hashes.SHA512()):
            if not backend.hash_supported(algo):
                raise LayersignError(f"Crypto backend does not support {algo.name}")
        _logger.debug("Crypto backend ready: %s", backend.openssl_version_text())
        _crypto_ready = True


def crypto_initialized() -> bool:
    """Return True once :func:`init_crypto` has completed."""
    return _crypto_ready
