"""layersign error types."""

from __future__ import annotations

from typing import Any

__all__ = [
    "BadPassword",
    "CertificateChainInvalid",
    "CertificateError",
    "CertificateNotFound",
    "ConfigError",
    "DigestFailure",
    "DigestMismatch",
    "DocumentError",
    "EmptyChain",
    "ExpiredCertificate",
    "InvalidPage",
    "LayersignError",
    "MalformedDocument",
    "PlaceholderTooSmall",
    "RectangleOutOfBounds",
    "SignatureFieldNotFound",
    "SigningError",
    "SigningKeyRejected",
    "StreamError",
]


class LayersignError(Exception):
    """Base error for layersign operations."""


class ConfigError(LayersignError):
    """Configuration validation error."""


class StreamError(LayersignError):
    """Read or write failure on an underlying file or stream."""


# ── Certificate errors ───────────────────────────────────────────────


class CertificateError(LayersignError):
    """Certificate store loading or certificate validation error."""


class CertificateNotFound(CertificateError):
    """The keystore file or the requested alias does not exist."""


class BadPassword(CertificateError):
    """The keystore could not be decrypted with the given password."""


class EmptyChain(CertificateError):
    """The keystore holds no private key or no certificate."""


class ExpiredCertificate(CertificateError):
    """The signer certificate is outside its validity window."""


# ── Document errors ──────────────────────────────────────────────────


class DocumentError(LayersignError):
    """PDF structure, parsing, or building error."""


class InvalidPage(DocumentError):
    """Requested page does not exist in the document."""


class RectangleOutOfBounds(DocumentError):
    """Signature rectangle is empty or falls outside the page media box."""


class MalformedDocument(DocumentError):
    """Input is not a PDF, or its structure cannot be used for signing."""


class SignatureFieldNotFound(DocumentError):
    """No unsigned signature field matches the request."""


# ── Signing errors ───────────────────────────────────────────────────


class SigningError(LayersignError):
    """Byte-range signing failed."""


class PlaceholderTooSmall(SigningError):
    """The encoded signature does not fit in the reserved placeholder.

    Args:
        message: Human-readable error description.
        required: Size of the DER signature in bytes.
        available: Reserved capacity of the placeholder in bytes.
    """

    def __init__(self, message: str, *, required: int = 0, available: int = 0) -> None:
        super().__init__(message)
        self.required = required
        self.available = available

    def __reduce__(self) -> tuple[type[PlaceholderTooSmall], tuple[str], dict[str, int]]:
        """Preserve byte counts across pickle/unpickle."""
        return (type(self), (str(self),), {"required": self.required, "available": self.available})

    def __setstate__(self, state: dict[str, Any] | None) -> None:
        if state is None:
            return
        self.required = state.get("required", 0)
        self.available = state.get("available", 0)


class DigestFailure(SigningError):
    """Message digest could not be computed with the requested algorithm."""


class DigestMismatch(DigestFailure):
    """Digest over the byte ranges differs from the signed message digest."""


class SigningKeyRejected(SigningError):
    """The private key cannot produce a signature for this certificate/algorithm."""


class CertificateChainInvalid(SigningError):
    """The signer certificate is not valid at signing time."""
