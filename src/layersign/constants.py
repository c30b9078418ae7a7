"""
Application-wide constants for layersign.

Size limits, signature defaults, and environment variable names are
centralized here for easy maintenance and configuration.
"""

from __future__ import annotations

import importlib.metadata

try:
    __version__ = importlib.metadata.version("layersign")
except importlib.metadata.PackageNotFoundError:
    __version__ = "0.1.0"

__all__ = [
    "BYTES_PER_MB",
    "DEFAULT_DIGEST_ALGORITHM",
    "DEFAULT_PAGE",
    "DEFAULT_REASON",
    "DEFAULT_RECT",
    "ENV_ALIAS",
    "ENV_DIGEST",
    "ENV_KEYSTORE",
    "ENV_KEYSTORE_PASSWORD",
    "ENV_LOCATION",
    "ENV_NAME",
    "ENV_REASON",
    "ENV_RESERVED_BYTES",
    "FALLBACK_RESERVED_SIZE",
    "MAX_KEYSTORE_SIZE",
    "MAX_RESERVED_SIZE",
    "PDF_MAGIC",
    "PDF_WARN_SIZE",
    "RESERVED_SIZE_GRANULARITY",
    "SUPPORTED_DIGEST_ALGORITHMS",
    "__version__",
]

# ── Size units ────────────────────────────────────────────────────────

# Bytes per megabyte -- used for size limit formatting and calculations
BYTES_PER_MB = 1024 * 1024


# ── Size limits (bytes) ───────────────────────────────────────────────

# PDF file size warning threshold for the CLI (100 MB).
# Signing reads the whole document into memory twice (prepare + splice).
PDF_WARN_SIZE = 100 * 1024 * 1024

# PKCS#12 stores are a few KB; anything this large is not a keystore.
MAX_KEYSTORE_SIZE = 10 * 1024 * 1024


# ── Signature placeholder sizing ─────────────────────────────────────

# Floor for the dry-run estimate, and the size used by older signers
# when the estimate could not be computed.
FALLBACK_RESERVED_SIZE = 8192

# Reserved sizes are rounded up to a multiple of this.
RESERVED_SIZE_GRANULARITY = 1024

# Upper bound for an explicit reservation (1 MB of DER = 2 MB of hex).
MAX_RESERVED_SIZE = 1024 * 1024


# ── Signature defaults ──────────────────────────────────────────────

DEFAULT_REASON = "Document digitally signed"

# 1-based page number
DEFAULT_PAGE = 1

# (x, y, width, height) in PDF points, origin bottom-left
DEFAULT_RECT = (50.0, 50.0, 200.0, 70.0)

DEFAULT_DIGEST_ALGORITHM = "sha256"

# SHA-1 is deliberately absent: it is no longer accepted for new signatures.
SUPPORTED_DIGEST_ALGORITHMS = ("sha256", "sha384", "sha512")

# PDF file magic bytes
PDF_MAGIC = b"%PDF-"


# ── Environment variable names ──────────────────────────────────────

ENV_KEYSTORE = "LAYERSIGN_KEYSTORE"
ENV_KEYSTORE_PASSWORD = "LAYERSIGN_KEYSTORE_PASSWORD"
ENV_ALIAS = "LAYERSIGN_ALIAS"
ENV_NAME = "LAYERSIGN_NAME"
ENV_LOCATION = "LAYERSIGN_LOCATION"
ENV_REASON = "LAYERSIGN_REASON"
ENV_RESERVED_BYTES = "LAYERSIGN_RESERVED_BYTES"
ENV_DIGEST = "LAYERSIGN_DIGEST"
