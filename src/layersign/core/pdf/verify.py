"""
Digest integrity checks for embedded PDF signatures.

Extracts ByteRange data and CMS blobs, recomputes the digest of the
signed spans, and compares it with the CMS messageDigest attribute.
Supports multi-signature PDFs.  Certificate trust and the signature
value itself are not validated here.
"""

from __future__ import annotations

__all__ = [
    "VerificationResult",
    "check_signature_digest",
    "verify_all_embedded_signatures",
    "verify_byte_range",
    "verify_embedded_signature",
]

import hashlib
import logging
from typing import TypedDict

from ...errors import DigestMismatch, LayersignError, MalformedDocument
from .asn1 import ASN1_SEQUENCE_TAG, MIN_CMS_SIZE
from .byterange import ByteRange
from .cms_extraction import extract_signature_data, find_byte_ranges
from .cms_info import extract_digest_info, extract_signer_info, extract_signing_time

_logger = logging.getLogger(__name__)


class VerificationResult(TypedDict):
    """Result of checking a single embedded signature."""

    valid: bool  # structure_ok and hash_ok; the signature value is not checked
    structure_ok: bool  # ByteRange and CMS structure valid
    hash_ok: bool  # Digest matches the CMS messageDigest
    covers_document: bool  # ByteRange reaches the end of the file
    details: list[str]  # Human-readable messages
    signer: dict[str, str | None] | None  # Certificate info (name, email, org, dn)
    signing_time: str | None  # ISO 8601, from the signingTime attribute


def _failed(detail: str) -> VerificationResult:
    return {
        "valid": False,
        "structure_ok": False,
        "hash_ok": False,
        "covers_document": False,
        "details": [detail],
        "signer": None,
        "signing_time": None,
    }


def verify_byte_range(pdf_bytes: bytes, byte_range: ByteRange) -> VerificationResult:
    """Check one signature, identified by its ByteRange.

    Never raises on verification failure; returns valid=False with details.
    """
    details: list[str] = []
    structure_ok = True

    # ── 1. Extract signature data ────────────────────────────────
    try:
        signed_data, cms_der = extract_signature_data(pdf_bytes, byte_range)
    except LayersignError as e:
        return _failed(f"Structure error: {e}")
    details.append(f"ByteRange {list(byte_range)} OK -- signed data: {len(signed_data)} bytes")
    details.append(f"CMS blob: {len(cms_der)} bytes")

    covers = byte_range.covers(len(pdf_bytes))
    if not covers:
        details.append(
            f"Signature covers the first {byte_range.end} of {len(pdf_bytes)} bytes "
            "(later revisions were appended)"
        )

    # ── 2. CMS structure check ───────────────────────────────────
    if len(cms_der) < MIN_CMS_SIZE:
        structure_ok = False
        details.append(f"CMS too small ({len(cms_der)} bytes) -- likely corrupt")
    elif cms_der[0] != ASN1_SEQUENCE_TAG:
        structure_ok = False
        details.append("CMS does not start with ASN.1 SEQUENCE tag (0x30)")
    else:
        details.append("CMS: valid ASN.1 structure")

    # ── 3. Signer info ───────────────────────────────────────────
    signer = extract_signer_info(cms_der)
    if signer and signer.get("name"):
        details.append(f"Signer: {signer['name']}")
    signing_time = extract_signing_time(cms_der)
    if signing_time is not None:
        details.append(f"Signing time: {signing_time.isoformat()}")

    # ── 4. Digest check ──────────────────────────────────────────
    hash_ok = False
    digest_info = extract_digest_info(cms_der)
    if digest_info is not None:
        algo_name, cms_digest = digest_info
        actual = hashlib.new(algo_name, signed_data).digest()
        algo_upper = algo_name.upper().replace("_", "-")
        if actual == cms_digest:
            hash_ok = True
            details.append(f"Hash OK -- {algo_upper} matches CMS messageDigest: {actual.hex()}")
        else:
            details.append(
                f"Hash MISMATCH!\n"
                f"  ByteRange {algo_upper}:   {actual.hex()}\n"
                f"  CMS messageDigest:  {cms_digest.hex()}"
            )
    else:
        details.append("Could not extract digest info -- hash verification unavailable")

    return {
        "valid": structure_ok and hash_ok,
        "structure_ok": structure_ok,
        "hash_ok": hash_ok,
        "covers_document": covers,
        "details": details,
        "signer": signer,
        "signing_time": signing_time.isoformat() if signing_time is not None else None,
    }


def verify_embedded_signature(pdf_bytes: bytes) -> VerificationResult:
    """Check the last (most recent) embedded signature."""
    byte_ranges = find_byte_ranges(pdf_bytes)
    if not byte_ranges:
        return _failed("Structure error: No /ByteRange found in PDF -- not a signed PDF?")
    return verify_byte_range(pdf_bytes, byte_ranges[-1])


def verify_all_embedded_signatures(pdf_bytes: bytes) -> list[VerificationResult]:
    """
    Check every embedded signature, in file order.

    Raises:
        MalformedDocument: If the PDF has no embedded signatures.
    """
    byte_ranges = find_byte_ranges(pdf_bytes)
    if not byte_ranges:
        raise MalformedDocument("No /ByteRange found in PDF -- not a signed PDF?")
    results = [verify_byte_range(pdf_bytes, br) for br in byte_ranges]
    _logger.debug(
        "Checked %d signature(s): %d valid", len(results), sum(r["valid"] for r in results)
    )
    return results


def check_signature_digest(pdf_bytes: bytes, byte_range: ByteRange) -> None:
    """Raise unless the digest of the signed spans equals the CMS messageDigest.

    Raises:
        MalformedDocument: If the signature cannot be extracted.
        DigestMismatch: If the digests differ or cannot be compared.
    """
    signed_data, cms_der = extract_signature_data(pdf_bytes, byte_range)
    digest_info = extract_digest_info(cms_der)
    if digest_info is None:
        raise DigestMismatch("Signature has no readable messageDigest attribute")
    algo_name, cms_digest = digest_info
    actual = hashlib.new(algo_name, signed_data).digest()
    if actual != cms_digest:
        raise DigestMismatch(
            f"{algo_name} over the byte ranges ({actual.hex()}) does not match "
            f"the signed messageDigest ({cms_digest.hex()})"
        )
