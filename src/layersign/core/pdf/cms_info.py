# pyright: reportUnknownMemberType=false, reportUnknownVariableType=false, reportUnknownArgumentType=false
"""CMS metadata extraction: digest info, signing time, and signer identity."""

from __future__ import annotations

__all__ = [
    "extract_digest_info",
    "extract_signer_info",
    "extract_signing_time",
    "resolve_hash_algo",
]

import datetime
import hashlib
import logging

from asn1crypto import cms as asn1_cms

from ...errors import LayersignError
from ..cert_info import extract_cert_info_from_cms

_logger = logging.getLogger(__name__)

# Map signature-style identifiers some signers put in digestAlgorithm
# to hashlib names.
_DIGEST_ALGO_MAP: dict[str, str] = {
    "sha1_rsa": "sha1",
    "sha256_rsa": "sha256",
    "sha384_rsa": "sha384",
    "sha512_rsa": "sha512",
    "1.2.840.113549.1.1.5": "sha1",  # sha1WithRSAEncryption OID
    "1.2.840.113549.1.1.11": "sha256",  # sha256WithRSAEncryption OID
    "1.2.840.113549.1.1.12": "sha384",  # sha384WithRSAEncryption OID
    "1.2.840.113549.1.1.13": "sha512",  # sha512WithRSAEncryption OID
}


def resolve_hash_algo(algo_raw: str) -> str | None:
    """Resolve a CMS digest algorithm identifier to a hashlib name, or None."""
    if algo_raw in hashlib.algorithms_available:
        return algo_raw
    return _DIGEST_ALGO_MAP.get(algo_raw)


def _first_signer_info(cms_der: bytes) -> asn1_cms.SignerInfo | None:
    content_info = asn1_cms.ContentInfo.load(cms_der)
    signer_infos = content_info["content"]["signer_infos"]
    if not signer_infos:
        return None
    return signer_infos[0]


def _signed_attr(signer_info: asn1_cms.SignerInfo, name: str) -> object | None:
    signed_attrs = signer_info["signed_attrs"]
    if not signed_attrs:
        return None
    for attr in signed_attrs:
        if attr["type"].native == name:
            values = attr["values"]
            return values[0].native if values else None
    return None


def extract_digest_info(cms_der: bytes) -> tuple[str, bytes] | None:
    """Extract digest algorithm and messageDigest from the first SignerInfo.

    Returns:
        (hashlib_algo_name, digest_bytes) if extraction succeeds, None otherwise.
    """
    try:
        signer_info = _first_signer_info(cms_der)
        if signer_info is None:
            return None

        algo_id = signer_info["digest_algorithm"]["algorithm"]
        # Try .native first (e.g. "sha256"), then .dotted OID as fallback
        algo_name = resolve_hash_algo(algo_id.native)
        if algo_name is None:
            algo_name = resolve_hash_algo(algo_id.dotted)
        if algo_name is None:
            _logger.debug("Unrecognized digest algorithm: %s (%s)", algo_id.native, algo_id.dotted)
            return None

        digest = _signed_attr(signer_info, "message_digest")
    except (ValueError, TypeError, KeyError, AttributeError, IndexError):
        _logger.debug("Could not extract digest info from CMS", exc_info=True)
        return None
    if not isinstance(digest, bytes):
        return None
    return algo_name, digest


def extract_signing_time(cms_der: bytes) -> datetime.datetime | None:
    """Return the signingTime signed attribute, or None if absent or unreadable."""
    try:
        signer_info = _first_signer_info(cms_der)
        if signer_info is None:
            return None
        value = _signed_attr(signer_info, "signing_time")
    except (ValueError, TypeError, KeyError, AttributeError, IndexError):
        _logger.debug("Could not extract signing time from CMS", exc_info=True)
        return None
    return value if isinstance(value, datetime.datetime) else None


def extract_signer_info(cms_der: bytes) -> dict[str, str | None] | None:
    """Extract signer certificate info from a CMS blob.

    Returns:
        dict with name, email, organization, dn -- or None on failure.
    """
    try:
        return extract_cert_info_from_cms(cms_der)
    except (LayersignError, ValueError, TypeError, KeyError, AttributeError):
        _logger.debug("Could not extract signer info from CMS", exc_info=True)
        return None
