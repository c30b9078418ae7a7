"""DER helpers for signature values stored in zero-padded hex strings."""

from __future__ import annotations

__all__ = ["ASN1_SEQUENCE_TAG", "MIN_CMS_SIZE", "extract_der_from_padded_hex"]

from asn1crypto import parser

# ASN.1 SEQUENCE tag -- first byte of any valid CMS/PKCS#7 blob
ASN1_SEQUENCE_TAG = 0x30

# Minimum plausible CMS blob size in bytes (header + basic content)
MIN_CMS_SIZE = 100

_INDEFINITE_LENGTH = 0x80


def extract_der_from_padded_hex(hex_str: str) -> bytes:
    """Extract the exact DER blob from a zero-padded hex string.

    The length comes from the outer TLV header, so blobs that happen to
    end in 0x00 bytes survive (``rstrip("0")`` would corrupt them).

    Raises:
        ValueError: If the hex is invalid or the DER header is malformed.
    """
    if len(hex_str) % 2:
        hex_str = hex_str[:-1]
    raw = bytes.fromhex(hex_str)
    if len(raw) < 2:
        raise ValueError("Hex string too short for ASN.1 TLV header")
    if raw[0] != ASN1_SEQUENCE_TAG:
        raise ValueError(f"Expected ASN.1 SEQUENCE (0x30), got 0x{raw[0]:02x}")
    if raw[1] == _INDEFINITE_LENGTH:
        raise ValueError("Indefinite length encoding is not valid in DER")

    # non-strict parse stops after the first value; the padding is its trailer
    _class, _method, _tag, header, contents, _trailer = parser.parse(raw)
    return header + contents
