# pyright: reportUnknownMemberType=false, reportUnknownVariableType=false, reportUnknownArgumentType=false
"""
Certificate subject extraction from X.509 certificates and CMS blobs.

Used to derive a default signer display name from the keystore and to
report who signed each embedded signature.
"""

from __future__ import annotations

__all__ = [
    "describe_certificate",
    "extract_cert_info_from_cms",
    "extract_cert_info_from_der",
]

import datetime
import logging

from asn1crypto import cms as asn1_cms
from asn1crypto import x509 as asn1_x509

from ..errors import CertificateError

_logger = logging.getLogger(__name__)

# OIDs for common subject fields
_OID_CN = "2.5.4.3"
_OID_EMAIL = "1.2.840.113549.1.9.1"
_OID_ORG = "2.5.4.10"


def describe_certificate(cert: asn1_x509.Certificate) -> dict[str, str | None]:
    """Extract CN, email, org, dn from an asn1crypto certificate object.

    Also logs warnings for expired or not-yet-valid certificates.
    """
    subject = cert.subject

    try:
        not_before = cert.not_valid_before
        not_after = cert.not_valid_after
        now = datetime.datetime.now(datetime.timezone.utc)
        if not_before and now < not_before:
            _logger.warning("Certificate is not yet valid (notBefore: %s)", not_before)
        elif not_after and now > not_after:
            _logger.warning("Certificate has expired (notAfter: %s)", not_after)
    except (KeyError, TypeError, ValueError) as e:
        _logger.debug("Cannot check certificate validity dates: %s", e)

    fields: dict[str, str | None] = {"name": None, "email": None, "organization": None}
    oid_map = {_OID_CN: "name", _OID_EMAIL: "email", _OID_ORG: "organization"}

    for rdn in subject.chosen:
        for attr in rdn:
            oid = attr["type"].dotted
            if oid in oid_map:
                fields[oid_map[oid]] = attr["value"].native

    fields["dn"] = subject.human_friendly
    return fields


def extract_cert_info_from_der(cert_der: bytes) -> dict[str, str | None]:
    """
    Extract subject info from a raw DER-encoded X.509 certificate.

    Raises:
        CertificateError: If parsing fails.
    """
    try:
        cert = asn1_x509.Certificate.load(cert_der)
        # Force a parse so malformed input fails here, not on first access
        _ = cert.subject
    except (ValueError, TypeError, OSError) as e:
        raise CertificateError(f"Failed to parse X.509 certificate: {e}") from e

    return describe_certificate(cert)


def extract_cert_info_from_cms(cms_der: bytes) -> dict[str, str | None]:
    """
    Extract the signer certificate subject from a CMS/PKCS#7 DER blob.

    The signer is the certificate matching the first SignerInfo's
    issuer and serial number; the first embedded certificate is used
    when no certificate matches.

    Returns:
        dict with keys: name (CN), email, organization, dn (full subject).

    Raises:
        CertificateError: If parsing fails or no certificate is embedded.
    """
    try:
        content_info = asn1_cms.ContentInfo.load(cms_der)
        signed_data = content_info["content"]
        certs = signed_data["certificates"]
        signer_infos = signed_data["signer_infos"]
    except (ValueError, TypeError, KeyError, OSError) as e:
        raise CertificateError(f"Failed to parse CMS/PKCS#7 blob: {e}") from e

    if not certs:
        raise CertificateError("No certificate found in CMS blob.")

    chosen = certs[0].chosen
    if signer_infos:
        sid = signer_infos[0]["sid"]
        if sid.name == "issuer_and_serial_number":
            issuer = sid.chosen["issuer"]
            serial = sid.chosen["serial_number"].native
            for choice in certs:
                cert = choice.chosen
                if cert.issuer == issuer and cert.serial_number == serial:
                    chosen = cert
                    break
    return describe_certificate(chosen)
