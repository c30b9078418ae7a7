# pyright: reportUnknownMemberType=false, reportUnknownVariableType=false, reportUnknownArgumentType=false
"""
Detached CMS/PKCS#7 signer.

Produces a DER ``ContentInfo(SignedData)`` over arbitrary content
without embedding the content itself (``adbe.pkcs7.detached``):

  SignedData
    digestAlgorithms   {sha256 | sha384 | sha512}
    encapContentInfo   id-data, no eContent
    certificates       signer chain, leaf first
    signerInfos[0]
      sid              issuerAndSerialNumber of the leaf
      signedAttrs      contentType, signingTime, messageDigest
      signature        RSA PKCS#1 v1.5 or ECDSA over DER(signedAttrs)
"""

from __future__ import annotations

__all__ = [
    "build_detached_cms",
    "compute_digest",
    "estimate_reserved_size",
    "estimate_signature_size",
    "make_signature_function",
    "normalize_digest_algorithm",
]

import datetime
import hashlib
import logging
from functools import partial
from typing import TYPE_CHECKING, Any

from asn1crypto import algos, cms, core
from asn1crypto import x509 as asn1_x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, padding, rsa

from ..constants import (
    DEFAULT_DIGEST_ALGORITHM,
    FALLBACK_RESERVED_SIZE,
    RESERVED_SIZE_GRANULARITY,
    SUPPORTED_DIGEST_ALGORITHMS,
)
from ..errors import ConfigError, DigestFailure, SigningKeyRejected

if TYPE_CHECKING:
    from collections.abc import Callable

    from .certificates import CertificateBundle

_logger = logging.getLogger(__name__)

_HASH_CLASSES: dict[str, type[hashes.HashAlgorithm]] = {
    "sha256": hashes.SHA256,
    "sha384": hashes.SHA384,
    "sha512": hashes.SHA512,
}

# RSA keys below this size are refused outright.
_MIN_RSA_KEY_SIZE = 2048

# UTCTime cannot represent 2050 or later (RFC 5652, section 11.3)
_UTC_TIME_LAST_YEAR = 2049


def normalize_digest_algorithm(name: str) -> str:
    """Map "SHA-256", "sha256" etc. to a supported hashlib name.

    Raises:
        DigestFailure: For unknown or disallowed algorithms (e.g. SHA-1).
    """
    algo = name.strip().lower().replace("-", "").replace("_", "")
    if algo not in SUPPORTED_DIGEST_ALGORITHMS:
        raise DigestFailure(
            f"Unsupported digest algorithm {name!r}. "
            f"Supported: {', '.join(SUPPORTED_DIGEST_ALGORITHMS)}"
        )
    return algo


def compute_digest(content: bytes, algorithm: str = DEFAULT_DIGEST_ALGORITHM) -> bytes:
    """Digest *content* with a supported algorithm."""
    algo = normalize_digest_algorithm(algorithm)
    try:
        return hashlib.new(algo, content).digest()
    except ValueError as exc:
        raise DigestFailure(f"Cannot compute {algo} digest: {exc}") from exc


def _attribute(type_name: str, value: object) -> cms.CMSAttribute:
    return cms.CMSAttribute({"type": cms.CMSAttributeType(type_name), "values": (value,)})


def _cms_time(when: datetime.datetime) -> cms.Time:
    if when.year <= _UTC_TIME_LAST_YEAR:
        return cms.Time({"utc_time": core.UTCTime(when)})
    return cms.Time({"generalized_time": core.GeneralizedTime(when)})


def _public_key_der(key: Any) -> bytes:
    return key.public_bytes(
        serialization.Encoding.DER, serialization.PublicFormat.SubjectPublicKeyInfo
    )


def _signature_mechanism(
    bundle: CertificateBundle, digest_algorithm: str
) -> tuple[algos.SignedDigestAlgorithm, Callable[[bytes], bytes]]:
    """Pick the CMS signature algorithm and a raw signing callable for the key."""
    key = bundle.private_key
    hash_algo = _HASH_CLASSES[digest_algorithm]()

    if isinstance(key, rsa.RSAPrivateKey):
        if key.key_size < _MIN_RSA_KEY_SIZE:
            raise SigningKeyRejected(
                f"RSA key of {key.key_size} bits is too small (minimum {_MIN_RSA_KEY_SIZE})"
            )
        mechanism = algos.SignedDigestAlgorithm({"algorithm": "rsassa_pkcs1v15"})
        return mechanism, partial(_rsa_sign, key, hash_algo)

    if isinstance(key, ec.EllipticCurvePrivateKey):
        mechanism = algos.SignedDigestAlgorithm({"algorithm": f"{digest_algorithm}_ecdsa"})
        return mechanism, partial(_ec_sign, key, hash_algo)

    raise SigningKeyRejected(
        f"Unsupported signing key type {type(key).__name__}; RSA or EC keys are required"
    )


def _rsa_sign(key: rsa.RSAPrivateKey, hash_algo: hashes.HashAlgorithm, data: bytes) -> bytes:
    return key.sign(data, padding.PKCS1v15(), hash_algo)


def _ec_sign(
    key: ec.EllipticCurvePrivateKey, hash_algo: hashes.HashAlgorithm, data: bytes
) -> bytes:
    return key.sign(data, ec.ECDSA(hash_algo))


def build_detached_cms(
    content: bytes,
    bundle: CertificateBundle,
    *,
    digest_algorithm: str = DEFAULT_DIGEST_ALGORITHM,
    signing_time: datetime.datetime | None = None,
) -> bytes:
    """
    Sign *content* and return a detached CMS SignedData (DER).

    Args:
        content: Exact bytes to sign (for PDFs: both ByteRange spans).
        bundle: Private key and chain; ``bundle.chain[0]`` is the signer.
        digest_algorithm: "sha256" (default), "sha384" or "sha512".
        signing_time: Value of the signingTime attribute (default: now, UTC).

    Returns:
        DER-encoded ContentInfo.

    Raises:
        ConfigError: Naive *signing_time*.
        DigestFailure: Unsupported digest algorithm.
        SigningKeyRejected: Key type unsupported, key does not belong to
            the leaf certificate, or the backend refuses to sign.
    """
    algo = normalize_digest_algorithm(digest_algorithm)
    if signing_time is None:
        signing_time = datetime.datetime.now(datetime.timezone.utc).replace(microsecond=0)
    elif signing_time.tzinfo is None:
        raise ConfigError("signing_time must be timezone-aware")

    if _public_key_der(bundle.private_key.public_key()) != _public_key_der(
        bundle.leaf.public_key()
    ):
        raise SigningKeyRejected("Private key does not match the signer certificate")

    mechanism, raw_sign = _signature_mechanism(bundle, algo)
    digest = compute_digest(content, algo)

    certs = [
        asn1_x509.Certificate.load(cert.public_bytes(serialization.Encoding.DER))
        for cert in bundle.chain
    ]
    signer_cert = certs[0]

    signed_attrs = cms.CMSAttributes(
        [
            _attribute("content_type", cms.ContentType("data")),
            _attribute("signing_time", _cms_time(signing_time)),
            _attribute("message_digest", digest),
        ]
    )

    try:
        signature = raw_sign(signed_attrs.dump())
    except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
        raise SigningKeyRejected(f"Signing key rejected the operation: {exc}") from exc

    digest_algorithm_obj = algos.DigestAlgorithm({"algorithm": algo})
    signer_info = cms.SignerInfo(
        {
            "version": "v1",
            "sid": cms.SignerIdentifier(
                {
                    "issuer_and_serial_number": cms.IssuerAndSerialNumber(
                        {
                            "issuer": signer_cert.issuer,
                            "serial_number": signer_cert.serial_number,
                        }
                    )
                }
            ),
            "digest_algorithm": digest_algorithm_obj,
            "signature_algorithm": mechanism,
            "signed_attrs": signed_attrs,
            "signature": signature,
        }
    )

    signed_data = cms.SignedData(
        {
            "version": "v1",
            "digest_algorithms": cms.DigestAlgorithms((digest_algorithm_obj,)),
            "encap_content_info": {"content_type": "data"},
            "certificates": [
                cms.CertificateChoices(name="certificate", value=cert) for cert in certs
            ],
            "signer_infos": [signer_info],
        }
    )
    der = cms.ContentInfo(
        {"content_type": cms.ContentType("signed_data"), "content": signed_data}
    ).dump()

    _logger.debug(
        "Built detached CMS: %d bytes, %s, %d certificate(s)", len(der), algo, len(certs)
    )
    return der


def make_signature_function(
    bundle: CertificateBundle,
    *,
    digest_algorithm: str = DEFAULT_DIGEST_ALGORITHM,
    signing_time: datetime.datetime | None = None,
) -> Callable[[bytes], bytes]:
    """Bind a bundle into a ``compute_signature(content) -> cms_der`` callable.

    The callable references *bundle*; it does not copy the key.
    """
    return partial(
        build_detached_cms,
        bundle=bundle,
        digest_algorithm=digest_algorithm,
        signing_time=signing_time,
    )


def estimate_signature_size(
    bundle: CertificateBundle, digest_algorithm: str = DEFAULT_DIGEST_ALGORITHM
) -> int:
    """Dry-run the signer over empty content and return the DER size.

    The size does not depend on the content: only its digest is signed.
    """
    return len(build_detached_cms(b"", bundle, digest_algorithm=digest_algorithm))


def estimate_reserved_size(
    bundle: CertificateBundle, digest_algorithm: str = DEFAULT_DIGEST_ALGORITHM
) -> int:
    """Placeholder capacity for *bundle*: twice the dry-run size, rounded up.

    Never below :data:`~layersign.constants.FALLBACK_RESERVED_SIZE`.
    """
    estimate = estimate_signature_size(bundle, digest_algorithm)
    doubled = estimate * 2
    rounded = -(-doubled // RESERVED_SIZE_GRANULARITY) * RESERVED_SIZE_GRANULARITY
    reserved = max(FALLBACK_RESERVED_SIZE, rounded)
    _logger.debug("Signature dry run: %d bytes -> reserving %d bytes", estimate, reserved)
    return reserved
