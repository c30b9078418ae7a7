"""
Certificate provider: private key and chain loading from PKCS#12 stores.

A :class:`CertificateBundle` is created per signing operation and
discarded afterwards.  It is never cached, and it refuses to be pickled
so the private key cannot leak into caches, queues, or worker payloads.
"""

from __future__ import annotations

__all__ = [
    "CertificateBundle",
    "bundle_from_pkcs12",
    "load_certificate_bundle",
]

import datetime
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, NoReturn

from cryptography import x509
from cryptography.hazmat.primitives.serialization import pkcs12
from cryptography.x509.oid import NameOID

from ..constants import MAX_KEYSTORE_SIZE
from ..errors import (
    BadPassword,
    CertificateError,
    CertificateNotFound,
    ConfigError,
    EmptyChain,
    ExpiredCertificate,
    StreamError,
)

if TYPE_CHECKING:
    from cryptography.hazmat.primitives.asymmetric.types import PrivateKeyTypes

_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CertificateBundle:
    """Private key plus certificate chain (leaf first).

    Attributes:
        private_key: Signing key matching ``chain[0]``.  Never shown in repr.
        chain: Leaf certificate followed by its issuers.
        alias: Friendly name the key was stored under, if any.
    """

    private_key: PrivateKeyTypes = field(repr=False)
    chain: tuple[x509.Certificate, ...]
    alias: str | None = None

    def __post_init__(self) -> None:
        if not self.chain:
            raise EmptyChain("Certificate chain is empty.")

    def __reduce__(self) -> NoReturn:
        raise TypeError("CertificateBundle holds a private key and cannot be serialized")

    @property
    def leaf(self) -> x509.Certificate:
        return self.chain[0]

    @property
    def not_before(self) -> datetime.datetime:
        return self.leaf.not_valid_before_utc

    @property
    def not_after(self) -> datetime.datetime:
        return self.leaf.not_valid_after_utc

    @property
    def subject_name(self) -> str | None:
        """Common name of the leaf certificate, or None."""
        attrs = self.leaf.subject.get_attributes_for_oid(NameOID.COMMON_NAME)
        if not attrs:
            return None
        value = attrs[0].value
        return value if isinstance(value, str) else value.decode("utf-8", "replace")

    def is_valid_at(self, when: datetime.datetime) -> bool:
        return self.not_before <= when <= self.not_after

    def check_validity(
        self,
        when: datetime.datetime | None = None,
        error: type[Exception] = ExpiredCertificate,
    ) -> None:
        """Raise *error* unless the leaf certificate is valid at *when* (default: now).

        Raises:
            ConfigError: *when* is timezone-naive.
        """
        when = when or datetime.datetime.now(datetime.timezone.utc)
        if when.tzinfo is None:
            raise ConfigError("Validity check needs a timezone-aware time")
        if when < self.not_before:
            raise error(
                f"Certificate is not yet valid: notBefore {self.not_before.isoformat()} "
                f"is after {when.isoformat()}"
            )
        if when > self.not_after:
            raise error(
                f"Certificate has expired: notAfter {self.not_after.isoformat()} "
                f"is before {when.isoformat()}"
            )


def _order_chain(
    leaf: x509.Certificate, others: list[x509.Certificate]
) -> tuple[x509.Certificate, ...]:
    """Order certificates leaf -> issuer -> ... ; unrelated certs go last."""
    chain = [leaf]
    remaining = list(others)
    current = leaf
    while remaining and current.issuer != current.subject:
        issuer = next((c for c in remaining if c.subject == current.issuer), None)
        if issuer is None:
            break
        chain.append(issuer)
        remaining.remove(issuer)
        current = issuer
    chain.extend(remaining)
    return tuple(chain)


def _decode_alias(friendly_name: bytes | None) -> str | None:
    if friendly_name is None:
        return None
    return friendly_name.decode("utf-8", "replace")


def bundle_from_pkcs12(
    data: bytes,
    password: str | bytes | None,
    alias: str | None = None,
    *,
    at: datetime.datetime | None = None,
) -> CertificateBundle:
    """Build a :class:`CertificateBundle` from PKCS#12 bytes.

    Args:
        data: DER-encoded PKCS#12 (PFX) store.
        password: Store password; None or empty for an unencrypted store.
        alias: Expected friendly name of the key entry.  Matched
            case-insensitively (keystore aliases are case-folded by most
            Java tooling).  Entries without a friendly name are accepted.
        at: Instant to validate the leaf certificate against (default: now).

    Raises:
        BadPassword: Wrong password or undecodable store.
        CertificateNotFound: *alias* does not match the key entry.
        EmptyChain: No private key or no certificate in the store.
        ExpiredCertificate: Leaf certificate outside its validity window.
    """
    pwd: bytes | None
    if isinstance(password, str):
        pwd = password.encode("utf-8") if password else None
    else:
        pwd = password or None

    try:
        store = pkcs12.load_pkcs12(data, pwd)
    except ValueError as exc:
        # cryptography reports wrong passwords and corrupt stores identically
        raise BadPassword(
            f"Cannot open keystore: invalid password or corrupt PKCS#12 data ({exc})"
        ) from exc

    if store.key is None:
        raise EmptyChain("Keystore contains no private key.")
    if store.cert is None:
        raise EmptyChain("Keystore contains no certificate for the private key.")

    stored_alias = _decode_alias(store.cert.friendly_name)
    if alias is not None:
        if stored_alias is None:
            _logger.warning("Keystore entry has no alias; using it for requested alias %r", alias)
        elif stored_alias.casefold() != alias.casefold():
            raise CertificateNotFound(
                f"Alias {alias!r} not found in keystore (available: {stored_alias!r})"
            )

    others = [c.certificate for c in store.additional_certs]
    bundle = CertificateBundle(
        private_key=store.key,
        chain=_order_chain(store.cert.certificate, others),
        alias=stored_alias,
    )
    bundle.check_validity(at)
    _logger.debug(
        "Loaded certificate bundle: alias=%r, chain length=%d, valid until %s",
        stored_alias,
        len(bundle.chain),
        bundle.not_after.isoformat(),
    )
    return bundle


def load_certificate_bundle(
    path: str | Path,
    password: str | bytes | None,
    alias: str | None = None,
    *,
    at: datetime.datetime | None = None,
) -> CertificateBundle:
    """Load a private key and certificate chain from a PKCS#12 file.

    See :func:`bundle_from_pkcs12` for argument and error details.

    Raises:
        CertificateNotFound: If *path* does not exist.
        StreamError: If the file cannot be read.
    """
    keystore = Path(path).expanduser()
    if not keystore.is_file():
        raise CertificateNotFound(f"Keystore not found: {keystore}")
    try:
        size = keystore.stat().st_size
        if size > MAX_KEYSTORE_SIZE:
            raise CertificateError(f"Keystore too large to be a PKCS#12 file: {size} bytes")
        data = keystore.read_bytes()
    except OSError as exc:
        raise StreamError(f"Cannot read keystore {keystore}: {exc}") from exc
    return bundle_from_pkcs12(data, password, alias, at=at)
