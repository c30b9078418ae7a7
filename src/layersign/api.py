"""High-level convenience API for PDF signing.

Provides :func:`sign` and :func:`check`, which handle keystore, password
and appearance defaults automatically.

For lower-level control, build a
:class:`~layersign.core.signing.SigningRequest` and pass it to
:func:`~layersign.core.signing.sign_request`, or prepare a document with
:func:`~layersign.core.pdf.install_signature_field` and sign it with
:func:`~layersign.core.signing.sign_prepared`.
"""

from __future__ import annotations

__all__ = ["check", "sign"]

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from .config import get_signing_defaults, resolve_keystore_password
from .constants import DEFAULT_PAGE, DEFAULT_RECT
from .core.pdf import verify_all_embedded_signatures
from .core.signing import SigningRequest, sign_request
from .errors import ConfigError

if TYPE_CHECKING:
    from .core.pdf import VerificationResult

_logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def sign(
    pdf_bytes: bytes,
    *,
    keystore: str | Path | None = None,
    password: str | None = None,
    alias: str | None = None,
    name: str | None = None,
    location: str | None = None,
    reason: str | None = None,
    page: int = DEFAULT_PAGE,
    rect: tuple[float, float, float, float] | None = None,
    reserved_bytes: int | None = None,
    field: str | None = None,
    existing_field: bool = False,
    image_path: str | Path | None = None,
    digest_algorithm: str | None = None,
) -> bytes:
    """Sign a PDF with an embedded, visible signature.

    Unspecified values are resolved from the environment, then from
    ``~/.layersign/config.json`` (see :mod:`layersign.config`).  The
    signer name falls back to the certificate's common name.

    Args:
        pdf_bytes: Raw PDF file content.
        keystore: Path to a PKCS#12 keystore.
        password: Keystore password. Resolved from env, session cache,
            or the system keychain if ``None``.
        alias: Expected key alias in the keystore.
        name: Signer display name.
        location: Signing location shown in the appearance.
        reason: Signature reason string.
        page: 1-based target page for a new field.
        rect: ``(x, y, width, height)`` in PDF points.
        reserved_bytes: Placeholder capacity. Sized by dry run if ``None``.
        field: Name for the new field, or the existing field to fill.
        existing_field: Fill an unsigned signature field already in the PDF.
        image_path: Path to a signature image for the info layer.
        digest_algorithm: ``"sha256"`` (default), ``"sha384"`` or ``"sha512"``.

    Returns:
        Complete PDF with embedded signature.

    Raises:
        ConfigError: If no keystore can be resolved.
        CertificateError: Keystore, password, alias, or validity problems.
        DocumentError: Bad input PDF, page, rectangle, or field.
        SigningError: Placeholder too small, digest or key problems.
    """
    defaults = get_signing_defaults()

    resolved_keystore = keystore if keystore is not None else defaults["keystore"]
    if not resolved_keystore:
        raise ConfigError(
            "No keystore configured. "
            "Pass keystore='path/to/store.p12', set LAYERSIGN_KEYSTORE, "
            "or run `layersign configure --keystore ...`."
        )

    resolved_password = password
    if resolved_password is None:
        resolved_password = resolve_keystore_password(resolved_keystore)

    request = SigningRequest(
        document=pdf_bytes,
        keystore=resolved_keystore,
        password=resolved_password,
        alias=alias if alias is not None else defaults["alias"],
        # None here means "use the certificate CN"
        signer_name=name if name is not None else defaults["name"],
        location=location if location is not None else defaults["location"],
        reason=reason if reason is not None else defaults["reason"],
        page=page,
        rect=rect if rect is not None else DEFAULT_RECT,
        reserved_bytes=reserved_bytes if reserved_bytes is not None else defaults["reserved_bytes"],
        field_name=field,
        existing_field=existing_field,
        image_path=image_path,
        digest_algorithm=digest_algorithm or defaults["digest_algorithm"],
    )
    return sign_request(request)


def check(pdf_bytes: bytes) -> list[VerificationResult]:
    """Check the digest integrity of every embedded signature.

    Only the ByteRange digest is compared with the CMS messageDigest; the
    signature value and the certificate chain are not validated.

    Raises:
        MalformedDocument: If the PDF has no embedded signatures.
    """
    results = verify_all_embedded_signatures(pdf_bytes)
    _logger.info(
        "Checked %d signature(s): %d intact",
        len(results),
        sum(1 for r in results if r["valid"]),
    )
    return results
