"""
Byte-range signing orchestrator.

Takes a prepared document (one zero-filled ``/Contents`` placeholder),
signs the bytes around the placeholder, and splices the hex-encoded CMS
blob into it.  The signature function is an explicit parameter:
``compute_signature(content) -> cms_der``.  Use
:func:`~layersign.core.cms.make_signature_function` to bind a
certificate bundle into one.
"""

from __future__ import annotations

__all__ = [
    "SigningRequest",
    "apply_signature",
    "sign_prepared",
    "sign_request",
]

import datetime
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from ..constants import (
    BYTES_PER_MB,
    DEFAULT_DIGEST_ALGORITHM,
    DEFAULT_PAGE,
    DEFAULT_REASON,
    DEFAULT_RECT,
    PDF_MAGIC,
    PDF_WARN_SIZE,
)
from ..errors import (
    CertificateChainInvalid,
    ConfigError,
    DigestFailure,
    MalformedDocument,
    PlaceholderTooSmall,
    SigningError,
)
from . import init_crypto
from .appearance import build_appearance, load_signature_image
from .certificates import load_certificate_bundle
from .cms import estimate_reserved_size, make_signature_function, normalize_digest_algorithm
from .pdf import (
    SignatureMetadata,
    check_signature_digest,
    fill_signature_field,
    find_empty_signature_field,
    install_signature_field,
)

if TYPE_CHECKING:
    from collections.abc import Callable

    from .appearance import SignatureAppearance, SignatureImageData
    from .certificates import CertificateBundle
    from .pdf import PreparedDocument

_logger = logging.getLogger(__name__)


# ── Request ─────────────────────────────────────────────────────────


@dataclass(frozen=True)
class SigningRequest:
    """Everything needed to sign one document.

    Attributes:
        document: Raw PDF bytes.
        keystore: Path to the PKCS#12 store.
        password: Store password.  Never shown in repr.
        alias: Expected key alias in the store, if any.
        signer_name: Display name; defaults to the certificate CN.
        location: "Location: ..." line and ``/Location``.
        reason: ``/Reason`` and the optional "Reason: ..." line.
        page: 1-based page for a new field.
        rect: (x, y, width, height) in points for a new field.
        reserved_bytes: Placeholder capacity; None sizes it by dry run.
        field_name: Name for the new field, or the existing field to fill.
        existing_field: Fill an unsigned field the document already has.
        image_path: Optional signature image for the info layer.
        digest_algorithm: "sha256", "sha384" or "sha512".
        signing_time: Fixed, timezone-aware signing time (default: now, UTC).
    """

    document: bytes = field(repr=False)
    keystore: str | Path
    password: str | None = field(default=None, repr=False)
    alias: str | None = None
    signer_name: str | None = None
    location: str = ""
    reason: str | None = DEFAULT_REASON
    page: int = DEFAULT_PAGE
    rect: tuple[float, float, float, float] = DEFAULT_RECT
    reserved_bytes: int | None = None
    field_name: str | None = None
    existing_field: bool = False
    image_path: str | Path | None = None
    digest_algorithm: str = DEFAULT_DIGEST_ALGORITHM
    signing_time: datetime.datetime | None = None


def _validate_pdf(pdf_bytes: bytes) -> None:
    """Raise MalformedDocument if bytes don't look like a PDF."""
    if not pdf_bytes or not pdf_bytes.startswith(PDF_MAGIC):
        raise MalformedDocument("Input does not appear to be a PDF file.")
    if len(pdf_bytes) > PDF_WARN_SIZE:
        _logger.warning(
            "Large PDF (%.0f MB): signing holds several copies in memory",
            len(pdf_bytes) / BYTES_PER_MB,
        )


# ── Orchestration ───────────────────────────────────────────────────


def apply_signature(
    prepared: PreparedDocument,
    compute_signature: Callable[[bytes], bytes],
    *,
    verify: bool = True,
) -> bytes:
    """
    Sign a prepared document and return the signed bytes.

    1. Take the two ByteRange spans of the prepared buffer
    2. Concatenate them into the content to sign
    3. Call *compute_signature* on that content
    4. Hex-encode the CMS blob, padded on the right with "0"
    5. Write it at the start of the placeholder

    Only the placeholder digits change; the output has the same length
    as ``prepared.data``.  With *verify*, the digest over the output's
    byte ranges is compared with the CMS messageDigest before returning.

    Raises:
        PlaceholderTooSmall: The CMS blob exceeds the reserved capacity.
            Raised before anything is written.
        DigestMismatch: The self-check failed.
        DigestFailure: The self-check could not read the CMS blob.
        SigningError: The signature function returned nothing.
    """
    # Step 1: the prepared buffer already carries the final ByteRange
    _logger.debug("Step 1: ByteRange %s", list(prepared.byte_range))

    # Step 2: content outside the placeholder
    content = prepared.signed_content()
    _logger.debug("Step 2: %d bytes to sign", len(content))

    # Step 3: detached signature
    cms_der = compute_signature(content)
    if not cms_der:
        raise SigningError("Signature function returned an empty result.")
    _logger.debug("Step 3: received CMS, %d bytes", len(cms_der))

    # Step 4: hex-encode, check capacity
    hex_sig = cms_der.hex().encode("ascii")
    if len(hex_sig) > prepared.hex_length:
        raise PlaceholderTooSmall(
            f"Signature is {len(cms_der)} bytes but only {prepared.reserved_bytes} "
            "bytes are reserved; prepare the document with a larger reserved size.",
            required=len(cms_der),
            available=prepared.reserved_bytes,
        )
    hex_sig = hex_sig.ljust(prepared.hex_length, b"0")
    _logger.debug("Step 4: %d of %d hex digits used", len(cms_der) * 2, prepared.hex_length)

    # Step 5: splice
    start = prepared.hex_start
    data = prepared.data
    signed = data[:start] + hex_sig + data[start + prepared.hex_length :]
    if len(signed) != len(data):
        raise SigningError(f"Splicing changed the document size: {len(data)} -> {len(signed)}")
    _logger.debug("Step 5: signature written at offset %d", start)

    if verify:
        try:
            check_signature_digest(signed, prepared.byte_range)
        except MalformedDocument as e:
            raise DigestFailure(f"Post-sign check could not read the signature: {e}") from e
        _logger.debug("Post-sign digest check passed")

    return signed


def _require_aware(when: datetime.datetime | None) -> None:
    if when is not None and when.tzinfo is None:
        raise ConfigError("signing_time must be timezone-aware")


def sign_prepared(
    prepared: PreparedDocument,
    bundle: CertificateBundle,
    *,
    digest_algorithm: str = DEFAULT_DIGEST_ALGORITHM,
    signing_time: datetime.datetime | None = None,
) -> bytes:
    """Sign *prepared* with *bundle*.

    The signing time defaults to the one recorded in the prepared
    document, so ``/M``, the appearance and the CMS agree.

    Raises:
        CertificateChainInvalid: Leaf certificate not valid at signing time.
        ConfigError: Naive *signing_time*.
        Anything :func:`apply_signature` or the CMS builder raises.
    """
    _require_aware(signing_time)
    when = (
        signing_time
        or prepared.signing_time
        or datetime.datetime.now(datetime.timezone.utc).replace(microsecond=0)
    )
    bundle.check_validity(when, error=CertificateChainInvalid)
    compute_signature = make_signature_function(
        bundle, digest_algorithm=digest_algorithm, signing_time=when
    )
    return apply_signature(prepared, compute_signature)


def _appearance_for(
    width: float,
    height: float,
    metadata: SignatureMetadata,
    signing_time: datetime.datetime,
    image: SignatureImageData | None,
) -> SignatureAppearance:
    return build_appearance(
        width,
        height,
        metadata.signer_name,
        metadata.location,
        signing_time,
        reason=metadata.reason,
        image=image,
    )


def sign_request(request: SigningRequest) -> bytes:
    """
    Run the full pipeline for one request and return the signed PDF.

    Loads the certificate bundle, sizes the placeholder (dry run unless
    ``reserved_bytes`` is given), builds the appearance, installs a new
    field or fills an existing one, then signs.  Nothing is returned on
    failure.

    Raises:
        CertificateError: Keystore problems (see load_certificate_bundle).
        DocumentError: Bad page, rectangle, field, or document.
        SigningError: Placeholder too small, unsupported digest, key problems.
        ConfigError: Bad reserved size, image, or naive signing time.
    """
    init_crypto()
    _validate_pdf(request.document)
    _require_aware(request.signing_time)
    digest_algorithm = normalize_digest_algorithm(request.digest_algorithm)
    signing_time = request.signing_time or datetime.datetime.now(
        datetime.timezone.utc
    ).replace(microsecond=0)

    _logger.info(
        "Signing PDF: %d bytes, %s, keystore=%s",
        len(request.document),
        "existing field" if request.existing_field else f"page {request.page}",
        request.keystore,
    )

    bundle = load_certificate_bundle(
        request.keystore, request.password, request.alias, at=signing_time
    )
    reserved = request.reserved_bytes
    if reserved is None:
        reserved = estimate_reserved_size(bundle, digest_algorithm)

    metadata = SignatureMetadata(
        signer_name=request.signer_name or bundle.subject_name or "Unknown signer",
        location=request.location,
        reason=request.reason,
        signing_time=signing_time,
    )
    image = load_signature_image(request.image_path) if request.image_path else None

    if request.existing_field:
        target = find_empty_signature_field(request.document, request.field_name)
        appearance = None
        if target.is_visible and target.rect is not None:
            x0, y0, x1, y1 = target.rect
            appearance = _appearance_for(x1 - x0, y1 - y0, metadata, signing_time, image)
        prepared = fill_signature_field(
            request.document, target, appearance, reserved, metadata
        )
    else:
        _x, _y, width, height = request.rect
        appearance = _appearance_for(width, height, metadata, signing_time, image)
        prepared = install_signature_field(
            request.document,
            request.page,
            request.rect,
            appearance,
            reserved,
            metadata,
            field_name=request.field_name,
        )

    signed = sign_prepared(
        prepared, bundle, digest_algorithm=digest_algorithm, signing_time=signing_time
    )
    _logger.info(
        "Signed PDF complete: %d bytes (+%d), field %r",
        len(signed),
        len(signed) - len(request.document),
        prepared.field_name,
    )
    return signed
