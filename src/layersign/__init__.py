"""
layersign — PDF digital signatures with layered appearances.

Signs PDF documents with detached CMS/PKCS#7 signatures over the
document byte ranges, appended as incremental updates so earlier
revisions and signatures stay intact.
"""

from __future__ import annotations

from .api import check, sign
from .constants import __version__
from .core import init_crypto
from .core.appearance import SignatureAppearance, build_appearance
from .core.certificates import CertificateBundle, load_certificate_bundle
from .core.cms import build_detached_cms, make_signature_function
from .core.pdf import (
    ByteRange,
    PreparedDocument,
    SignatureField,
    SignatureMetadata,
    fill_signature_field,
    find_signature_fields,
    install_signature_field,
    load_prepared_document,
    verify_all_embedded_signatures,
    verify_embedded_signature,
)
from .core.signing import SigningRequest, apply_signature, sign_prepared, sign_request
from .errors import (
    CertificateError,
    ConfigError,
    DocumentError,
    LayersignError,
    SigningError,
    StreamError,
)

__all__ = [
    "ByteRange",
    "CertificateBundle",
    "CertificateError",
    "ConfigError",
    "DocumentError",
    "LayersignError",
    "PreparedDocument",
    "SignatureAppearance",
    "SignatureField",
    "SignatureMetadata",
    "SigningError",
    "SigningRequest",
    "StreamError",
    "__version__",
    "apply_signature",
    "build_appearance",
    "build_detached_cms",
    "check",
    "fill_signature_field",
    "find_signature_fields",
    "init_crypto",
    "install_signature_field",
    "load_certificate_bundle",
    "load_prepared_document",
    "make_signature_function",
    "sign",
    "sign_prepared",
    "sign_request",
    "verify_all_embedded_signatures",
    "verify_embedded_signature",
]
