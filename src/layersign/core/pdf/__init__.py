"""PDF preparation, incremental update assembly, and signature digest checks."""

from .byterange import BYTERANGE_PATTERN, BYTERANGE_PLACEHOLDER, ByteRange, PreparedDocument
from .cms_extraction import extract_cms, extract_signature_data, find_byte_ranges
from .incremental import (
    assemble_incremental_update,
    build_xref_and_trailer,
    find_prev_startxref,
    find_root_ref,
    patch_byterange,
)
from .objects import (
    ANNOT_FLAGS_SIG_WIDGET,
    SIG_FLAGS,
    RawObject,
    SigObjectNums,
    allocate_sig_objects,
    build_acroform_update,
    build_object_override,
    build_page_override,
    pdf_text_string,
)
from .placeholder import (
    SignatureField,
    SignatureMetadata,
    fill_signature_field,
    find_empty_signature_field,
    find_signature_fields,
    install_signature_field,
    load_prepared_document,
    open_document,
)
from .position import PageInfo, find_page, page_media_box, validate_rect
from .verify import (
    VerificationResult,
    check_signature_digest,
    verify_all_embedded_signatures,
    verify_byte_range,
    verify_embedded_signature,
)

__all__ = [
    "ANNOT_FLAGS_SIG_WIDGET",
    "BYTERANGE_PATTERN",
    "BYTERANGE_PLACEHOLDER",
    "SIG_FLAGS",
    "ByteRange",
    "PageInfo",
    "PreparedDocument",
    "RawObject",
    "SigObjectNums",
    "SignatureField",
    "SignatureMetadata",
    "VerificationResult",
    "allocate_sig_objects",
    "assemble_incremental_update",
    "build_acroform_update",
    "build_object_override",
    "build_page_override",
    "build_xref_and_trailer",
    "check_signature_digest",
    "extract_cms",
    "extract_signature_data",
    "fill_signature_field",
    "find_byte_ranges",
    "find_empty_signature_field",
    "find_page",
    "find_prev_startxref",
    "find_root_ref",
    "find_signature_fields",
    "install_signature_field",
    "load_prepared_document",
    "open_document",
    "page_media_box",
    "patch_byterange",
    "pdf_text_string",
    "validate_rect",
    "verify_all_embedded_signatures",
    "verify_byte_range",
    "verify_embedded_signature",
]
