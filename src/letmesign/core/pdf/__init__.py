"""PDF signature-field preparation, incremental updates, and verification."""

from .builder import (
    PreparedPdf,
    compute_byterange_hash,
    insert_cms,
    iter_form_fields,
    prepare_pdf_with_sig_field,
    signed_content,
)
from .cms_extraction import (
    BYTERANGE_PATTERN,
    SignatureData,
    extract_cms_from_byterange,
    extract_cms_from_byterange_match,
    extract_signature_data,
    find_byterange_matches,
)
from .cms_info import extract_digest_info
from .incremental import (
    PatchedPdf,
    assemble_incremental_update,
    build_xref_and_trailer,
    find_prev_startxref,
    find_root_obj_num,
    patch_byterange,
)
from .objects import (
    ANNOT_FLAGS_SIG_WIDGET,
    BYTERANGE_PLACEHOLDER,
    SIG_FLAGS,
    SigObjectNums,
    allocate_sig_objects,
    format_pdf_date,
    pdf_string,
)
from .position import (
    POSITION_ALIASES,
    POSITION_PRESETS,
    SIG_HEIGHT,
    SIG_WIDTH,
    compute_sig_rect,
    get_page_dimensions,
    resolve_page_index,
    resolve_position,
)
from .verify import SignatureVerification, build_chain, find_trust_anchor, verify_pdf_signatures

__all__ = [
    "ANNOT_FLAGS_SIG_WIDGET",
    "BYTERANGE_PATTERN",
    "BYTERANGE_PLACEHOLDER",
    "POSITION_ALIASES",
    "POSITION_PRESETS",
    "SIG_FLAGS",
    "SIG_HEIGHT",
    "SIG_WIDTH",
    "PatchedPdf",
    "PreparedPdf",
    "SigObjectNums",
    "SignatureData",
    "SignatureVerification",
    "allocate_sig_objects",
    "assemble_incremental_update",
    "build_chain",
    "build_xref_and_trailer",
    "compute_byterange_hash",
    "compute_sig_rect",
    "extract_cms_from_byterange",
    "extract_cms_from_byterange_match",
    "extract_digest_info",
    "extract_signature_data",
    "find_byterange_matches",
    "find_prev_startxref",
    "find_root_obj_num",
    "find_trust_anchor",
    "format_pdf_date",
    "get_page_dimensions",
    "insert_cms",
    "iter_form_fields",
    "pdf_string",
    "prepare_pdf_with_sig_field",
    "resolve_page_index",
    "resolve_position",
    "signed_content",
    "verify_pdf_signatures",
]
