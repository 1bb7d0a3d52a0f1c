"""Public API interfaces and orchestration for the ``statement_recon`` package.

This module serves as a stable import surface. Pure operations (parse, merge,
suggest, categorize) live in their own modules; the store-backed workflows
(save/merge statements, identify, auto-identify, category mapper) are async
and take a Blob Store and/or Record Store.
"""

from __future__ import annotations

from .categories import (
    CategoryMapper,
    assign_category,
    delete_category,
    normalize_label,
    require_label,
    summarize,
    validate_label,
)
from .identity import IdentityHint, extract_identity_hint
from .matcher import (
    NarrationMatcher,
    PrefixSubstringMatcher,
    TokenSetMatcher,
    auto_identify_all,
    confidence_of,
    identify,
    identity_key,
    load_transactions,
    suggest,
)
from .merge import canonical_key, compute_fingerprint, merge_statement_texts
from .normalizers import (
    format_br_amount,
    normalize_field,
    parse_amount_with_direction,
    parse_br_amount,
)
from .parser import detect_layout, extract_statement_date, parse_statement, strip_excluded_lines
from .registry import delete_entity, load_history, load_registry, save_entity
from .statements import (
    delete_statements,
    list_statements,
    merge_statements,
    save_statement,
    save_statements,
    sync_records,
    view_statement,
)
from .stores import BlobStore, Filter, LocalBlobStore, RecordStore, SqlRecordStore

__all__ = [
    # parsing
    "parse_statement",
    "detect_layout",
    "extract_statement_date",
    "strip_excluded_lines",
    "extract_identity_hint",
    "IdentityHint",
    "parse_br_amount",
    "parse_amount_with_direction",
    "format_br_amount",
    "normalize_field",
    # merging
    "canonical_key",
    "compute_fingerprint",
    "merge_statement_texts",
    # matching
    "NarrationMatcher",
    "PrefixSubstringMatcher",
    "TokenSetMatcher",
    "identity_key",
    "suggest",
    "confidence_of",
    "identify",
    "auto_identify_all",
    "load_transactions",
    # registry
    "load_registry",
    "load_history",
    "save_entity",
    "delete_entity",
    # categories
    "normalize_label",
    "validate_label",
    "require_label",
    "assign_category",
    "delete_category",
    "CategoryMapper",
    "summarize",
    # statement workflows
    "save_statement",
    "save_statements",
    "list_statements",
    "view_statement",
    "delete_statements",
    "merge_statements",
    "sync_records",
    # stores
    "BlobStore",
    "RecordStore",
    "Filter",
    "LocalBlobStore",
    "SqlRecordStore",
]
