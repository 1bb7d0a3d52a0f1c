"""Public interface for the ``statement_recon`` package.

Bank statement parsing and reconciliation: parse Brazilian statement exports,
deduplicate them into one consolidated statement, suggest counterparties from
tax IDs and learned decisions, and roll transactions up by category.

This module only re-exports symbols; see ``statement_recon.api``.
"""

from .api import *  # noqa: F403
from .api import __all__ as _api_all
from .errors import (
    NotFoundFailure,
    ParseFailure,
    ReconError,
    StoreFailure,
    ValidationFailure,
)
from .models import (
    Associate,
    AutoIdentifyReport,
    CategoryMetadata,
    FinancialSummary,
    IdentificationHistoryEntry,
    MergeResult,
    Other,
    Registry,
    StatementFile,
    StoredTransaction,
    Student,
    Suggestion,
    TransactionRecord,
)

__all__ = [
    *_api_all,
    # errors
    "ReconError",
    "ParseFailure",
    "StoreFailure",
    "NotFoundFailure",
    "ValidationFailure",
    # models
    "TransactionRecord",
    "StatementFile",
    "StoredTransaction",
    "Student",
    "Associate",
    "Other",
    "Registry",
    "IdentificationHistoryEntry",
    "Suggestion",
    "CategoryMetadata",
    "FinancialSummary",
    "MergeResult",
    "AutoIdentifyReport",
]
