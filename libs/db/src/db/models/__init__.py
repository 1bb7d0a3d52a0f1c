"""Shared SQLAlchemy models registry for the workspace database.

Currently includes the statement reconciliation models used by
``statement_recon``.
"""

from .statements import (
    Base,
    SrAssociate,
    SrIdentificationHistory,
    SrOther,
    SrStudent,
    SrTransaction,
)

__all__ = [
    "Base",
    "SrAssociate",
    "SrIdentificationHistory",
    "SrOther",
    "SrStudent",
    "SrTransaction",
]
