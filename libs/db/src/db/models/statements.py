from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
    literal_column,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


def _new_id() -> str:
    return str(uuid.uuid4())


# ---------------------------
# Core: sr_transactions
# ---------------------------


class SrTransaction(Base):
    """One canonical (merged) statement transaction plus its identification."""

    __tablename__ = "sr_transactions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    # SHA-256 of the normalized date/narration/document/amount key. Unique per
    # statement so re-syncing the same merged file is a no-op.
    fingerprint: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    statement_name: Mapped[str] = mapped_column(String, nullable=False, index=True)
    movement_date: Mapped[str] = mapped_column(String(10), nullable=False)
    origin_branch: Mapped[str | None] = mapped_column(String, nullable=True)
    lot: Mapped[str | None] = mapped_column(String, nullable=True)
    narration: Mapped[str | None] = mapped_column(Text, nullable=True)
    document_ref: Mapped[str | None] = mapped_column(String, nullable=True)
    amount: Mapped[str | None] = mapped_column(String, nullable=True)
    direction: Mapped[str] = mapped_column(String(1), nullable=False, default="C")
    tax_id: Mapped[str | None] = mapped_column(String, nullable=True)
    tax_id_kind: Mapped[str | None] = mapped_column(String(4), nullable=True)
    counterparty_name_guess: Mapped[str | None] = mapped_column(Text, nullable=True)
    identified_kind: Mapped[str | None] = mapped_column(String, nullable=True)
    identified_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    identified_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint("direction in ('C','D')", name="ck_sr_tx_direction"),
        CheckConstraint(
            "tax_id_kind IS NULL OR tax_id_kind in ('CPF','CNPJ')",
            name="ck_sr_tx_tax_id_kind",
        ),
        UniqueConstraint("statement_name", "fingerprint", name="uq_sr_tx_statement_fingerprint"),
    )


# ---------------------------
# Learned decisions: sr_identification_history
# ---------------------------


class SrIdentificationHistory(Base):
    __tablename__ = "sr_identification_history"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    # Digits-only identity key; empty string when the record carried none.
    tax_id_digits: Mapped[str] = mapped_column(String, nullable=False, default="", index=True)
    narration: Mapped[str] = mapped_column(Text, nullable=False, default="")
    entity_kind: Mapped[str] = mapped_column(String, nullable=False)
    entity_id: Mapped[str] = mapped_column(String(36), nullable=False)
    entity_name: Mapped[str] = mapped_column(Text, nullable=False)
    # Insertion order; created_at only has second resolution on SQLite.
    seq: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        index=True,
        default=literal_column(
            "(SELECT COALESCE(MAX(seq), 0) + 1 FROM sr_identification_history)", Integer
        ),
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint(
            "entity_kind in ('student','associate','other')",
            name="ck_sr_hist_entity_kind",
        ),
    )


# ---------------------------
# Registry: students / associates / others
# ---------------------------


class SrStudent(Base):
    __tablename__ = "sr_students"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    tax_id: Mapped[str | None] = mapped_column(String, nullable=True)
    email: Mapped[str | None] = mapped_column(String, nullable=True)
    phone: Mapped[str | None] = mapped_column(String, nullable=True)
    class_group: Mapped[str | None] = mapped_column(String, nullable=True)
    profession: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


class SrAssociate(Base):
    __tablename__ = "sr_associates"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str | None] = mapped_column(String, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


class SrOther(Base):
    __tablename__ = "sr_others"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    # Free-form category label of the counterparty (supplier, donor, ...)
    kind: Mapped[str] = mapped_column(String, nullable=False)
    tax_id: Mapped[str | None] = mapped_column(String, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


__all__ = [
    "Base",
    "SrTransaction",
    "SrIdentificationHistory",
    "SrStudent",
    "SrAssociate",
    "SrOther",
]
