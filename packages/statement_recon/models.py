"""Data models and type aliases for ``statement_recon``.

Parsed statement data is kept in frozen dataclasses (they are recomputed from
raw text on every view and never mutated). Data that crosses a store boundary
(registry entities, identification history, the category metadata document)
is modeled with Pydantic so rows and JSON are validated on the way in.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator

from .normalizers import Direction, parse_br_amount

type TaxIdKind = Literal["CPF", "CNPJ"]
type EntityKind = Literal["student", "associate", "other"]
type Confidence = Literal["high", "medium", "none"]

ENTITY_KINDS: tuple[str, ...] = ("student", "associate", "other")

# ---------------------------------------------------------------------------
# Parsed statement records
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class TransactionRecord:
    """A single statement transaction as parsed from raw text.

    ``amount`` is the unsigned localized magnitude (``"1.234,56"``); the sign
    lives in ``direction``. Identity hints are derived from ``narration``.
    """

    movement_date: str
    origin_branch: str
    lot: str
    narration: str
    document_ref: str
    amount: str
    direction: Direction = "C"
    tax_id: str | None = None
    tax_id_kind: TaxIdKind | None = None
    counterparty_name_guess: str | None = None

    @property
    def amount_value(self) -> Decimal:
        return parse_br_amount(self.amount)

    @property
    def signed_amount(self) -> Decimal:
        value = abs(self.amount_value)
        return -value if self.direction == "D" else value


@dataclass(frozen=True, slots=True)
class StatementFile:
    """A named raw statement (``DD_MM_YYYY.txt``) and its text."""

    name: str
    text: str


@dataclass(frozen=True, slots=True)
class StoredTransaction:
    """A merged transaction as persisted in the Record Store."""

    id: str
    fingerprint: str
    statement_name: str
    record: TransactionRecord
    identified_kind: str | None = None
    identified_id: str | None = None
    identified_name: str | None = None

    @property
    def is_identified(self) -> bool:
        return bool(self.identified_name)

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> StoredTransaction:
        record = TransactionRecord(
            movement_date=row.get("movement_date") or "",
            origin_branch=row.get("origin_branch") or "",
            lot=row.get("lot") or "",
            narration=row.get("narration") or "",
            document_ref=row.get("document_ref") or "",
            amount=row.get("amount") or "",
            direction="D" if row.get("direction") == "D" else "C",
            tax_id=row.get("tax_id"),
            tax_id_kind=row.get("tax_id_kind"),
            counterparty_name_guess=row.get("counterparty_name_guess"),
        )
        return cls(
            id=str(row["id"]),
            fingerprint=row.get("fingerprint") or "",
            statement_name=row.get("statement_name") or "",
            record=record,
            identified_kind=row.get("identified_kind"),
            identified_id=row.get("identified_id"),
            identified_name=row.get("identified_name"),
        )


def record_to_row(record: TransactionRecord) -> dict[str, Any]:
    """Column mapping of a record for the ``sr_transactions`` table."""

    return {
        "movement_date": record.movement_date,
        "origin_branch": record.origin_branch,
        "lot": record.lot,
        "narration": record.narration,
        "document_ref": record.document_ref,
        "amount": record.amount,
        "direction": record.direction,
        "tax_id": record.tax_id,
        "tax_id_kind": record.tax_id_kind,
        "counterparty_name_guess": record.counterparty_name_guess,
    }


# ---------------------------------------------------------------------------
# Registry (tagged union) and identification history
# ---------------------------------------------------------------------------


class _EntityBase(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    id: str | None = None
    name: str = Field(min_length=1)


class Student(_EntityBase):
    variant: Literal["student"] = "student"
    tax_id: str | None = None
    email: str | None = None
    phone: str | None = None
    class_group: str | None = None
    profession: str | None = None


class Associate(_EntityBase):
    variant: Literal["associate"] = "associate"
    status: str | None = None
    notes: str | None = None


class Other(_EntityBase):
    variant: Literal["other"] = "other"
    # Required free-form category of the counterparty (supplier, donor, ...)
    kind: str = Field(min_length=1)
    tax_id: str | None = None
    notes: str | None = None


type CounterpartyEntity = Annotated[Student | Associate | Other, Field(discriminator="variant")]

COUNTERPARTY_ADAPTER: TypeAdapter[Student | Associate | Other] = TypeAdapter(
    Annotated[Student | Associate | Other, Field(discriminator="variant")]
)


@dataclass(frozen=True, slots=True)
class Registry:
    """Snapshot of the three registry variants."""

    students: tuple[Student, ...] = ()
    associates: tuple[Associate, ...] = ()
    others: tuple[Other, ...] = ()

    def __iter__(self) -> Iterator[Student | Associate | Other]:
        yield from self.students
        yield from self.associates
        yield from self.others

    def find(self, kind: str, entity_id: str) -> Student | Associate | Other | None:
        for entity in self:
            if entity.variant == kind and entity.id == entity_id:
                return entity
        return None


class IdentificationHistoryEntry(BaseModel):
    """One confirmed identification, used as a cache of prior human decisions."""

    model_config = ConfigDict(extra="ignore")

    id: str | None = None
    tax_id_digits: str = ""
    narration: str = ""
    entity_kind: Literal["student", "associate", "other"]
    entity_id: str
    entity_name: str
    seq: int | None = None
    created_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class Suggestion:
    kind: str
    id: str
    name: str
    confidence: Confidence


# ---------------------------------------------------------------------------
# Category metadata and summaries
# ---------------------------------------------------------------------------


class CategoryMetadata(BaseModel):
    """The persisted ``{options, mappings}`` category document.

    ``options`` is kept deduplicated and sorted; ``mappings`` maps a trimmed
    narration (verbatim, not normalized) to its category label.
    """

    model_config = ConfigDict(extra="ignore")

    options: list[str] = Field(default_factory=list)
    mappings: dict[str, str] = Field(default_factory=dict)

    @field_validator("options")
    @classmethod
    def _dedupe_and_sort(cls, v: list[str]) -> list[str]:
        return sorted({s.strip() for s in v if isinstance(s, str) and s.strip()})


@dataclass(slots=True)
class CategorySummary:
    category: str
    total_credits: Decimal = Decimal("0")
    total_debits: Decimal = Decimal("0")

    @property
    def net(self) -> Decimal:
        return self.total_credits - self.total_debits


@dataclass(frozen=True, slots=True)
class FinancialSummary:
    groups: tuple[CategorySummary, ...] = ()
    total_credits: Decimal = Decimal("0")
    total_debits: Decimal = Decimal("0")

    @property
    def net(self) -> Decimal:
        return self.total_credits - self.total_debits


# ---------------------------------------------------------------------------
# Workflow results
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class MergeResult:
    records: tuple[TransactionRecord, ...]
    text: str
    source_names: tuple[str, ...]


@dataclass(slots=True)
class BulkResult:
    """Outcome of a partial-failure tolerant bulk operation."""

    succeeded: list[str] = field(default_factory=list)
    failed: list[tuple[str, str]] = field(default_factory=list)


@dataclass(slots=True)
class AutoIdentifyReport:
    identified: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failures: list[tuple[str, str]] = field(default_factory=list)

    @property
    def identified_count(self) -> int:
        return len(self.identified)


__all__ = [
    "TaxIdKind",
    "EntityKind",
    "Confidence",
    "ENTITY_KINDS",
    "TransactionRecord",
    "StatementFile",
    "StoredTransaction",
    "record_to_row",
    "Student",
    "Associate",
    "Other",
    "CounterpartyEntity",
    "COUNTERPARTY_ADAPTER",
    "Registry",
    "IdentificationHistoryEntry",
    "Suggestion",
    "CategoryMetadata",
    "CategorySummary",
    "FinancialSummary",
    "MergeResult",
    "BulkResult",
    "AutoIdentifyReport",
]
