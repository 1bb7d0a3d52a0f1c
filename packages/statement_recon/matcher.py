"""Counterparty suggestions, manual identification and bulk auto-identify.

Lookup order for a record (first hit wins):

1. the record's identity key equals a learned history entry's digits -> high
2. the key equals the digits of a registered Student, then Other, tax ID -> high
3. the narration matcher accepts a history entry's narration -> medium

The identity key is the digits of the document reference. A tax ID found only
in the narration never yields a high suggestion; such rows fall through to the
narration matcher.

Confirming a match (``identify``) writes the identification onto the stored
row first and only then appends a history entry, so a failed row update never
leaves a history entry behind. ``auto_identify_all`` only ever confirms
``high`` suggestions and processes rows one at a time so each confirmation is
visible to the next row.
"""

from __future__ import annotations

import asyncio
import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Protocol

from .errors import ReconError
from .logging_setup import get_logger
from .merge import MERGED_NAME
from .models import (
    AutoIdentifyReport,
    Confidence,
    IdentificationHistoryEntry,
    Registry,
    StoredTransaction,
    Suggestion,
    TransactionRecord,
)
from .normalizers import digits_only, normalize_field
from .registry import load_history, load_registry, table_for_kind
from .stores import HISTORY_TABLE, TRANSACTIONS_TABLE, Filter, RecordStore

_logger = get_logger("statement_recon.matcher")

_TOKEN_RE = re.compile(r"\w+")


# ---------------------------------------------------------------------------
# Narration matchers
# ---------------------------------------------------------------------------


class NarrationMatcher(Protocol):
    def matches(self, record_narration: str, history_narration: str) -> bool: ...


@dataclass(frozen=True, slots=True)
class PrefixSubstringMatcher:
    """History narration contains the first ``prefix_length`` record characters.

    Case-insensitive. A coarse heuristic: recurring transfers from the same
    payer usually share their leading text.
    """

    prefix_length: int = 20

    def matches(self, record_narration: str, history_narration: str) -> bool:
        prefix = record_narration.lower()[: self.prefix_length]
        if not prefix.strip():
            return False
        return prefix in history_narration.lower()


@dataclass(frozen=True, slots=True)
class TokenSetMatcher:
    """Jaccard similarity of normalized word sets, at least ``min_similarity``."""

    min_similarity: float = 0.6

    @staticmethod
    def _tokens(text: str) -> set[str]:
        return set(_TOKEN_RE.findall(normalize_field(text)))

    def similarity(self, a: str, b: str) -> float:
        ta, tb = self._tokens(a), self._tokens(b)
        if not ta or not tb:
            return 0.0
        return len(ta & tb) / len(ta | tb)

    def matches(self, record_narration: str, history_narration: str) -> bool:
        return self.similarity(record_narration, history_narration) >= self.min_similarity


DEFAULT_NARRATION_MATCHER: NarrationMatcher = PrefixSubstringMatcher()


# ---------------------------------------------------------------------------
# Pure suggestion
# ---------------------------------------------------------------------------


def identity_key(record: TransactionRecord) -> str:
    """Digits of the document reference; empty when it has none."""

    return digits_only(record.document_ref)


def confidence_of(suggestion: Suggestion | None) -> Confidence:
    return suggestion.confidence if suggestion is not None else "none"


def suggest(
    record: TransactionRecord,
    registry: Registry,
    history: Sequence[IdentificationHistoryEntry],
    *,
    narration_matcher: NarrationMatcher | None = None,
) -> Suggestion | None:
    """Propose a counterparty for ``record``; ``None`` when nothing matches.

    Pure: the result depends only on the arguments.
    """

    key = identity_key(record)
    if key:
        for entry in history:
            if entry.tax_id_digits and entry.tax_id_digits == key:
                return Suggestion(entry.entity_kind, entry.entity_id, entry.entity_name, "high")
        for student in registry.students:
            if student.id and digits_only(student.tax_id) == key:
                return Suggestion("student", student.id, student.name, "high")
        for other in registry.others:
            if other.id and digits_only(other.tax_id) == key:
                return Suggestion("other", other.id, other.name, "high")

    matcher = narration_matcher or DEFAULT_NARRATION_MATCHER
    if record.narration:
        for entry in history:
            if entry.narration and matcher.matches(record.narration, entry.narration):
                return Suggestion(entry.entity_kind, entry.entity_id, entry.entity_name, "medium")
    return None


# ---------------------------------------------------------------------------
# Stored rows and identification
# ---------------------------------------------------------------------------


async def load_transactions(
    store: RecordStore, *, statement_name: str = MERGED_NAME
) -> list[StoredTransaction]:
    rows = await store.select(
        TRANSACTIONS_TABLE,
        [Filter("statement_name", statement_name)],
        order_by="movement_date",
    )
    return [StoredTransaction.from_row(r) for r in rows]


async def identify(
    store: RecordStore,
    row: StoredTransaction,
    kind: str,
    entity_id: str,
    name: str,
) -> IdentificationHistoryEntry | None:
    """Confirm ``row`` as belonging to the given counterparty and learn from it.

    The row update happens first; a ``StoreFailure`` there aborts before any
    history write. A history entry is appended when the row carries an
    identity key or a narration; it is returned (``None`` otherwise).
    """

    table_for_kind(kind)
    await store.update(
        TRANSACTIONS_TABLE,
        {"identified_kind": kind, "identified_id": entity_id, "identified_name": name},
        row.id,
    )
    key = identity_key(row.record)
    narration = row.record.narration.strip()
    if not key and not narration:
        return None
    created = await store.insert(
        HISTORY_TABLE,
        {
            "tax_id_digits": key,
            "narration": narration,
            "entity_kind": kind,
            "entity_id": entity_id,
            "entity_name": name,
        },
    )
    _logger.debug("Learned %s -> %s %s", key or narration[:20], kind, name)
    return IdentificationHistoryEntry.model_validate(created)


async def auto_identify_all(
    store: RecordStore,
    *,
    statement_name: str = MERGED_NAME,
    narration_matcher: NarrationMatcher | None = None,
) -> AutoIdentifyReport:
    """Confirm every unidentified row that has a ``high`` suggestion.

    Rows are processed strictly in order. Per-row failures are collected in the
    report; rows without a high-confidence suggestion are never modified.
    """

    rows, registry, history = await asyncio.gather(
        load_transactions(store, statement_name=statement_name),
        load_registry(store),
        load_history(store),
    )
    learned: list[IdentificationHistoryEntry] = list(history)
    report = AutoIdentifyReport()

    for row in rows:
        if row.is_identified:
            continue
        s = suggest(row.record, registry, learned, narration_matcher=narration_matcher)
        if s is None or s.confidence != "high":
            report.skipped.append(row.id)
            continue
        try:
            entry = await identify(store, row, s.kind, s.id, s.name)
        except ReconError as exc:
            _logger.warning("Auto-identify failed for row %s: %s", row.id, exc)
            report.failures.append((row.id, str(exc)))
            continue
        if entry is not None:
            learned.insert(0, entry)
        report.identified.append(row.id)

    _logger.info(
        "Auto-identified %d row(s); %d skipped, %d failed",
        len(report.identified),
        len(report.skipped),
        len(report.failures),
    )
    return report


def suggest_all(
    rows: Iterable[StoredTransaction],
    registry: Registry,
    history: Sequence[IdentificationHistoryEntry],
    *,
    narration_matcher: NarrationMatcher | None = None,
) -> list[tuple[StoredTransaction, Suggestion | None]]:
    return [
        (row, suggest(row.record, registry, history, narration_matcher=narration_matcher))
        for row in rows
    ]


__all__ = [
    "NarrationMatcher",
    "PrefixSubstringMatcher",
    "TokenSetMatcher",
    "DEFAULT_NARRATION_MATCHER",
    "identity_key",
    "confidence_of",
    "suggest",
    "suggest_all",
    "load_transactions",
    "identify",
    "auto_identify_all",
]
