"""Deduplicating merge of statement files into one consolidated statement.

Repeated bank exports overlap, and the same transaction can show up with a
different branch/lot or with small formatting differences. Records are
identified by a canonical fingerprint over date, narration, document and
amount (accents, case and whitespace runs ignored). Files are processed
oldest first by the ``DD_MM_YYYY`` date in their name; the first occurrence of
a fingerprint wins.
"""

from __future__ import annotations

import hashlib
import re
from collections.abc import Iterable, Sequence
from datetime import date, datetime

from .logging_setup import get_logger
from .models import MergeResult, StatementFile, TransactionRecord
from .normalizers import normalize_field
from .parser import EMPTY_FIELD, parse_statement

MERGED_NAME = "Extratos.txt"
METADATA_NAME = "metadata.json"
RESERVED_NAMES: frozenset[str] = frozenset({MERGED_NAME, METADATA_NAME})

MERGED_HEADER_TITLE = "Extrato Consolidado"
MERGED_COLUMN_HEADER = (
    "Dt. movimento    Ag. origem        Lote     Histórico"
    "                                    Documento         Valor R$"
)

_FILENAME_DATE_RE = re.compile(r"(\d{2})_(\d{2})_(\d{4})")
_EPOCH = date(1970, 1, 1)

_logger = get_logger("statement_recon.merge")


# ---------------------------------------------------------------------------
# Fingerprint
# ---------------------------------------------------------------------------


def canonical_key(record: TransactionRecord) -> str:
    """Return the normalized ``date|narration|document|amount`` key."""

    fields = (record.movement_date, record.narration, record.document_ref, record.amount)
    return "|".join(normalize_field(f) for f in fields)


def compute_fingerprint(record: TransactionRecord) -> str:
    """SHA-256 hex digest of :func:`canonical_key`."""

    return hashlib.sha256(canonical_key(record).encode("utf-8")).hexdigest()


# ---------------------------------------------------------------------------
# Ordering and merge
# ---------------------------------------------------------------------------


def statement_date_from_name(name: str) -> date | None:
    """Date embedded in a ``DD_MM_YYYY`` statement file name, if valid."""

    m = _FILENAME_DATE_RE.search(name)
    if not m:
        return None
    day, month, year = (int(g) for g in m.groups())
    try:
        return date(year, month, day)
    except ValueError:
        return None


def order_statement_files(files: Iterable[StatementFile]) -> list[StatementFile]:
    """Stable chronological order; undated names sort first (as the epoch)."""

    return sorted(files, key=lambda f: statement_date_from_name(f.name) or _EPOCH)


def dedupe_records(batches: Iterable[Iterable[TransactionRecord]]) -> list[TransactionRecord]:
    seen: set[str] = set()
    out: list[TransactionRecord] = []
    for batch in batches:
        for record in batch:
            key = canonical_key(record)
            if key in seen:
                continue
            seen.add(key)
            out.append(record)
    return out


def _render_field(value: str) -> str:
    # Collapse inner whitespace runs so the two-space column split survives.
    collapsed = " ".join(value.split())
    return collapsed or EMPTY_FIELD


def render_record_line(record: TransactionRecord) -> str:
    parts = [
        record.movement_date,
        record.origin_branch,
        record.lot,
        record.narration,
        record.document_ref,
    ]
    rendered = [_render_field(p) for p in parts]
    rendered.append(f"{record.amount} {record.direction}")
    return "  ".join(rendered)


def render_merged_text(
    records: Sequence[TransactionRecord], *, generated_at: datetime | None = None
) -> str:
    """Render records in the merged layout (re-parseable by the parser)."""

    ts = (generated_at or datetime.now()).strftime("%d/%m/%Y, %H:%M:%S")
    header = f"{MERGED_HEADER_TITLE}\nGerado em: {ts}\n\n{MERGED_COLUMN_HEADER}\n\n"
    return header + "\n".join(render_record_line(r) for r in records)


def merge_statement_texts(
    files: Sequence[StatementFile],
    *,
    merged_name: str = MERGED_NAME,
    generated_at: datetime | None = None,
) -> MergeResult:
    """Merge statement files into a deduplicated record set and merged text.

    ``merged_name`` and the category metadata document are never treated as
    inputs. The result may hold zero records; callers decide whether that is
    an error.
    """

    excluded = {merged_name, METADATA_NAME}
    inputs = order_statement_files(f for f in files if f.name not in excluded)
    records = dedupe_records(parse_statement(f.text) for f in inputs)
    _logger.info(
        "Merged %d statement file(s) into %d unique record(s)", len(inputs), len(records)
    )
    return MergeResult(
        records=tuple(records),
        text=render_merged_text(records, generated_at=generated_at),
        source_names=tuple(f.name for f in inputs),
    )


__all__ = [
    "MERGED_NAME",
    "METADATA_NAME",
    "RESERVED_NAMES",
    "canonical_key",
    "compute_fingerprint",
    "statement_date_from_name",
    "order_statement_files",
    "dedupe_records",
    "render_record_line",
    "render_merged_text",
    "merge_statement_texts",
]
