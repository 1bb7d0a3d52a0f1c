"""Statement text parser for the two supported Banco do Brasil text layouts.

Layouts
-------
- Original: the export as downloaded from the bank. The column header holds
  both ``Dt. movimento`` and ``Dt. balancete``; each transaction spans a data
  line (dates, branch, lot, document, amount) followed by a narration line.
- Merged: the layout written by :mod:`statement_recon.merge`. The header lacks
  ``Dt. balancete`` and every transaction is one line::

      01/03/2024  AG01  L1  12345678901 JOAO DA SILVA  DOC1  150,00 C

Fields are separated by runs of two or more whitespace characters. Scanning
stops at the "Lançamentos futuros" section. Balance, separator and total lines
are skipped; in the merged layout a date-led row with all its fields is always
data, whatever its narration says.
"""

from __future__ import annotations

import os
import re
from collections.abc import Iterable, Sequence
from typing import Literal

from .identity import extract_identity_hint
from .logging_setup import get_logger
from .models import TransactionRecord
from .normalizers import Direction, parse_br_amount, split_amount_suffix

type Layout = Literal["original", "merged"]

HEADER_MARKER = "Dt. movimento"
ORIGINAL_MARKER = "Dt. balancete"
EXCLUDED_TERMS: tuple[str, ...] = ("Rende Facil", "Rende Fácil", "BB Rende", "BB Rende Fácil")

# Merged files use this for fields that were empty in the source statement so
# the column split stays aligned on re-parse.
EMPTY_FIELD = "-"

_AMOUNT_INDEX_ENV = "SR_AMOUNT_INDEX"
_FIELD_SPLIT_RE = re.compile(r"\s{2,}")
_DATE_FIELD_RE = re.compile(r"\d{2}/\d{2}/\d{4}")
_DATE_SEARCH_RE = re.compile(r"(\d{2})/(\d{2})/(\d{4})")
_MONEY_RE = re.compile(r"-?\d{1,3}(?:\.\d{3})*,\d{2}(?:\s*[DC])?", re.IGNORECASE)
_FUTURE_MARKERS = ("lançamentos futuros", "lancamentos futuros")

_logger = get_logger("statement_recon.parser")


# ---------------------------------------------------------------------------
# Line classification
# ---------------------------------------------------------------------------


def _is_terminator(line: str) -> bool:
    lower = line.lower()
    return any(m in lower for m in _FUTURE_MARKERS)


def _is_separator(line: str) -> bool:
    return "===" in line or "---" in line


def _is_skippable(line: str) -> bool:
    if not line:
        return True
    lower = line.lower()
    # Catches spaced-out banners such as "S A L D O" as well.
    if "saldo anterior" in lower or "saldo" in "".join(lower.split()):
        return True
    return _is_separator(line) or "total" in lower


def find_header(lines: Sequence[str]) -> tuple[int, Layout] | None:
    """Return the header line index and the layout it announces."""

    for idx, line in enumerate(lines):
        if HEADER_MARKER in line:
            layout: Layout = "original" if ORIGINAL_MARKER in line else "merged"
            return idx, layout
    return None


def detect_layout(text: str) -> Layout | None:
    found = find_header(text.split("\n"))
    return found[1] if found else None


def _default_amount_index() -> int:
    raw = os.getenv(_AMOUNT_INDEX_ENV)
    if raw is None or not raw.strip():
        return -1
    try:
        return int(raw.strip())
    except ValueError:
        _logger.warning("Ignoring invalid %s=%r; using the last amount", _AMOUNT_INDEX_ENV, raw)
        return -1


# ---------------------------------------------------------------------------
# Record construction
# ---------------------------------------------------------------------------


def _field(parts: Sequence[str], idx: int) -> str:
    if idx < len(parts):
        return parts[idx].strip()
    return ""


def _merged_field(parts: Sequence[str], idx: int) -> str:
    value = _field(parts, idx)
    return "" if value == EMPTY_FIELD else value


def _build_record(
    *,
    movement_date: str,
    origin_branch: str,
    lot: str,
    narration: str,
    document_ref: str,
    amount: str,
    direction: Direction,
) -> TransactionRecord | None:
    try:
        parse_br_amount(amount)
    except ValueError:
        _logger.warning(
            "Skipping %s transaction with unparseable amount %r", movement_date, amount
        )
        return None
    hint = extract_identity_hint(narration)
    return TransactionRecord(
        movement_date=movement_date,
        origin_branch=origin_branch,
        lot=lot,
        narration=narration,
        document_ref=document_ref,
        amount=amount,
        direction=direction,
        tax_id=hint.tax_id,
        tax_id_kind=hint.tax_id_kind,
        counterparty_name_guess=hint.name,
    )


def _parse_merged_line(parts: Sequence[str]) -> TransactionRecord | None:
    raw_amount = _field(parts, 5)
    magnitude, direction = split_amount_suffix(raw_amount)
    if _field(parts, 6).upper() == "D":
        direction = "D"
    return _build_record(
        movement_date=_field(parts, 0),
        origin_branch=_merged_field(parts, 1),
        lot=_merged_field(parts, 2),
        narration=_merged_field(parts, 3),
        document_ref=_merged_field(parts, 4),
        amount=magnitude,
        direction=direction,
    )


def _pick_amount(line: str, parts: Sequence[str], amount_index: int) -> tuple[str, Direction]:
    matches = _MONEY_RE.findall(line)
    if matches:
        try:
            chosen = matches[amount_index]
        except IndexError:
            chosen = matches[-1]
        return split_amount_suffix(chosen)
    return split_amount_suffix(_field(parts, 5))


def _parse_original_line(
    line: str, parts: Sequence[str], narration: str, amount_index: int
) -> TransactionRecord | None:
    amount, direction = _pick_amount(line, parts, amount_index)
    return _build_record(
        movement_date=_field(parts, 0),
        origin_branch=_field(parts, 2),
        lot=_field(parts, 3),
        narration=narration,
        document_ref=_field(parts, 4),
        amount=amount,
        direction=direction,
    )


def _next_narration(lines: Sequence[str], start: int) -> tuple[str, int]:
    """Return the narration following a data line and the index it occupies.

    When no narration is found before the terminator (or end of text) the
    narration is empty and the returned index is the last line inspected.
    """

    idx = start
    while idx < len(lines):
        candidate = lines[idx].strip()
        if _is_terminator(candidate):
            return "", idx - 1
        if candidate and not _is_separator(candidate):
            return candidate, idx
        idx += 1
    return "", idx


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def parse_statement(text: str, *, amount_index: int | None = None) -> list[TransactionRecord]:
    """Parse statement ``text`` into transaction records.

    Returns an empty list when the text has no ``Dt. movimento`` header.
    ``amount_index`` selects which currency-looking value on an original-layout
    data line is the transaction amount (Python indexing; default: the last
    one, or ``SR_AMOUNT_INDEX`` when set).
    """

    lines = text.split("\n")
    found = find_header(lines)
    if found is None:
        _logger.debug("No '%s' header found; nothing to parse", HEADER_MARKER)
        return []
    header_idx, layout = found
    if amount_index is None:
        amount_index = _default_amount_index()

    records: list[TransactionRecord] = []
    i = header_idx + 1
    while i < len(lines):
        line = lines[i].strip()
        if _is_terminator(line):
            break
        parts = _FIELD_SPLIT_RE.split(line)
        is_data = len(parts) >= 4 and _DATE_FIELD_RE.fullmatch(parts[0]) is not None
        # Merged rows carry their narration inline, so words such as "saldo" or
        # "total" in it must not drop the row.
        if layout == "merged" and is_data and not _is_separator(line):
            record = _parse_merged_line(parts)
        elif _is_skippable(line) or not is_data:
            i += 1
            continue
        else:
            narration, narration_idx = _next_narration(lines, i + 1)
            record = _parse_original_line(line, parts, narration, amount_index)
            i = max(i, narration_idx)
        if record is not None:
            records.append(record)
        i += 1

    _logger.debug("Parsed %d records (%s layout)", len(records), layout)
    return records


def extract_statement_date(text: str) -> str | None:
    """Return the statement date as ``DD_MM_YYYY`` (used for upload names).

    The date is the first ``DD/MM/YYYY`` after the ``Dt. movimento`` header
    (the opening balance line in original exports); ``None`` when there is no
    header or no date.
    """

    lines = text.split("\n")
    found = find_header(lines)
    if found is None:
        return None
    for line in lines[found[0] + 1 :]:
        stripped = line.strip()
        if not stripped:
            continue
        m = _DATE_SEARCH_RE.search(stripped)
        if m:
            day, month, year = m.groups()
            return f"{day}_{month}_{year}"
    return None


def strip_excluded_lines(text: str, terms: Iterable[str] = EXCLUDED_TERMS) -> str:
    """Drop lines that mention any of ``terms`` (automatic investment sweeps)."""

    terms = tuple(terms)
    return "\n".join(line for line in text.split("\n") if not any(t in line for t in terms))


__all__ = [
    "Layout",
    "HEADER_MARKER",
    "ORIGINAL_MARKER",
    "EXCLUDED_TERMS",
    "EMPTY_FIELD",
    "find_header",
    "detect_layout",
    "parse_statement",
    "extract_statement_date",
    "strip_excluded_lines",
]
