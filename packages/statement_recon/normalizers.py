"""Text, amount and date normalization for Brazilian bank statements.

Amounts use the localized format found in the exports: ``.`` as the thousands
separator and ``,`` as the decimal separator (``1.234,56``). A debit is marked
either by a trailing ``D`` (case-insensitive) or a leading minus sign; a
trailing ``C`` marks a credit explicitly. Records keep the unsigned magnitude
string and carry the sign in their ``direction``.
"""

from __future__ import annotations

import re
import unicodedata
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Literal

type Direction = Literal["C", "D"]

_BR_AMOUNT_RE = re.compile(r"^(?:\d{1,3}(?:\.\d{3})+|\d+)(?:,\d+)?$")
_DIRECTION_SUFFIX_RE = re.compile(r"\s*([DC])$", re.IGNORECASE)
_BR_DATE_RE = re.compile(r"^(\d{2})/(\d{2})/(\d{4})$")
_WS_RE = re.compile(r"\s+")

# ---------------------------------------------------------------------------
# Text
# ---------------------------------------------------------------------------


def normalize_field(value: str | None) -> str:
    """Return the accent/spacing/case-insensitive form used for fingerprints.

    Decomposes to NFD, drops combining marks, collapses whitespace runs to a
    single space, lower-cases and trims.
    """

    if not value:
        return ""
    decomposed = unicodedata.normalize("NFD", value)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return _WS_RE.sub(" ", stripped).strip().lower()


def digits_only(value: str | None) -> str:
    if not value:
        return ""
    return "".join(ch for ch in value if ch.isdigit())


# ---------------------------------------------------------------------------
# Amounts
# ---------------------------------------------------------------------------


def split_amount_suffix(raw: str) -> tuple[str, Direction]:
    """Split ``raw`` into its unsigned magnitude text and direction.

    ``"50,00 D"`` -> ``("50,00", "D")``; ``"-1.234,56"`` -> ``("1.234,56", "D")``;
    ``"150,00 C"`` and ``"150,00"`` -> ``("150,00", "C")``.
    """

    s = raw.strip()
    direction: Direction = "C"
    m = _DIRECTION_SUFFIX_RE.search(s)
    if m:
        if m.group(1).upper() == "D":
            direction = "D"
        s = s[: m.start()].strip()
    if s.startswith("-"):
        direction = "D"
        s = s[1:].strip()
    elif s.startswith("+"):
        s = s[1:].strip()
    return s, direction


def parse_br_amount(raw: str | None) -> Decimal:
    """Parse a localized amount string (``"1.234,56"``) into a ``Decimal``.

    A leading minus yields a negative value. Raises ``ValueError`` when the
    text is empty or not a localized number.
    """

    if raw is None:
        raise ValueError("amount is required")
    s = raw.strip()
    if not s:
        raise ValueError("amount is empty")
    negative = False
    if s.startswith("-"):
        negative = True
        s = s[1:].strip()
    if s.upper().startswith("R$"):
        s = s[2:].strip()
    if not _BR_AMOUNT_RE.match(s):
        raise ValueError(f"invalid amount: {raw!r}")
    try:
        d = Decimal(s.replace(".", "").replace(",", "."))
    except InvalidOperation as exc:  # pragma: no cover - regex guards this
        raise ValueError(f"invalid amount: {raw!r}") from exc
    return -d if negative else d


def parse_amount_with_direction(raw: str) -> tuple[Decimal, Direction]:
    """Parse ``raw`` including its debit/credit marker.

    Returns the unsigned magnitude and the direction, e.g. ``"50,00 D"`` ->
    ``(Decimal("50.00"), "D")``.
    """

    magnitude, direction = split_amount_suffix(raw)
    return parse_br_amount(magnitude), direction


def format_br_amount(value: Decimal) -> str:
    """Format ``value`` as a localized two-decimal string (``1.234,56``)."""

    q = value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    s = f"{abs(q):,.2f}".replace(",", "_").replace(".", ",").replace("_", ".")
    return f"-{s}" if q < 0 else s


# ---------------------------------------------------------------------------
# Dates
# ---------------------------------------------------------------------------


def parse_br_date(value: str | None) -> date | None:
    """Parse ``DD/MM/YYYY``; return ``None`` when absent or not a real date."""

    if not value:
        return None
    m = _BR_DATE_RE.match(value.strip())
    if not m:
        return None
    try:
        return datetime.strptime(m.group(0), "%d/%m/%Y").date()
    except ValueError:
        return None


def is_br_date(value: str | None) -> bool:
    return bool(value) and _BR_DATE_RE.match(value.strip()) is not None


__all__ = [
    "Direction",
    "normalize_field",
    "digits_only",
    "split_amount_suffix",
    "parse_br_amount",
    "parse_amount_with_direction",
    "format_br_amount",
    "parse_br_date",
    "is_br_date",
]
