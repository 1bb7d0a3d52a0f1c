"""Identity hints (CPF/CNPJ and counterparty name) from a narration.

Bank narrations for PIX/TED credits usually start with the payer's tax ID
followed by their name, sometimes prefixed with the transfer timestamp::

    12345678901 JOAO DA SILVA
    05/03 14:22 123.456.789-01 MARIA SOUZA
    12.345.678/0001-90 EMPRESA LTDA

Nothing here validates tax-ID check digits; the kind is inferred from the
digit count and the CNPJ branch marker (``000`` at digits 9-11).
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from .models import TaxIdKind

_UPPER = "A-ZÀÁÂÃÄÅÇÈÉÊËÌÍÎÏÑÒÓÔÕÖÙÚÛÜÝ"
_LOWER = "a-zàáâãäåçèéêëìíîïñòóôõöùúûüý"

_TIMESTAMP_FULL_RE = re.compile(r"^\d{2}/\d{2}/\d{4}\s+\d{2}:\d{2}(:\d{2})?\s+")
_TIMESTAMP_SHORT_RE = re.compile(r"^\d{2}/\d{2}\s+\d{2}:\d{2}\s+")
_BARE_DIGITS_RE = re.compile(r"^(\d{11,14})\s+(.+)$")
_PUNCTUATED_RE = re.compile(rf"^([\d./\-]+)\s+([{_UPPER}].+)$")
_NAME_RE = re.compile(
    rf"^[{_UPPER}][{_UPPER}{_LOWER}]+(\s+[{_UPPER}][{_UPPER}{_LOWER}.]*)+$"
)
_DESCRIPTIVE_RE = re.compile(
    r"^(tar\.|rende|tarifa|pagamento|transferencia|saldo|lancamento)", re.IGNORECASE
)


@dataclass(frozen=True, slots=True)
class IdentityHint:
    tax_id: str | None = None
    tax_id_kind: TaxIdKind | None = None
    name: str | None = None

    @property
    def is_empty(self) -> bool:
        return self.tax_id is None and self.name is None


_NO_HINT = IdentityHint()


def _is_cnpj(digits: str) -> bool:
    return len(digits) == 14 and digits[8:11] == "000"


def strip_timestamp(narration: str) -> str:
    """Drop a leading ``DD/MM/YYYY HH:MM[:SS]`` or ``DD/MM HH:MM`` prefix."""

    s = _TIMESTAMP_FULL_RE.sub("", narration, count=1)
    return _TIMESTAMP_SHORT_RE.sub("", s, count=1)


def extract_identity_hint(narration: str | None) -> IdentityHint:
    """Return the tax ID/name hint carried by ``narration`` (possibly empty).

    Rules, first match wins:

    1. Bare 11-14 digit run then a name: CNPJ when it has 14 digits with the
       ``000`` branch marker, otherwise a CPF made of the last 11 digits.
    2. Punctuated number then an uppercase-led name: CNPJ (punctuation kept)
       on 14 digits with the marker; CPF (punctuation kept) on exactly 11
       digits; CPF from the last 11 digits on any other 14-digit number; any
       other length yields the name alone.
    3. A capitalized multi-word name that does not begin with a descriptive
       banking term (``Tarifa``, ``Rende``, ``Pagamento``, ...).
    """

    if not narration:
        return _NO_HINT
    text = strip_timestamp(narration)

    m = _BARE_DIGITS_RE.match(text)
    if m:
        digits, name = m.group(1), m.group(2).strip()
        if _is_cnpj(digits):
            return IdentityHint(digits, "CNPJ", name)
        return IdentityHint(digits[-11:], "CPF", name)

    m = _PUNCTUATED_RE.match(text)
    if m:
        raw, name = m.group(1), m.group(2).strip()
        digits = "".join(ch for ch in raw if ch.isdigit())
        if _is_cnpj(digits):
            return IdentityHint(raw, "CNPJ", name)
        if len(digits) == 11:
            return IdentityHint(raw, "CPF", name)
        if len(digits) == 14:
            return IdentityHint(digits[-11:], "CPF", name)
        return IdentityHint(name=name)

    trimmed = text.strip()
    if _NAME_RE.match(trimmed) and not _DESCRIPTIVE_RE.match(trimmed):
        return IdentityHint(name=trimmed)
    return _NO_HINT


__all__ = ["IdentityHint", "extract_identity_hint", "strip_timestamp"]
