"""Category labels, the narration -> label metadata document, and summaries.

The metadata document (``metadata.json`` in the Blob Store) has two keys::

    {"options": ["Doações", "Mensalidade"], "mappings": {"<narration>": "Mensalidade"}}

Mapping keys are the trimmed narration text verbatim (not the normalized
fingerprint form). Concurrent editors are not coordinated: the last write wins.

Exports
-------
- ``normalize_label`` / ``validate_label`` / ``require_label``: label rules
  shared with the terminal selector.
- ``assign_category`` / ``delete_category``: pure metadata transitions.
- ``CategoryMapper``: optimistic, store-backed holder of the metadata.
- ``summarize``: per-category credit/debit rollup.
"""

from __future__ import annotations

import json
import re
from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal
from typing import Literal

from pydantic import ValidationError

from .errors import NotFoundFailure, StoreFailure, ValidationFailure
from .logging_setup import get_logger
from .merge import METADATA_NAME
from .models import CategoryMetadata, CategorySummary, FinancialSummary, TransactionRecord
from .stores import BlobStore

type DeletePolicy = Literal["orphan", "reassign", "block"]

UNCATEGORIZED = "Uncategorized"
DELETE_POLICIES: tuple[str, ...] = ("orphan", "reassign", "block")

_ALLOWED_RE = re.compile(r"^[\w &\-/.,()']+$")

_logger = get_logger("statement_recon.categories")


# ---------------------------
# Label normalization/validation
# ---------------------------


def normalize_label(label: str) -> str:
    """Trim and collapse internal whitespace; case is preserved."""

    return " ".join(label.strip().split())


@dataclass(frozen=True, slots=True)
class LabelValidation:
    ok: bool
    reason: str | None = None


def validate_label(label: str, *, min_len: int = 1, max_len: int = 64) -> LabelValidation:
    """Rules: 1..64 characters after normalization; letters (accented too),
    digits, spaces and ``& - / . , ( ) '``."""

    n = normalize_label(label)
    if len(n) < min_len:
        return LabelValidation(False, "Category cannot be empty")
    if len(n) > max_len:
        return LabelValidation(False, f"Category must be at most {max_len} characters")
    if not _ALLOWED_RE.match(n):
        return LabelValidation(False, "Only letters, numbers, spaces, and & - / . , ( ) ' are allowed")
    return LabelValidation(True, None)


def require_label(label: str) -> str:
    """Return the normalized label or raise ``ValidationFailure``."""

    v = validate_label(label)
    if not v.ok:
        raise ValidationFailure(v.reason or "Invalid category")
    return normalize_label(label)


# ---------------------------
# Pure transitions
# ---------------------------


def mapping_key(narration: str) -> str:
    return narration.strip()


def category_for(metadata: CategoryMetadata, narration: str) -> str:
    return metadata.mappings.get(mapping_key(narration)) or UNCATEGORIZED


def assign_category(metadata: CategoryMetadata, narration: str, label: str) -> CategoryMetadata:
    """Return new metadata with ``narration`` mapped to ``label``.

    The label joins ``options`` (deduplicated, sorted); any previous mapping
    for the same narration is replaced.
    """

    clean = require_label(label)
    key = mapping_key(narration)
    if not key:
        raise ValidationFailure("Narration cannot be empty")
    return CategoryMetadata(
        options=[*metadata.options, clean],
        mappings={**metadata.mappings, key: clean},
    )


def delete_category(
    metadata: CategoryMetadata, label: str, *, policy: DeletePolicy = "orphan"
) -> CategoryMetadata:
    """Return new metadata without ``label`` in ``options``.

    Policies for narrations still mapped to the label:

    - ``orphan`` keeps the stale mappings (they still resolve to the label)
    - ``reassign`` drops them so they fall back to ``Uncategorized``
    - ``block`` refuses with ``ValidationFailure`` while any mapping uses it
    """

    if policy not in DELETE_POLICIES:
        raise ValidationFailure(f"Unknown delete policy: {policy!r}")
    in_use = [k for k, v in metadata.mappings.items() if v == label]
    if policy == "block" and in_use:
        raise ValidationFailure(
            f"Category {label!r} is still assigned to {len(in_use)} narration(s)"
        )
    mappings = dict(metadata.mappings)
    if policy == "reassign":
        for k in in_use:
            del mappings[k]
    return CategoryMetadata(
        options=[o for o in metadata.options if o != label],
        mappings=mappings,
    )


# ---------------------------
# Store-backed mapper
# ---------------------------


class CategoryMapper:
    """Holds the category metadata and persists every change.

    Updates are optimistic: local state changes first and the document is then
    uploaded. A failed upload is logged and re-raised; the local state is kept
    so the caller can retry with :meth:`save`.
    """

    def __init__(self, blob_store: BlobStore, *, name: str = METADATA_NAME) -> None:
        self._store = blob_store
        self._name = name
        self.metadata = CategoryMetadata()

    async def load(self) -> CategoryMetadata:
        """Load the document; a missing document is the empty first-run state."""

        try:
            raw = await self._store.download(self._name)
        except NotFoundFailure:
            _logger.info("No %s yet; starting with empty categories", self._name)
            self.metadata = CategoryMetadata()
            return self.metadata
        try:
            self.metadata = CategoryMetadata.model_validate_json(raw)
        except ValidationError as exc:
            raise StoreFailure(f"Corrupt category metadata in {self._name}: {exc}") from exc
        return self.metadata

    async def save(self) -> None:
        payload = json.dumps(self.metadata.model_dump(), ensure_ascii=False, indent=2)
        try:
            await self._store.upload(self._name, payload, upsert=True)
        except StoreFailure:
            _logger.error("Failed to persist %s; keeping local changes", self._name)
            raise

    async def assign(self, narration: str, label: str) -> CategoryMetadata:
        self.metadata = assign_category(self.metadata, narration, label)
        await self.save()
        return self.metadata

    async def delete(self, label: str, *, policy: DeletePolicy = "orphan") -> CategoryMetadata:
        self.metadata = delete_category(self.metadata, label, policy=policy)
        await self.save()
        return self.metadata

    def category_for(self, narration: str) -> str:
        return category_for(self.metadata, narration)


# ---------------------------
# Summary rollup
# ---------------------------


def summarize(records: Iterable[TransactionRecord], metadata: CategoryMetadata) -> FinancialSummary:
    """Group records by mapped category and total credits and debits.

    Unmapped narrations land in ``Uncategorized``; groups are sorted by label.
    """

    groups: dict[str, CategorySummary] = {}
    total_credits = Decimal("0")
    total_debits = Decimal("0")
    for record in records:
        label = category_for(metadata, record.narration)
        group = groups.setdefault(label, CategorySummary(category=label))
        value = abs(record.amount_value)
        if record.direction == "D":
            group.total_debits += value
            total_debits += value
        else:
            group.total_credits += value
            total_credits += value
    return FinancialSummary(
        groups=tuple(groups[k] for k in sorted(groups)),
        total_credits=total_credits,
        total_debits=total_debits,
    )


__all__ = [
    "DeletePolicy",
    "UNCATEGORIZED",
    "DELETE_POLICIES",
    "normalize_label",
    "LabelValidation",
    "validate_label",
    "require_label",
    "mapping_key",
    "category_for",
    "assign_category",
    "delete_category",
    "CategoryMapper",
    "summarize",
]
