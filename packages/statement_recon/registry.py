"""Counterparty registry and identification history access.

The registry (students, associates, other counterparties) is read-only to the
matcher. The small write helpers here validate entities with Pydantic before
any store call so a missing name never reaches the Record Store.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError

from .errors import ValidationFailure
from .logging_setup import get_logger
from .models import (
    COUNTERPARTY_ADAPTER,
    Associate,
    IdentificationHistoryEntry,
    Other,
    Registry,
    Student,
)
from .stores import (
    ASSOCIATES_TABLE,
    HISTORY_TABLE,
    OTHERS_TABLE,
    STUDENTS_TABLE,
    RecordStore,
)

_logger = get_logger("statement_recon.registry")

_TABLE_BY_VARIANT: dict[str, str] = {
    "student": STUDENTS_TABLE,
    "associate": ASSOCIATES_TABLE,
    "other": OTHERS_TABLE,
}


def table_for_kind(kind: str) -> str:
    try:
        return _TABLE_BY_VARIANT[kind]
    except KeyError:
        raise ValidationFailure(
            f"Unknown entity kind {kind!r}; expected one of: student, associate, other"
        ) from None


async def load_registry(store: RecordStore) -> Registry:
    """Fetch the three registry variants concurrently."""

    students, associates, others = await asyncio.gather(
        store.select(STUDENTS_TABLE, order_by="name"),
        store.select(ASSOCIATES_TABLE, order_by="name"),
        store.select(OTHERS_TABLE, order_by="name"),
    )
    return Registry(
        students=tuple(Student.model_validate(r) for r in students),
        associates=tuple(Associate.model_validate(r) for r in associates),
        others=tuple(Other.model_validate(r) for r in others),
    )


async def load_history(store: RecordStore) -> list[IdentificationHistoryEntry]:
    """Identification history, newest first."""

    rows = await store.select(HISTORY_TABLE, order_by="-seq")
    return [IdentificationHistoryEntry.model_validate(r) for r in rows]


def parse_entity(data: Mapping[str, Any]) -> Student | Associate | Other:
    """Validate ``data`` (tagged by ``variant``) into a registry entity."""

    try:
        return COUNTERPARTY_ADAPTER.validate_python(dict(data))
    except ValidationError as exc:
        raise ValidationFailure(f"Invalid registry entity: {exc}") from exc


async def save_entity(
    store: RecordStore, entity: Student | Associate | Other | Mapping[str, Any]
) -> Student | Associate | Other:
    """Insert a new registry entity and return it with its store ``id``.

    Mappings are validated first; a missing name (or a missing ``kind`` on an
    ``Other``) raises ``ValidationFailure`` before the store is touched.
    """

    if isinstance(entity, Mapping):
        entity = parse_entity(entity)
    row = entity.model_dump(exclude={"variant"}, exclude_none=True)
    created = await store.insert(table_for_kind(entity.variant), row)
    _logger.info("Registered %s %r", entity.variant, entity.name)
    return COUNTERPARTY_ADAPTER.validate_python({**created, "variant": entity.variant})


async def delete_entity(store: RecordStore, kind: str, entity_id: str) -> None:
    await store.delete(table_for_kind(kind), entity_id)


__all__ = [
    "table_for_kind",
    "load_registry",
    "load_history",
    "parse_entity",
    "save_entity",
    "delete_entity",
]
