"""Statement workflows over the Blob Store (and optionally the Record Store).

- save: filter investment-sweep lines, derive ``DD_MM_YYYY.txt`` from the
  statement's first movement date, upload (overwriting).
- list/view/delete raw statements.
- merge: download every statement concurrently, deduplicate, upload
  ``Extratos.txt`` and, when a Record Store is given, insert rows for
  fingerprints it does not hold yet.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable, Sequence
from datetime import datetime

from .errors import ParseFailure, ReconError, ValidationFailure
from .logging_setup import get_logger
from .merge import (
    MERGED_NAME,
    METADATA_NAME,
    RESERVED_NAMES,
    compute_fingerprint,
    merge_statement_texts,
    statement_date_from_name,
)
from .models import BulkResult, MergeResult, StatementFile, TransactionRecord, record_to_row
from .parser import extract_statement_date, parse_statement, strip_excluded_lines
from .stores import TRANSACTIONS_TABLE, BlobInfo, BlobStore, Filter, RecordStore

_logger = get_logger("statement_recon.statements")


def _decode(data: bytes) -> str:
    # Exports come as UTF-8; older ones as Latin-1.
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError:
        return data.decode("latin-1")


def statement_name_for(text: str) -> str:
    """``DD_MM_YYYY.txt`` for ``text``; ``ParseFailure`` when no date is found."""

    stamp = extract_statement_date(text)
    if stamp is None:
        raise ParseFailure("Could not find the statement date after the 'Dt. movimento' header")
    return f"{stamp}.txt"


async def save_statement(store: BlobStore, text: str) -> str:
    """Store one raw statement and return the blob name it was saved under."""

    if not text.strip():
        raise ParseFailure("Statement text is empty")
    filtered = strip_excluded_lines(text)
    name = statement_name_for(filtered)
    await store.upload(name, filtered, upsert=True)
    _logger.info("Saved statement %s", name)
    return name


async def save_statements(store: BlobStore, texts: Iterable[tuple[str, str]]) -> BulkResult:
    """Save several ``(label, text)`` statements; failures are collected per item."""

    result = BulkResult()
    for label, text in texts:
        try:
            name = await save_statement(store, text)
        except ReconError as exc:
            _logger.warning("Could not save %s: %s", label, exc)
            result.failed.append((label, str(exc)))
            continue
        result.succeeded.append(name)
    return result


async def list_statements(store: BlobStore, *, include_merged: bool = True) -> list[BlobInfo]:
    """Statement blobs, newest statement date first (merged file on top)."""

    infos = [b for b in await store.list() if b.name != METADATA_NAME]
    if not include_merged:
        infos = [b for b in infos if b.name != MERGED_NAME]

    def _key(info: BlobInfo) -> tuple[int, int]:
        if info.name == MERGED_NAME:
            return (0, 0)
        d = statement_date_from_name(info.name)
        return (1, -(d.toordinal() if d else 0))

    return sorted(infos, key=_key)


async def read_statement(store: BlobStore, name: str) -> str:
    return _decode(await store.download(name))


async def view_statement(store: BlobStore, name: str) -> list[TransactionRecord]:
    """Parse a stored statement (raw or merged) into records."""

    return parse_statement(await read_statement(store, name))


async def delete_statements(store: BlobStore, names: Sequence[str]) -> None:
    reserved = sorted(set(names) & {METADATA_NAME})
    if reserved:
        raise ValidationFailure(f"Refusing to delete reserved blob(s): {', '.join(reserved)}")
    await store.remove(list(names))
    _logger.info("Deleted %d statement(s)", len(names))


async def load_statement_files(store: BlobStore) -> list[StatementFile]:
    """Download every raw statement concurrently."""

    names = [b.name for b in await store.list() if b.name not in RESERVED_NAMES]
    blobs = await asyncio.gather(*(store.download(n) for n in names))
    return [StatementFile(n, _decode(b)) for n, b in zip(names, blobs, strict=True)]


async def sync_records(
    record_store: RecordStore,
    records: Sequence[TransactionRecord],
    *,
    statement_name: str = MERGED_NAME,
) -> int:
    """Insert rows for records whose fingerprint is not stored yet; return count."""

    existing = await record_store.select(
        TRANSACTIONS_TABLE, [Filter("statement_name", statement_name)]
    )
    known = {r["fingerprint"] for r in existing}
    inserted = 0
    for record in records:
        fp = compute_fingerprint(record)
        if fp in known:
            continue
        await record_store.insert(
            TRANSACTIONS_TABLE,
            {**record_to_row(record), "fingerprint": fp, "statement_name": statement_name},
        )
        known.add(fp)
        inserted += 1
    _logger.info("Synced %d new record(s) into %s", inserted, TRANSACTIONS_TABLE)
    return inserted


async def merge_statements(
    store: BlobStore,
    *,
    record_store: RecordStore | None = None,
    generated_at: datetime | None = None,
) -> MergeResult:
    """Merge all stored statements into ``Extratos.txt``.

    Raises ``ParseFailure`` when the statements yield no records (nothing is
    uploaded). Store errors propagate as ``StoreFailure`` before any upload.
    """

    files = await load_statement_files(store)
    result = merge_statement_texts(files, generated_at=generated_at)
    if not result.records:
        raise ParseFailure("No records found in the stored statements")
    await store.upload(MERGED_NAME, result.text, upsert=True)
    if record_store is not None:
        await sync_records(record_store, result.records)
    return result


__all__ = [
    "statement_name_for",
    "save_statement",
    "save_statements",
    "list_statements",
    "read_statement",
    "view_statement",
    "delete_statements",
    "load_statement_files",
    "sync_records",
    "merge_statements",
]
