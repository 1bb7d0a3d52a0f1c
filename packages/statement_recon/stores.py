"""Blob Store and Record Store contracts plus the shipped adapters.

The engine only talks to storage through two small async contracts:

- ``BlobStore``: named files (raw statements, the merged ``Extratos.txt`` and
  the ``metadata.json`` category document).
- ``RecordStore``: rows in the ``sr_*`` tables, addressed by table name with
  equality / prefix / case-insensitive substring filters.

``LocalBlobStore`` keeps blobs as files under a directory and
``SqlRecordStore`` maps tables onto the ORM models in ``db.models``. Both run
their blocking I/O in a worker thread via ``asyncio.to_thread``.
"""

from __future__ import annotations

import asyncio
import os
import re
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Literal, Protocol, TypeVar

from db.client import get_engine, session_scope
from db.models import (
    Base,
    SrAssociate,
    SrIdentificationHistory,
    SrOther,
    SrStudent,
    SrTransaction,
)
from sqlalchemy import delete as sa_delete
from sqlalchemy import inspect as sa_inspect
from sqlalchemy import select as sa_select
from sqlalchemy import update as sa_update
from sqlalchemy.exc import SQLAlchemyError

from .errors import NotFoundFailure, StoreFailure, ValidationFailure
from .logging_setup import get_logger

T = TypeVar("T")

type FilterOp = Literal["eq", "prefix", "contains"]

TRANSACTIONS_TABLE = "sr_transactions"
HISTORY_TABLE = "sr_identification_history"
STUDENTS_TABLE = "sr_students"
ASSOCIATES_TABLE = "sr_associates"
OTHERS_TABLE = "sr_others"

_TABLES: dict[str, type[Base]] = {
    TRANSACTIONS_TABLE: SrTransaction,
    HISTORY_TABLE: SrIdentificationHistory,
    STUDENTS_TABLE: SrStudent,
    ASSOCIATES_TABLE: SrAssociate,
    OTHERS_TABLE: SrOther,
}

_BLOB_NAME_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._\- ]{0,254}$")
_BLOB_DIR_ENV = "SR_BLOB_DIR"

_logger = get_logger("statement_recon.stores")


# ---------------------------------------------------------------------------
# Contracts
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class BlobInfo:
    name: str
    created_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class Filter:
    """Row filter; ``contains`` matches case-insensitively."""

    column: str
    value: Any
    op: FilterOp = "eq"


class BlobStore(Protocol):
    async def list(self) -> list[BlobInfo]: ...

    async def upload(self, name: str, data: bytes | str, *, upsert: bool = False) -> None: ...

    async def download(self, name: str) -> bytes: ...

    async def remove(self, names: Sequence[str]) -> None: ...


class RecordStore(Protocol):
    async def select(
        self,
        table: str,
        filters: Sequence[Filter] = (),
        order_by: str | None = None,
    ) -> list[dict[str, Any]]: ...

    async def insert(self, table: str, row: Mapping[str, Any]) -> dict[str, Any]: ...

    async def update(self, table: str, values: Mapping[str, Any], match_id: str) -> None: ...

    async def delete(self, table: str, match_id: str) -> None: ...


# ---------------------------------------------------------------------------
# Filesystem blob store
# ---------------------------------------------------------------------------


def default_blob_root() -> Path:
    """Blob root: ``SR_BLOB_DIR`` when set, else ``./.statements``."""

    root = os.getenv(_BLOB_DIR_ENV)
    if root and root.strip():
        return Path(root).expanduser().resolve()
    return (Path.cwd() / ".statements").resolve()


def validate_blob_name(name: str) -> str:
    """Reject names that could escape the store root or hide as dotfiles."""

    if not isinstance(name, str) or not _BLOB_NAME_RE.fullmatch(name) or ".." in name:
        raise ValidationFailure(f"Invalid blob name: {name!r}")
    return name


class LocalBlobStore:
    """Blob store backed by a flat directory.

    Writes go to a ``.tmp`` sibling first and are moved into place with
    ``os.replace`` so readers never observe a partial file.
    """

    def __init__(self, root: str | Path | None = None) -> None:
        self.root = Path(root).expanduser().resolve() if root else default_blob_root()

    def __repr__(self) -> str:  # pragma: no cover - trivial repr
        return f"LocalBlobStore(root={str(self.root)!r})"

    def _path(self, name: str) -> Path:
        return self.root / validate_blob_name(name)

    # -- sync implementations -------------------------------------------------

    def _list_sync(self) -> list[BlobInfo]:
        if not self.root.exists():
            return []
        out: list[BlobInfo] = []
        for p in sorted(self.root.iterdir()):
            if not p.is_file() or p.name.endswith(".tmp") or p.name.startswith("."):
                continue
            mtime = datetime.fromtimestamp(p.stat().st_mtime, tz=UTC)
            out.append(BlobInfo(name=p.name, created_at=mtime))
        return out

    def _upload_sync(self, name: str, data: bytes, upsert: bool) -> None:
        path = self._path(name)
        if path.exists() and not upsert:
            raise StoreFailure(f"Blob already exists: {name}")
        self.root.mkdir(parents=True, exist_ok=True)
        tmp = path.with_name(path.name + ".tmp")
        tmp.write_bytes(data)
        os.replace(tmp, path)

    def _download_sync(self, name: str) -> bytes:
        path = self._path(name)
        try:
            return path.read_bytes()
        except FileNotFoundError as exc:
            raise NotFoundFailure(f"Blob not found: {name}") from exc

    def _remove_sync(self, names: Sequence[str]) -> None:
        paths = [self._path(n) for n in names]
        for p in paths:
            p.unlink(missing_ok=True)

    # -- async contract ---------------------------------------------------------

    async def _run(self, fn: Callable[[], T]) -> T:
        try:
            return await asyncio.to_thread(fn)
        except OSError as exc:
            raise StoreFailure(f"Blob store I/O error under {self.root}: {exc}") from exc

    async def list(self) -> list[BlobInfo]:
        return await self._run(self._list_sync)

    async def upload(self, name: str, data: bytes | str, *, upsert: bool = False) -> None:
        payload = data.encode("utf-8") if isinstance(data, str) else data
        await self._run(lambda: self._upload_sync(name, payload, upsert))
        _logger.debug("Uploaded blob %s (%d bytes)", name, len(payload))

    async def download(self, name: str) -> bytes:
        return await self._run(lambda: self._download_sync(name))

    async def remove(self, names: Sequence[str]) -> None:
        await self._run(lambda: self._remove_sync(list(names)))
        _logger.debug("Removed blobs: %s", ", ".join(names))


# ---------------------------------------------------------------------------
# SQLAlchemy record store
# ---------------------------------------------------------------------------


def _model_for(table: str) -> type[Base]:
    try:
        return _TABLES[table]
    except KeyError:
        raise StoreFailure(f"Unknown table: {table}") from None


def _columns(model: type[Base]) -> list[str]:
    return [attr.key for attr in sa_inspect(model).column_attrs]


def _to_dict(obj: Base) -> dict[str, Any]:
    return {key: getattr(obj, key) for key in _columns(type(obj))}


def _column(model: type[Base], name: str) -> Any:
    if name not in _columns(model):
        raise StoreFailure(f"Unknown column {name!r} on {model.__tablename__}")
    return getattr(model, name)


def _clause(model: type[Base], f: Filter) -> Any:
    col = _column(model, f.column)
    if f.op == "eq":
        return col.is_(None) if f.value is None else col == f.value
    if f.op == "prefix":
        return col.startswith(str(f.value), autoescape=True)
    if f.op == "contains":
        return col.icontains(str(f.value), autoescape=True)
    raise StoreFailure(f"Unsupported filter op: {f.op!r}")


class SqlRecordStore:
    """Record store over the ``sr_*`` ORM tables.

    ``database_url`` defaults to ``DATABASE_URL``. Backend errors surface as
    ``StoreFailure``; updates/deletes that match no row raise
    ``NotFoundFailure``.
    """

    def __init__(self, database_url: str | None = None) -> None:
        self.database_url = database_url

    def __repr__(self) -> str:  # pragma: no cover - trivial repr
        return f"SqlRecordStore(database_url={self.database_url!r})"

    def _require_url(self) -> None:
        if not (self.database_url or os.getenv("DATABASE_URL")):
            raise StoreFailure("DATABASE_URL is not set; pass --database-url or configure .env")

    def create_schema(self) -> None:
        """Create any missing ``sr_*`` tables on the configured database."""

        self._require_url()
        Base.metadata.create_all(get_engine(database_url=self.database_url))

    async def _run(self, fn: Callable[[], T]) -> T:
        self._require_url()
        try:
            return await asyncio.to_thread(fn)
        except SQLAlchemyError as exc:
            raise StoreFailure(f"Record store error: {exc}") from exc

    def _select_sync(
        self, table: str, filters: Sequence[Filter], order_by: str | None
    ) -> list[dict[str, Any]]:
        model = _model_for(table)
        stmt = sa_select(model)
        for f in filters:
            stmt = stmt.where(_clause(model, f))
        if order_by:
            desc = order_by.startswith("-")
            col = _column(model, order_by.lstrip("-"))
            stmt = stmt.order_by(col.desc() if desc else col.asc())
        with session_scope(database_url=self.database_url) as s:
            return [_to_dict(obj) for obj in s.scalars(stmt).all()]

    def _insert_sync(self, table: str, row: Mapping[str, Any]) -> dict[str, Any]:
        model = _model_for(table)
        known = set(_columns(model))
        unknown = sorted(set(row) - known)
        if unknown:
            raise StoreFailure(f"Unknown column(s) for {table}: {', '.join(unknown)}")
        values = {k: v for k, v in row.items() if not (k == "id" and v is None)}
        with session_scope(database_url=self.database_url) as s:
            obj = model(**values)
            s.add(obj)
            s.flush()
            s.refresh(obj)
            return _to_dict(obj)

    def _update_sync(self, table: str, values: Mapping[str, Any], match_id: str) -> None:
        model = _model_for(table)
        for key in values:
            _column(model, key)
        with session_scope(database_url=self.database_url) as s:
            result = s.execute(
                sa_update(model).where(model.id == match_id).values(**dict(values))
            )
            if result.rowcount == 0:
                raise NotFoundFailure(f"No {table} row with id {match_id}")

    def _delete_sync(self, table: str, match_id: str) -> None:
        model = _model_for(table)
        with session_scope(database_url=self.database_url) as s:
            result = s.execute(sa_delete(model).where(model.id == match_id))
            if result.rowcount == 0:
                raise NotFoundFailure(f"No {table} row with id {match_id}")

    async def select(
        self,
        table: str,
        filters: Sequence[Filter] = (),
        order_by: str | None = None,
    ) -> list[dict[str, Any]]:
        return await self._run(lambda: self._select_sync(table, list(filters), order_by))

    async def insert(self, table: str, row: Mapping[str, Any]) -> dict[str, Any]:
        return await self._run(lambda: self._insert_sync(table, row))

    async def update(self, table: str, values: Mapping[str, Any], match_id: str) -> None:
        await self._run(lambda: self._update_sync(table, values, match_id))

    async def delete(self, table: str, match_id: str) -> None:
        await self._run(lambda: self._delete_sync(table, match_id))


__all__ = [
    "FilterOp",
    "TRANSACTIONS_TABLE",
    "HISTORY_TABLE",
    "STUDENTS_TABLE",
    "ASSOCIATES_TABLE",
    "OTHERS_TABLE",
    "BlobInfo",
    "Filter",
    "BlobStore",
    "RecordStore",
    "default_blob_root",
    "validate_blob_name",
    "LocalBlobStore",
    "SqlRecordStore",
]
