"""Store doubles for failure-path tests.

They wrap the real adapters and fail selected operations with the same error
types the adapters raise, so the code under test sees realistic failures.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any

from statement_recon.errors import StoreFailure
from statement_recon.stores import BlobInfo, Filter, LocalBlobStore, SqlRecordStore

DATA_DIR = Path(__file__).resolve().parent.parent / "data"


def read_fixture(name: str) -> str:
    return (DATA_DIR / name).read_text(encoding="utf-8")


class FlakyBlobStore:
    """``LocalBlobStore`` whose uploads fail while ``fail_uploads`` is set."""

    def __init__(self, inner: LocalBlobStore, *, fail_uploads: bool = True) -> None:
        self.inner = inner
        self.fail_uploads = fail_uploads
        self.upload_attempts = 0

    async def list(self) -> list[BlobInfo]:
        return await self.inner.list()

    async def upload(self, name: str, data: bytes | str, *, upsert: bool = False) -> None:
        self.upload_attempts += 1
        if self.fail_uploads:
            raise StoreFailure(f"simulated upload failure for {name}")
        await self.inner.upload(name, data, upsert=upsert)

    async def download(self, name: str) -> bytes:
        return await self.inner.download(name)

    async def remove(self, names: Sequence[str]) -> None:
        await self.inner.remove(names)


class RecordingRecordStore:
    """``SqlRecordStore`` that records calls and can fail updates."""

    def __init__(self, inner: SqlRecordStore, *, fail_updates: bool = False) -> None:
        self.inner = inner
        self.fail_updates = fail_updates
        self.calls: list[tuple[str, str]] = []

    async def select(
        self, table: str, filters: Sequence[Filter] = (), order_by: str | None = None
    ) -> list[dict[str, Any]]:
        self.calls.append(("select", table))
        return await self.inner.select(table, filters, order_by)

    async def insert(self, table: str, row: Mapping[str, Any]) -> dict[str, Any]:
        self.calls.append(("insert", table))
        return await self.inner.insert(table, row)

    async def update(self, table: str, values: Mapping[str, Any], match_id: str) -> None:
        self.calls.append(("update", table))
        if self.fail_updates:
            raise StoreFailure(f"simulated update failure on {table}")
        await self.inner.update(table, values, match_id)

    async def delete(self, table: str, match_id: str) -> None:
        self.calls.append(("delete", table))
        await self.inner.delete(table, match_id)
