"""Pytest configuration for test isolation.

Commands and stores read their locations from the environment
(``SR_BLOB_DIR``, ``DATABASE_URL``, ``SR_AMOUNT_INDEX``). A developer's
``.env`` or shell could otherwise leak a real statement directory or database
into the tests, so every test gets its own temporary blob root and a clean
environment.
"""

from __future__ import annotations

import os
from pathlib import Path

import pytest
from db.client import dispose_engines
from statement_recon.stores import LocalBlobStore, SqlRecordStore

from tests.helpers.db import bootstrap_sqlite_db


@pytest.fixture(autouse=True)
def _isolate_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Point the blob root at the test's temporary directory; drop DB/index vars."""

    blob_root = tmp_path / "statements"
    blob_root.mkdir(parents=True, exist_ok=True)
    monkeypatch.setenv("SR_BLOB_DIR", os.fspath(blob_root))
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.delenv("SR_AMOUNT_INDEX", raising=False)


@pytest.fixture
def blob_store(tmp_path: Path) -> LocalBlobStore:
    return LocalBlobStore(tmp_path / "statements")


@pytest.fixture
def database_url(tmp_path: Path):
    url = bootstrap_sqlite_db(tmp_path / "recon.sqlite3")
    yield url
    dispose_engines()


@pytest.fixture
def record_store(database_url: str) -> SqlRecordStore:
    return SqlRecordStore(database_url)
