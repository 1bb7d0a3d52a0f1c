import asyncio
from pathlib import Path

import pytest
from statement_recon.errors import NotFoundFailure, StoreFailure, ValidationFailure
from statement_recon.stores import (
    OTHERS_TABLE,
    STUDENTS_TABLE,
    TRANSACTIONS_TABLE,
    Filter,
    LocalBlobStore,
    SqlRecordStore,
    default_blob_root,
    validate_blob_name,
)

# ---- Blob store ----------------------------------------------------------------


@pytest.mark.parametrize("name", ["01_03_2024.txt", "Extratos.txt", "metadata.json", "a b-c.txt"])
def test_valid_blob_names(name):
    assert validate_blob_name(name) == name


@pytest.mark.parametrize("name", ["", ".hidden", "../x.txt", "a/b.txt", "a\\b.txt", "x..txt"])
def test_invalid_blob_names(name):
    with pytest.raises(ValidationFailure):
        validate_blob_name(name)


def test_default_blob_root_follows_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    assert default_blob_root() == (tmp_path / "statements").resolve()
    monkeypatch.delenv("SR_BLOB_DIR")
    monkeypatch.chdir(tmp_path)
    assert default_blob_root() == (tmp_path / ".statements").resolve()


def test_blob_round_trip_and_listing(blob_store: LocalBlobStore):
    asyncio.run(blob_store.upload("b.txt", "segundo"))
    asyncio.run(blob_store.upload("a.txt", "primeiro".encode("utf-8")))
    infos = asyncio.run(blob_store.list())
    assert [i.name for i in infos] == ["a.txt", "b.txt"]
    assert all(i.created_at is not None for i in infos)
    assert asyncio.run(blob_store.download("b.txt")) == b"segundo"
    assert not list(blob_store.root.glob("*.tmp"))


def test_upload_without_upsert_refuses_overwrite(blob_store: LocalBlobStore):
    asyncio.run(blob_store.upload("a.txt", "1"))
    with pytest.raises(StoreFailure):
        asyncio.run(blob_store.upload("a.txt", "2"))
    asyncio.run(blob_store.upload("a.txt", "3", upsert=True))
    assert asyncio.run(blob_store.download("a.txt")) == b"3"


def test_download_missing_and_remove_missing(blob_store: LocalBlobStore):
    with pytest.raises(NotFoundFailure):
        asyncio.run(blob_store.download("nada.txt"))
    asyncio.run(blob_store.remove(["nada.txt"]))


def test_list_on_missing_root_is_empty(tmp_path: Path):
    store = LocalBlobStore(tmp_path / "does-not-exist")
    assert asyncio.run(store.list()) == []


# ---- Record store --------------------------------------------------------------


def _tx(**kw):
    row = dict(
        fingerprint="f" * 64,
        statement_name="Extratos.txt",
        movement_date="01/03/2024",
        narration="PIX Joao",
        amount="10,00",
        direction="C",
    )
    row.update(kw)
    return row


def test_missing_database_url_is_store_failure():
    with pytest.raises(StoreFailure):
        asyncio.run(SqlRecordStore().select(TRANSACTIONS_TABLE))


def test_insert_returns_generated_id(record_store: SqlRecordStore):
    created = asyncio.run(record_store.insert(STUDENTS_TABLE, {"name": "Ana Lima"}))
    assert created["id"]
    assert created["name"] == "Ana Lima"
    assert created["created_at"] is not None


def test_unknown_table_and_column_are_store_failures(record_store: SqlRecordStore):
    with pytest.raises(StoreFailure):
        asyncio.run(record_store.select("sr_nope"))
    with pytest.raises(StoreFailure):
        asyncio.run(record_store.insert(STUDENTS_TABLE, {"name": "Ana", "shoe_size": 42}))
    with pytest.raises(StoreFailure):
        asyncio.run(record_store.select(STUDENTS_TABLE, [Filter("shoe_size", 42)]))


def test_filters_eq_prefix_contains(record_store: SqlRecordStore):
    for name in ("Ana Lima", "Ana Souza", "Bruno Lima", "100%_real"):
        asyncio.run(record_store.insert(STUDENTS_TABLE, {"name": name}))

    def names(filters):
        rows = asyncio.run(record_store.select(STUDENTS_TABLE, filters, order_by="name"))
        return [r["name"] for r in rows]

    assert names([Filter("name", "Ana Lima")]) == ["Ana Lima"]
    assert names([Filter("name", "Ana", "prefix")]) == ["Ana Lima", "Ana Souza"]
    assert names([Filter("name", "lima", "contains")]) == ["Ana Lima", "Bruno Lima"]
    # Wildcards in the value are matched literally.
    assert names([Filter("name", "%_", "contains")]) == ["100%_real"]
    assert names([Filter("name", "Ana", "prefix"), Filter("name", "souza", "contains")]) == [
        "Ana Souza"
    ]


def test_order_by_descending(record_store: SqlRecordStore):
    for name in ("B", "C", "A"):
        asyncio.run(record_store.insert(OTHERS_TABLE, {"name": name, "kind": "doador"}))
    rows = asyncio.run(record_store.select(OTHERS_TABLE, order_by="-name"))
    assert [r["name"] for r in rows] == ["C", "B", "A"]


def test_update_and_delete_by_id(record_store: SqlRecordStore):
    created = asyncio.run(record_store.insert(TRANSACTIONS_TABLE, _tx()))
    asyncio.run(
        record_store.update(
            TRANSACTIONS_TABLE,
            {"identified_kind": "student", "identified_id": "s-1", "identified_name": "Ana"},
            created["id"],
        )
    )
    [row] = asyncio.run(record_store.select(TRANSACTIONS_TABLE))
    assert row["identified_name"] == "Ana"

    asyncio.run(record_store.delete(TRANSACTIONS_TABLE, created["id"]))
    assert asyncio.run(record_store.select(TRANSACTIONS_TABLE)) == []


def test_update_or_delete_unknown_id_is_not_found(record_store: SqlRecordStore):
    with pytest.raises(NotFoundFailure):
        asyncio.run(record_store.update(TRANSACTIONS_TABLE, {"identified_name": "X"}, "nope"))
    with pytest.raises(NotFoundFailure):
        asyncio.run(record_store.delete(TRANSACTIONS_TABLE, "nope"))


def test_constraint_violation_is_store_failure(record_store: SqlRecordStore):
    with pytest.raises(StoreFailure):
        asyncio.run(record_store.insert(TRANSACTIONS_TABLE, _tx(direction="X")))


def test_fingerprint_is_unique_per_statement(record_store: SqlRecordStore):
    asyncio.run(record_store.insert(TRANSACTIONS_TABLE, _tx()))
    with pytest.raises(StoreFailure):
        asyncio.run(record_store.insert(TRANSACTIONS_TABLE, _tx(narration="PIX Joao again")))
    # The same fingerprint under another statement name is a different row.
    asyncio.run(record_store.insert(TRANSACTIONS_TABLE, _tx(statement_name="Outro.txt")))
    assert len(asyncio.run(record_store.select(TRANSACTIONS_TABLE))) == 2
