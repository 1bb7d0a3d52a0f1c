import asyncio
from datetime import datetime

import pytest
from db.models import SrTransaction
from statement_recon.errors import NotFoundFailure, ParseFailure, ValidationFailure
from statement_recon.merge import MERGED_NAME, METADATA_NAME
from statement_recon.statements import (
    delete_statements,
    list_statements,
    merge_statements,
    read_statement,
    save_statement,
    save_statements,
    statement_name_for,
    view_statement,
)

from tests.helpers.db import count_rows
from tests.helpers.stores import read_fixture


def _names(blob_store, **kw) -> list[str]:
    return [b.name for b in asyncio.run(list_statements(blob_store, **kw))]


def test_statement_name_for():
    assert statement_name_for(read_fixture("original_sample.txt")) == "29_02_2024.txt"
    with pytest.raises(ParseFailure):
        statement_name_for("no header, no dates")


def test_save_statement_filters_sweeps_and_names_by_date(blob_store):
    name = asyncio.run(save_statement(blob_store, read_fixture("original_sample.txt")))
    assert name == "29_02_2024.txt"
    stored = asyncio.run(read_statement(blob_store, name))
    assert "Rende" not in stored
    assert "JOAO DA SILVA" in stored


def test_save_statement_overwrites_same_date(blob_store):
    text = read_fixture("merged_sample.txt")
    asyncio.run(save_statement(blob_store, text))
    asyncio.run(save_statement(blob_store, text.replace("DOC1", "DOC9")))
    assert _names(blob_store) == ["01_03_2024.txt"]
    records = asyncio.run(view_statement(blob_store, "01_03_2024.txt"))
    assert records[0].document_ref == "DOC9"


@pytest.mark.parametrize("text", ["", "   \n", "Dt. movimento\n\nsem datas"])
def test_save_statement_rejects_undated_text(blob_store, text):
    with pytest.raises(ParseFailure):
        asyncio.run(save_statement(blob_store, text))
    assert _names(blob_store) == []


def test_save_statements_collects_partial_failures(blob_store):
    result = asyncio.run(
        save_statements(
            blob_store,
            [
                ("janeiro.txt", read_fixture("original_sample.txt")),
                ("lixo.txt", "not a statement"),
                ("marco.txt", read_fixture("merged_sample.txt")),
            ],
        )
    )
    assert result.succeeded == ["29_02_2024.txt", "01_03_2024.txt"]
    assert [label for label, _ in result.failed] == ["lixo.txt"]


def test_list_puts_merged_first_then_newest_and_hides_metadata(blob_store):
    asyncio.run(save_statement(blob_store, read_fixture("original_sample.txt")))
    asyncio.run(save_statement(blob_store, read_fixture("merged_sample.txt")))
    asyncio.run(merge_statements(blob_store))
    asyncio.run(blob_store.upload(METADATA_NAME, '{"options": [], "mappings": {}}'))

    assert _names(blob_store) == [MERGED_NAME, "01_03_2024.txt", "29_02_2024.txt"]
    assert _names(blob_store, include_merged=False) == ["01_03_2024.txt", "29_02_2024.txt"]


def test_read_statement_falls_back_to_latin1(blob_store):
    text = read_fixture("merged_sample.txt")
    asyncio.run(blob_store.upload("01_03_2024.txt", text.encode("latin-1")))
    assert asyncio.run(read_statement(blob_store, "01_03_2024.txt")) == text


def test_view_missing_statement_is_not_found(blob_store):
    with pytest.raises(NotFoundFailure):
        asyncio.run(view_statement(blob_store, "01_01_2000.txt"))


def test_delete_statements_refuses_metadata(blob_store):
    asyncio.run(save_statement(blob_store, read_fixture("merged_sample.txt")))
    asyncio.run(blob_store.upload(METADATA_NAME, "{}"))

    with pytest.raises(ValidationFailure):
        asyncio.run(delete_statements(blob_store, ["01_03_2024.txt", METADATA_NAME]))
    assert "01_03_2024.txt" in _names(blob_store)

    asyncio.run(delete_statements(blob_store, ["01_03_2024.txt", "missing.txt"]))
    assert _names(blob_store) == []


def test_merge_uploads_consolidated_file_and_syncs_rows(blob_store, record_store, database_url):
    asyncio.run(save_statement(blob_store, read_fixture("original_sample.txt")))
    asyncio.run(save_statement(blob_store, read_fixture("merged_sample.txt")))

    stamp = datetime(2024, 3, 10, 9, 0, 0)
    result = asyncio.run(
        merge_statements(blob_store, record_store=record_store, generated_at=stamp)
    )
    assert result.source_names == ("29_02_2024.txt", "01_03_2024.txt")
    assert [r.document_ref for r in result.records] == [
        "PIX12345",
        "DOC777",
        "TED555",
        "DOC1",
        "DOC2",
        "DOC3",
        "DOC4",
    ]
    merged_text = asyncio.run(read_statement(blob_store, MERGED_NAME))
    assert merged_text == result.text
    assert "Gerado em: 10/03/2024, 09:00:00" in merged_text
    assert count_rows(database_url, SrTransaction) == 7

    # Re-merging picks up nothing new and never reads Extratos.txt as input.
    again = asyncio.run(merge_statements(blob_store, record_store=record_store))
    assert len(again.records) == 7
    assert count_rows(database_url, SrTransaction) == 7


def test_merge_without_records_uploads_nothing(blob_store):
    with pytest.raises(ParseFailure):
        asyncio.run(merge_statements(blob_store))
    assert MERGED_NAME not in _names(blob_store)
