import asyncio
import json
from decimal import Decimal

import pytest
from statement_recon.categories import (
    UNCATEGORIZED,
    CategoryMapper,
    assign_category,
    category_for,
    delete_category,
    normalize_label,
    require_label,
    summarize,
    validate_label,
)
from statement_recon.errors import StoreFailure, ValidationFailure
from statement_recon.merge import METADATA_NAME
from statement_recon.models import CategoryMetadata, TransactionRecord

from tests.helpers.stores import FlakyBlobStore


def _record(narration: str, amount: str, direction: str = "C") -> TransactionRecord:
    return TransactionRecord(
        movement_date="01/03/2024",
        origin_branch="AG01",
        lot="L1",
        narration=narration,
        document_ref="DOC",
        amount=amount,
        direction=direction,
    )


# ---- Labels --------------------------------------------------------------------


def test_normalize_label_collapses_whitespace_and_keeps_case():
    assert normalize_label("  Doações   Eventuais ") == "Doações Eventuais"


@pytest.mark.parametrize(
    "label",
    ["Mensalidade", "Doações", "Água & Luz", "Taxas (bancárias)", "Aluguel/Sala 2", "D'Ávila, Ltda."],
)
def test_valid_labels(label):
    assert validate_label(label).ok


@pytest.mark.parametrize("label", ["", "   ", "a" * 65, "Bad*Label", "semi;colon", "emoji 🎉"])
def test_invalid_labels(label):
    v = validate_label(label)
    assert not v.ok
    assert v.reason


def test_require_label_raises_validation_failure():
    assert require_label("  Mensalidade ") == "Mensalidade"
    with pytest.raises(ValidationFailure):
        require_label("!!")


# ---- Pure transitions ----------------------------------------------------------


def test_assign_adds_option_once_and_replaces_mapping():
    md = CategoryMetadata()
    md = assign_category(md, "  PIX Joao ", "Mensalidade")
    md = assign_category(md, "PIX Ana", "Mensalidade")
    assert md.options == ["Mensalidade"]
    assert md.mappings == {"PIX Joao": "Mensalidade", "PIX Ana": "Mensalidade"}

    md = assign_category(md, "PIX Joao", "Doações")
    assert md.options == ["Doações", "Mensalidade"]
    assert md.mappings["PIX Joao"] == "Doações"


def test_assign_does_not_mutate_input():
    md = CategoryMetadata(options=["A"], mappings={"x": "A"})
    assign_category(md, "y", "B")
    assert md.options == ["A"]
    assert md.mappings == {"x": "A"}


def test_assign_rejects_empty_narration_and_bad_label():
    with pytest.raises(ValidationFailure):
        assign_category(CategoryMetadata(), "   ", "Mensalidade")
    with pytest.raises(ValidationFailure):
        assign_category(CategoryMetadata(), "PIX", "")


def test_mapping_keys_are_verbatim_not_normalized():
    md = assign_category(CategoryMetadata(), "PIX João", "Mensalidade")
    assert category_for(md, "PIX João") == "Mensalidade"
    assert category_for(md, "  PIX João  ") == "Mensalidade"
    assert category_for(md, "pix joao") == UNCATEGORIZED


def test_delete_policies():
    md = CategoryMetadata(
        options=["Doações", "Mensalidade"],
        mappings={"PIX Joao": "Mensalidade", "PIX Ana": "Doações"},
    )

    orphaned = delete_category(md, "Mensalidade")
    assert orphaned.options == ["Doações"]
    assert category_for(orphaned, "PIX Joao") == "Mensalidade"

    reassigned = delete_category(md, "Mensalidade", policy="reassign")
    assert "PIX Joao" not in reassigned.mappings
    assert category_for(reassigned, "PIX Joao") == UNCATEGORIZED
    assert reassigned.mappings == {"PIX Ana": "Doações"}

    with pytest.raises(ValidationFailure):
        delete_category(md, "Mensalidade", policy="block")
    unused = CategoryMetadata(options=["Sobra"], mappings={})
    assert delete_category(unused, "Sobra", policy="block").options == []

    with pytest.raises(ValidationFailure):
        delete_category(md, "Mensalidade", policy="purge")


def test_options_are_deduplicated_and_sorted_on_load():
    md = CategoryMetadata.model_validate({"options": ["b", "a", "b", " ", "a "], "mappings": {}})
    assert md.options == ["a", "b"]


# ---- Store-backed mapper -------------------------------------------------------


def test_mapper_first_run_is_empty(blob_store):
    mapper = CategoryMapper(blob_store)
    md = asyncio.run(mapper.load())
    assert md == CategoryMetadata()
    assert mapper.category_for("anything") == UNCATEGORIZED


def test_mapper_persists_assign_and_delete(blob_store):
    mapper = CategoryMapper(blob_store)
    asyncio.run(mapper.load())
    asyncio.run(mapper.assign("PIX Joao", "Mensalidade"))

    stored = json.loads(asyncio.run(blob_store.download(METADATA_NAME)).decode("utf-8"))
    assert stored == {"options": ["Mensalidade"], "mappings": {"PIX Joao": "Mensalidade"}}

    fresh = CategoryMapper(blob_store)
    asyncio.run(fresh.load())
    assert fresh.category_for("PIX Joao") == "Mensalidade"

    asyncio.run(fresh.delete("Mensalidade", policy="reassign"))
    stored = json.loads(asyncio.run(blob_store.download(METADATA_NAME)).decode("utf-8"))
    assert stored == {"options": [], "mappings": {}}


def test_mapper_keeps_local_state_when_upload_fails(blob_store):
    flaky = FlakyBlobStore(blob_store)
    mapper = CategoryMapper(flaky)
    asyncio.run(mapper.load())

    with pytest.raises(StoreFailure):
        asyncio.run(mapper.assign("PIX Joao", "Mensalidade"))
    assert mapper.category_for("PIX Joao") == "Mensalidade"
    assert flaky.upload_attempts == 1

    flaky.fail_uploads = False
    asyncio.run(mapper.save())
    assert json.loads(asyncio.run(blob_store.download(METADATA_NAME)))["options"] == [
        "Mensalidade"
    ]


def test_mapper_rejects_corrupt_document(blob_store):
    asyncio.run(blob_store.upload(METADATA_NAME, "{not json", upsert=True))
    with pytest.raises(StoreFailure):
        asyncio.run(CategoryMapper(blob_store).load())


def test_invalid_label_never_reaches_the_store(blob_store):
    flaky = FlakyBlobStore(blob_store, fail_uploads=False)
    mapper = CategoryMapper(flaky)
    with pytest.raises(ValidationFailure):
        asyncio.run(mapper.assign("PIX Joao", "Bad*Label"))
    assert flaky.upload_attempts == 0
    assert mapper.metadata == CategoryMetadata()


# ---- Summary -------------------------------------------------------------------


def test_summarize_groups_by_category_with_uncategorized_fallback():
    md = CategoryMetadata(
        options=["Mensalidade", "Tarifas"],
        mappings={"PIX Joao": "Mensalidade", "PIX Ana": "Mensalidade", "Tarifa": "Tarifas"},
    )
    records = [
        _record("PIX Joao", "150,00"),
        _record("PIX Ana", "1.000,00"),
        _record("Tarifa", "12,50", "D"),
        _record("Desconhecido", "5,00", "D"),
        _record("Estorno", "2,00"),
    ]
    summary = summarize(records, md)

    assert [g.category for g in summary.groups] == ["Mensalidade", "Tarifas", UNCATEGORIZED]
    by_label = {g.category: g for g in summary.groups}
    assert by_label["Mensalidade"].total_credits == Decimal("1150.00")
    assert by_label["Tarifas"].total_debits == Decimal("12.50")
    assert by_label[UNCATEGORIZED].total_credits == Decimal("2.00")
    assert by_label[UNCATEGORIZED].total_debits == Decimal("5.00")
    assert by_label[UNCATEGORIZED].net == Decimal("-3.00")

    assert summary.total_credits == Decimal("1152.00")
    assert summary.total_debits == Decimal("17.50")
    assert summary.net == Decimal("1134.50")


def test_summarize_empty():
    summary = summarize([], CategoryMetadata())
    assert summary.groups == ()
    assert summary.net == Decimal("0")
