from datetime import date
from decimal import Decimal

import pytest
from statement_recon.normalizers import (
    digits_only,
    format_br_amount,
    is_br_date,
    normalize_field,
    parse_amount_with_direction,
    parse_br_amount,
    parse_br_date,
    split_amount_suffix,
)


def test_parse_br_amount_thousands_and_decimals():
    assert parse_br_amount("1.234,56") == Decimal("1234.56")
    assert parse_br_amount("150,00") == Decimal("150.00")
    assert parse_br_amount("12.345.678,90") == Decimal("12345678.90")
    assert parse_br_amount("7") == Decimal("7")


def test_parse_br_amount_negative_and_currency_prefix():
    assert parse_br_amount("-1.000,00") == Decimal("-1000.00")
    assert parse_br_amount("R$ 42,10") == Decimal("42.10")


@pytest.mark.parametrize("raw", ["", "  ", "abc", "1,2,3", "12.34,00", "1.2345,00"])
def test_parse_br_amount_rejects_malformed(raw):
    with pytest.raises(ValueError):
        parse_br_amount(raw)


def test_parse_amount_with_direction_suffixes():
    assert parse_amount_with_direction("50,00 D") == (Decimal("50.00"), "D")
    assert parse_amount_with_direction("50,00d") == (Decimal("50.00"), "D")
    assert parse_amount_with_direction("150,00 C") == (Decimal("150.00"), "C")
    assert parse_amount_with_direction("150,00") == (Decimal("150.00"), "C")
    assert parse_amount_with_direction("-1.234,56") == (Decimal("1234.56"), "D")


def test_split_amount_suffix_keeps_magnitude_text():
    assert split_amount_suffix("-1.234,56") == ("1.234,56", "D")
    assert split_amount_suffix("  75,00 D ") == ("75,00", "D")


def test_format_br_amount_round_trips_through_parser():
    for value in (Decimal("0"), Decimal("1234.5"), Decimal("-98765.432"), Decimal("1000000")):
        text = format_br_amount(value)
        assert parse_br_amount(text) == value.quantize(Decimal("0.01"))
    assert format_br_amount(Decimal("1234.56")) == "1.234,56"
    assert format_br_amount(Decimal("-5")) == "-5,00"


def test_normalize_field_ignores_accents_case_and_spacing():
    assert normalize_field("  Pagamento   de  Mensalidade ") == "pagamento de mensalidade"
    assert normalize_field("JOÃO DA  SILVA") == normalize_field("joao da silva")
    assert normalize_field("Serviços\tBancários") == "servicos bancarios"
    assert normalize_field(None) == ""


def test_digits_only():
    assert digits_only("123.456.789-01") == "12345678901"
    assert digits_only("DOC") == ""
    assert digits_only(None) == ""


def test_br_dates():
    assert parse_br_date("01/03/2024") == date(2024, 3, 1)
    assert parse_br_date("31/02/2024") is None
    assert parse_br_date("2024-03-01") is None
    assert is_br_date("29/02/2024")
    assert not is_br_date("")
