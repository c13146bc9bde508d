"""
Unit tests for orgaflow/services/price_comparison.py

Tests: lowest-price flags and ties, supplier totals, discounts, input parsing.
"""

from decimal import Decimal

import pytest

from conftest import make_line
from orgaflow.errors import ValidationError
from orgaflow.models.purchase_order import PurchaseOrder
from orgaflow.models.quotation import QuotationItem, SupplierQuotation
from orgaflow.services.price_comparison import (
    AMOUNT_LIMIT,
    DISCOUNT_PLACES,
    PRICE_LIMIT,
    PRICE_PLACES,
    check_amount,
    compare,
    compute_final_total,
    compute_rows,
    compute_supplier_total,
    dedupe_supplier_ids,
    normalize_price_matrix,
    parse_discount,
    parse_price,
    to_money,
)

D = Decimal


def test_two_supplier_scenario():
    lines = [make_line("X", 5)]
    matrix = {"X": {"A": D("10"), "B": D("12")}}

    comparison = compare(lines, ["A", "B"], matrix, {})

    row = comparison.rows[0]
    assert row.lowest_price == D("10")
    assert row.is_lowest("A")
    assert not row.is_lowest("B")
    assert row.lowest_supplier_ids == ["A"]
    assert comparison.totals == {"A": D("50.00"), "B": D("60.00")}
    assert comparison.final_totals == comparison.totals
    assert comparison.best_supplier_ids == ["A"]


def test_ties_mark_every_lowest_supplier():
    rows = compute_rows([make_line("X", 1)], {"X": {"A": D("7"), "B": D("7"), "C": D("9")}}, ["A", "B", "C"])
    assert rows[0].lowest_supplier_ids == ["A", "B"]


def test_zero_and_missing_prices_are_never_lowest():
    matrix = {"X": {"A": D("0"), "B": D("4")}}
    rows = compute_rows([make_line("X", 2)], matrix, ["A", "B", "C"])
    row = rows[0]
    assert row.lowest_price == D("4")
    assert not row.is_lowest("A")
    assert not row.is_lowest("C")
    assert row.prices["C"] == D("0")


def test_row_with_no_quotes_has_no_lowest():
    rows = compute_rows([make_line("X", 2)], {}, ["A", "B"])
    assert rows[0].lowest_price == D("0")
    assert rows[0].lowest_supplier_ids == []


def test_supplier_total_treats_unset_price_as_zero():
    lines = [make_line("X", 3), make_line("Y", 2, line_number=2)]
    matrix = {"X": {"A": D("2.50")}}
    rows = compute_rows(lines, matrix, ["A"])
    assert compute_supplier_total(rows, "A", matrix) == D("7.50")


def test_supplier_total_is_linear_in_quantity():
    matrix = {"X": {"A": D("3.333")}, "Y": {"A": D("1.25")}}
    lines = [make_line("X", 3), make_line("Y", 4, line_number=2)]
    doubled = [make_line("X", 6), make_line("Y", 8, line_number=2)]

    total = compute_supplier_total(compute_rows(lines, matrix, ["A"]), "A", matrix)
    total_doubled = compute_supplier_total(compute_rows(doubled, matrix, ["A"]), "A", matrix)

    assert total_doubled == total * 2


def test_final_total_applies_discount():
    assert compute_final_total(D("100"), D("10")) == D("90.00")
    assert compute_final_total(D("100"), None) == D("100.00")
    assert compute_final_total(D("100"), "") == D("100.00")
    assert compute_final_total(D("80"), 100) == D("0.00")


def test_final_total_rounds_half_up():
    assert compute_final_total(D("10.05"), D("50")) == D("5.03")
    assert to_money(D("2.345")) == D("2.35")


def test_discounts_change_best_supplier():
    lines = [make_line("X", 10)]
    matrix = {"X": {"A": D("10"), "B": D("11")}}

    comparison = compare(lines, ["A", "B"], matrix, {"B": D("20")})

    assert comparison.totals == {"A": D("100.00"), "B": D("110.00")}
    assert comparison.final_totals == {"A": D("100.00"), "B": D("88.00")}
    assert comparison.discounts == {"A": D("0"), "B": D("20")}
    # Row highlighting is per unit price, before discounts
    assert comparison.rows[0].lowest_supplier_ids == ["A"]
    assert comparison.best_supplier_ids == ["B"]


@pytest.mark.parametrize("raw, expected", [("", D("0")), (None, D("0")), ("  12.5 ", D("12.5")), (3, D("3"))])
def test_parse_price_coerces_blank_and_numeric(raw, expected):
    assert parse_price(raw) == expected


@pytest.mark.parametrize("raw", ["-1", D("-0.01"), "abc", "NaN", "Infinity"])
def test_parse_price_rejects_negative_and_garbage(raw):
    with pytest.raises(ValidationError) as exc_info:
        parse_price(raw)
    assert exc_info.value.status_code == 422


@pytest.mark.parametrize("raw", ["-5", "100.01", 150])
def test_parse_discount_rejects_out_of_range(raw):
    with pytest.raises(ValidationError):
        parse_discount(raw)


def test_parse_discount_bounds_are_inclusive():
    assert parse_discount("0") == D("0")
    assert parse_discount(100) == D("100")


def test_normalize_price_matrix_parses_every_cell():
    matrix = normalize_price_matrix({"X": {"A": "10", "B": ""}, "Y": None})
    assert matrix == {"X": {"A": D("10"), "B": D("0")}, "Y": {}}


def test_dedupe_supplier_ids_keeps_order():
    assert dedupe_supplier_ids(["B", " A", "B", "A "]) == ["B", "A"]
    with pytest.raises(ValidationError):
        dedupe_supplier_ids(["A", " "])


@pytest.mark.parametrize("raw", ["0.12345", "123456789012", D("10000000000")])
def test_parse_price_rejects_values_wider_than_storage(raw):
    with pytest.raises(ValidationError):
        parse_price(raw)


def test_parse_price_accepts_widest_storable_value():
    assert parse_price("9999999999.9999") == D("9999999999.9999")
    assert parse_price("0.1235") == D("0.1235")


def test_parse_discount_rejects_more_than_two_places():
    with pytest.raises(ValidationError):
        parse_discount("12.345")
    assert parse_discount("12.350") == D("12.35")


def test_parse_limits_match_columns():
    price = QuotationItem.__table__.c.price.type
    discount = SupplierQuotation.__table__.c.discount_percent.type
    total = PurchaseOrder.__table__.c.total_amount.type

    assert price.scale == PRICE_PLACES
    assert D(10) ** (price.precision - price.scale) == PRICE_LIMIT
    assert discount.scale == DISCOUNT_PLACES
    assert D(10) ** (total.precision - total.scale) == AMOUNT_LIMIT


def test_check_amount():
    assert check_amount(D("99999999999999.99")) == D("99999999999999.99")
    with pytest.raises(ValidationError):
        check_amount(AMOUNT_LIMIT)
