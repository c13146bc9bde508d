"""
Unit tests for orgaflow/services/quotation_service.py

Tests: hard-replace persistence of quotations, validation before writes,
       reload round-trip through to_price_matrix.
"""

import uuid
from decimal import Decimal, ROUND_HALF_UP
from unittest.mock import AsyncMock

import pytest

from conftest import make_line, make_pr, mock_session, result_of
from orgaflow.errors import StateError, ValidationError
from orgaflow.models.quotation import QuotationItem, SupplierQuotation
from orgaflow.services.quotation_service import (
    QuotationRecord,
    build_saved_comparison,
    check_price_analysis_open,
    get_quotations,
    save_quotations,
    to_price_matrix,
)

D = Decimal
LINES = [make_line("X", 5), make_line("Y", 2, line_number=2)]


def _quotation(pr_id, supplier_id: str, discount: str = "0", prices=None) -> QuotationRecord:
    q = SupplierQuotation(id=uuid.uuid4(), pr_id=pr_id, supplier_id=supplier_id, discount_percent=D(discount))
    items = [
        QuotationItem(id=uuid.uuid4(), quotation_id=q.id, item_id=item_id, price=D(price))
        for item_id, price in (prices or {}).items()
    ]
    return QuotationRecord(quotation=q, items=items)


def _session_with(records) -> AsyncMock:
    session = mock_session()
    results = [result_of([r.quotation for r in records])]
    if records:
        results.append(result_of([i for r in records for i in r.items]))
    session.execute = AsyncMock(side_effect=results)
    return session


@pytest.mark.parametrize("status", ["DRAFT", "PENDING_APPROVAL", "REJECTED", "AWARDED"])
def test_price_analysis_only_open_while_approved(status):
    with pytest.raises(StateError):
        check_price_analysis_open(make_pr(status=status))


@pytest.mark.asyncio
async def test_save_creates_one_quotation_per_supplier_with_every_item():
    pr = make_pr(status="APPROVED")
    session = _session_with([])

    saved = await save_quotations(
        session,
        pr,
        LINES,
        ["A", "B"],
        {"X": {"A": "10", "B": 12}, "Y": {"A": ""}},
        {"B": "5"},
    )

    assert [r.quotation.supplier_id for r in saved] == ["A", "B"]
    for record in saved:
        assert record.quotation.pr_id == pr.id
        assert record.quotation.id is not None
        assert [i.item_id for i in record.items] == ["X", "Y"]
        assert all(i.quotation_id == record.quotation.id for i in record.items)
    a, b = saved
    assert [i.price for i in a.items] == [D("10"), D("0")]
    assert [i.price for i in b.items] == [D("12"), D("0")]
    assert a.quotation.discount_percent == D("0")
    assert b.quotation.discount_percent == D("5")
    session.delete.assert_not_awaited()


@pytest.mark.asyncio
async def test_save_is_a_hard_replace():
    pr = make_pr(status="APPROVED")
    old_a = _quotation(pr.id, "A", "3", {"X": "9", "Y": "1"})
    old_b = _quotation(pr.id, "B", "0", {"X": "8", "Y": "2"})
    session = _session_with([old_a, old_b])

    saved = await save_quotations(session, pr, LINES, ["A"], {"X": {"A": "11"}}, {})

    deleted = [call.args[0] for call in session.delete.await_args_list]
    assert old_b.quotation in deleted
    assert all(item in deleted for item in old_a.items)
    assert old_a.quotation not in deleted
    assert len(saved) == 1
    # Existing quotation row is kept (same id and date), only its contents change
    assert saved[0].quotation is old_a.quotation
    assert saved[0].quotation.discount_percent == D("0")
    assert [(i.item_id, i.price) for i in saved[0].items] == [("X", D("11")), ("Y", D("0"))]


@pytest.mark.asyncio
async def test_save_round_trips_through_reload():
    pr = make_pr(status="APPROVED")
    session = _session_with([])
    prices = {"X": {"A": "10.25", "B": "9.75"}, "Y": {"A": "4", "B": "5.5"}}
    discounts = {"A": "2.5", "B": "0"}

    saved = await save_quotations(session, pr, LINES, ["A", "B"], prices, discounts)
    supplier_ids, matrix, loaded_discounts = to_price_matrix(saved)

    assert supplier_ids == ["A", "B"]
    assert matrix == {
        "X": {"A": D("10.25"), "B": D("9.75")},
        "Y": {"A": D("4"), "B": D("5.5")},
    }
    assert loaded_discounts == {"A": D("2.5"), "B": D("0")}


@pytest.mark.asyncio
async def test_save_rejects_bad_input_before_any_write():
    pr = make_pr(status="APPROVED")

    for kwargs in (
        dict(supplier_ids=["A"], prices={"X": {"A": "-1"}}, discounts={}),
        dict(supplier_ids=["A"], prices={"Z": {"A": "1"}}, discounts={}),
        dict(supplier_ids=["A"], prices={}, discounts={"A": "101"}),
        dict(supplier_ids=["A"], prices={}, discounts={"B": "5"}),
    ):
        session = _session_with([])
        with pytest.raises(ValidationError):
            await save_quotations(session, pr, LINES, **kwargs)
        session.add.assert_not_called()
        session.execute.assert_not_awaited()


@pytest.mark.asyncio
async def test_save_requires_approved_request():
    session = _session_with([])
    with pytest.raises(StateError):
        await save_quotations(session, make_pr(status="AWARDED"), LINES, ["A"], {}, {})
    session.execute.assert_not_awaited()


@pytest.mark.asyncio
async def test_get_quotations_groups_items_by_quotation():
    pr = make_pr(status="APPROVED")
    a = _quotation(pr.id, "A", prices={"X": "1"})
    b = _quotation(pr.id, "B", prices={"X": "2", "Y": "3"})
    session = _session_with([a, b])

    records = await get_quotations(session, pr.id)

    assert [r.quotation.supplier_id for r in records] == ["A", "B"]
    assert [i.item_id for i in records[1].items] == ["X", "Y"]


@pytest.mark.asyncio
async def test_build_saved_comparison():
    pr = make_pr(status="APPROVED")
    a = _quotation(pr.id, "A", "10", {"X": "10", "Y": "1"})
    b = _quotation(pr.id, "B", "0", {"X": "12", "Y": "1"})
    session = _session_with([a, b])

    comparison = await build_saved_comparison(session, pr, LINES)

    assert comparison.totals == {"A": D("52.00"), "B": D("62.00")}
    assert comparison.final_totals == {"A": D("46.80"), "B": D("62.00")}
    assert comparison.rows[1].lowest_supplier_ids == ["A", "B"]


def _as_stored(value, column) -> Decimal:
    """What PostgreSQL hands back for value in a Numeric column."""
    return D(value).quantize(D(1).scaleb(-column.type.scale), rounding=ROUND_HALF_UP)


@pytest.mark.asyncio
async def test_saved_values_survive_column_rounding():
    pr = make_pr(status="APPROVED")
    session = _session_with([])
    prices = {"X": {"A": "10.12500", "B": "0.1235"}, "Y": {"A": "9999999999.9999"}}
    discounts = {"A": "12.500", "B": "99.99"}

    saved = await save_quotations(session, pr, LINES, ["A", "B"], prices, discounts)

    price_column = QuotationItem.__table__.c.price
    discount_column = SupplierQuotation.__table__.c.discount_percent
    for record in saved:
        q = record.quotation
        assert _as_stored(q.discount_percent, discount_column) == q.discount_percent
        for item in record.items:
            assert _as_stored(item.price, price_column) == item.price


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "prices, discounts",
    [
        ({"X": {"A": "0.123456"}}, {}),
        ({"X": {"A": "123456789012"}}, {}),
        ({}, {"A": "12.345"}),
    ],
)
async def test_save_rejects_values_the_columns_would_round(prices, discounts):
    session = _session_with([])
    with pytest.raises(ValidationError):
        await save_quotations(session, make_pr(status="APPROVED"), LINES, ["A"], prices, discounts)
    session.add.assert_not_called()
