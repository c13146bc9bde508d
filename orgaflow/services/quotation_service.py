"""
Supplier quotations: saving and reloading a request's price analysis.

Saving is a hard replace: the caller sends the full set of selected
suppliers every time, quotations for suppliers no longer selected are
deleted, and selected suppliers get exactly one quotation each with a price
for every request line item.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Mapping, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from orgaflow.errors import StateError, ValidationError
from orgaflow.models.purchase_request import PurchaseRequest
from orgaflow.models.quotation import SupplierQuotation, QuotationItem
from orgaflow.services.price_comparison import (
    ZERO,
    PriceComparison,
    compare,
    dedupe_supplier_ids,
    lookup_price,
    normalize_discounts,
    normalize_price_matrix,
)

logger = structlog.get_logger()


@dataclass
class QuotationRecord:
    quotation: SupplierQuotation
    items: list[QuotationItem]


def check_price_analysis_open(pr: PurchaseRequest) -> None:
    if pr.status != "APPROVED":
        raise StateError(
            f"Prices can only be entered while the request is APPROVED (currently {pr.status})"
        )


def to_price_matrix(
    records: Sequence[QuotationRecord],
) -> tuple[list[str], dict[str, dict[str, Decimal]], dict[str, Decimal]]:
    """Rebuild (supplier_ids, price matrix, discounts) from saved quotations."""
    supplier_ids: list[str] = []
    matrix: dict[str, dict[str, Decimal]] = {}
    discounts: dict[str, Decimal] = {}
    for record in records:
        supplier_id = record.quotation.supplier_id
        if supplier_id not in supplier_ids:
            supplier_ids.append(supplier_id)
        discounts[supplier_id] = Decimal(record.quotation.discount_percent or ZERO)
        for item in record.items:
            matrix.setdefault(item.item_id, {})[supplier_id] = Decimal(item.price)
    return supplier_ids, matrix, discounts


async def get_quotations(session: AsyncSession, pr_id) -> list[QuotationRecord]:
    result = await session.execute(
        select(SupplierQuotation)
        .where(SupplierQuotation.pr_id == pr_id)
        .order_by(SupplierQuotation.created_at, SupplierQuotation.supplier_id)
    )
    quotations = list(result.scalars().all())

    # Batch load items for all quotations in one query
    items_map: dict = {}
    if quotations:
        items_result = await session.execute(
            select(QuotationItem).where(
                QuotationItem.quotation_id.in_([q.id for q in quotations])
            )
        )
        for item in items_result.scalars().all():
            items_map.setdefault(str(item.quotation_id), []).append(item)

    return [QuotationRecord(quotation=q, items=items_map.get(str(q.id), [])) for q in quotations]


async def get_quotation_for_supplier(
    session: AsyncSession, pr_id, supplier_id: str
) -> Optional[QuotationRecord]:
    result = await session.execute(
        select(SupplierQuotation).where(
            SupplierQuotation.pr_id == pr_id,
            SupplierQuotation.supplier_id == supplier_id,
        )
    )
    quotation = result.scalar_one_or_none()
    if not quotation:
        return None
    items_result = await session.execute(
        select(QuotationItem).where(QuotationItem.quotation_id == quotation.id)
    )
    return QuotationRecord(quotation=quotation, items=list(items_result.scalars().all()))


async def build_saved_comparison(
    session: AsyncSession, pr: PurchaseRequest, line_items: Sequence
) -> PriceComparison:
    records = await get_quotations(session, pr.id)
    supplier_ids, matrix, discounts = to_price_matrix(records)
    return compare(line_items, supplier_ids, matrix, discounts)


async def save_quotations(
    session: AsyncSession,
    pr: PurchaseRequest,
    line_items: Sequence,
    supplier_ids: Sequence[str],
    prices: Mapping[str, Mapping[str, object]],
    discounts: Optional[Mapping[str, object]] = None,
) -> list[QuotationRecord]:
    """
    Replace every quotation of the request with one per selected supplier.

    Validates status, supplier ids, prices and discounts before touching
    any row. Caller owns the transaction.
    """
    check_price_analysis_open(pr)
    selected = dedupe_supplier_ids(supplier_ids)
    matrix = normalize_price_matrix(prices)
    discount_map = normalize_discounts(discounts)

    request_item_ids = {li.item_id for li in line_items}
    unknown_items = sorted(set(matrix) - request_item_ids)
    if unknown_items:
        raise ValidationError(f"Prices given for items not on the request: {unknown_items}")
    stray = sorted(set(discount_map) - set(selected))
    if stray:
        raise ValidationError(f"Discounts given for suppliers not selected: {stray}")

    existing = {r.quotation.supplier_id: r for r in await get_quotations(session, pr.id)}

    for supplier_id, record in existing.items():
        if supplier_id not in selected:
            await session.delete(record.quotation)

    saved: list[QuotationRecord] = []
    for supplier_id in selected:
        record = existing.get(supplier_id)
        if record:
            quotation = record.quotation
            for item in record.items:
                await session.delete(item)
        else:
            quotation = SupplierQuotation(pr_id=pr.id, supplier_id=supplier_id)
            session.add(quotation)
        quotation.discount_percent = discount_map.get(supplier_id, ZERO)
        await session.flush()

        items = []
        for li in line_items:
            item = QuotationItem(
                quotation_id=quotation.id,
                item_id=li.item_id,
                price=lookup_price(matrix, li.item_id, supplier_id),
            )
            session.add(item)
            items.append(item)
        saved.append(QuotationRecord(quotation=quotation, items=items))

    await session.flush()

    logger.info(
        "quotations_saved",
        pr_id=str(pr.id),
        suppliers=selected,
        removed=[s for s in existing if s not in selected],
    )
    return saved
