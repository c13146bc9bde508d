"""
Purchase order issuing: awarding an approved request to a supplier.

A request can be awarded to several suppliers (one order each). The first
order flips the request from APPROVED to AWARDED; later orders leave it
AWARDED. The supplier's quotation discount is applied once when the order
is created; edits recompute the plain quantity x price sum.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional, Sequence

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from orgaflow.errors import StateError, ValidationError
from orgaflow.models.purchase_order import PurchaseOrder, PoLineItem
from orgaflow.models.purchase_request import PurchaseRequest
from orgaflow.services.price_comparison import (
    ZERO,
    check_amount,
    compute_final_total,
    parse_discount,
    parse_price,
    to_money,
)
from orgaflow.services.quotation_service import QuotationRecord, get_quotation_for_supplier

logger = structlog.get_logger()

PO_PREFIX = "PO"
AWARDABLE_STATUSES = ("APPROVED", "AWARDED")


@dataclass
class AwardLine:
    item_id: str
    quantity: int
    price: Decimal


def check_awardable(pr: PurchaseRequest) -> None:
    if pr.status not in AWARDABLE_STATUSES:
        raise StateError(
            f"Purchase request must be APPROVED or AWARDED to issue a purchase order (currently {pr.status})"
        )


def validate_lines(lines: Sequence[AwardLine]) -> list[AwardLine]:
    if not lines:
        raise ValidationError("A purchase order needs at least one line item")
    seen = set()
    cleaned = []
    for line in lines:
        if line.item_id in seen:
            raise ValidationError(f"Item '{line.item_id}' appears more than once")
        seen.add(line.item_id)
        if line.quantity is None or line.quantity < 1:
            raise ValidationError(f"Quantity for item '{line.item_id}' must be at least 1")
        cleaned.append(AwardLine(item_id=line.item_id, quantity=line.quantity, price=parse_price(line.price)))
    return cleaned


def lines_from_quotation(pr_line_items: Sequence, record: QuotationRecord) -> list[AwardLine]:
    """
    Quantities from the request, prices from the supplier's quotation.

    Items the supplier left at 0 were not quoted and get no order line.
    """
    quantities = {li.item_id: li.quantity for li in pr_line_items}
    return [
        AwardLine(item_id=item.item_id, quantity=quantities[item.item_id], price=Decimal(item.price))
        for item in record.items
        if item.item_id in quantities and Decimal(item.price) > 0
    ]


def compute_subtotal(lines: Sequence[AwardLine]) -> Decimal:
    return check_amount(to_money(sum((line.quantity * Decimal(line.price) for line in lines), ZERO)))


def compute_po_total(lines: Sequence[AwardLine], discount_percent=None) -> Decimal:
    return compute_final_total(compute_subtotal(lines), discount_percent)


def mark_awarded(pr: PurchaseRequest) -> bool:
    """APPROVED -> AWARDED on the first award. Returns True if the status changed."""
    if pr.status == "APPROVED":
        pr.status = "AWARDED"
        pr.awarded_at = datetime.utcnow()
        return True
    return False


async def _generate_po_number(db: AsyncSession) -> str:
    result = await db.execute(select(func.count(PurchaseOrder.id)))
    count = (result.scalar() or 0) + 1
    return f"{PO_PREFIX}-{datetime.utcnow().year}-{count:06d}"


def _build_line_items(po_id, lines: Sequence[AwardLine]) -> list[PoLineItem]:
    return [
        PoLineItem(
            po_id=po_id,
            line_number=idx,
            item_id=line.item_id,
            quantity=line.quantity,
            price=line.price,
        )
        for idx, line in enumerate(lines, start=1)
    ]


async def get_po_line_items(session: AsyncSession, po_id) -> list[PoLineItem]:
    result = await session.execute(
        select(PoLineItem).where(PoLineItem.po_id == po_id).order_by(PoLineItem.line_number)
    )
    return list(result.scalars().all())


async def create_from_award(
    session: AsyncSession,
    pr: PurchaseRequest,
    pr_line_items: Sequence,
    supplier_id: str,
    created_by: str,
    lines: Optional[Sequence[AwardLine]] = None,
) -> tuple[PurchaseOrder, list[PoLineItem]]:
    """
    Issue a purchase order for supplier_id against an approved request.

    When lines is None they are taken from the supplier's saved quotation.
    Caller owns the transaction.
    """
    check_awardable(pr)

    supplier_id = (supplier_id or "").strip()
    if not supplier_id:
        raise ValidationError("supplier_id is required")

    record = await get_quotation_for_supplier(session, pr.id, supplier_id)
    if lines is None:
        if record is None:
            raise ValidationError(
                f"Supplier '{supplier_id}' has no quotation for this request; line items are required"
            )
        lines = lines_from_quotation(pr_line_items, record)

    lines = validate_lines(lines)
    request_item_ids = {li.item_id for li in pr_line_items}
    unknown = sorted(line.item_id for line in lines if line.item_id not in request_item_ids)
    if unknown:
        raise ValidationError(f"Items not on the purchase request: {unknown}")

    discount = parse_discount(record.quotation.discount_percent) if record else ZERO
    total = compute_po_total(lines, discount)

    po = PurchaseOrder(
        po_number=await _generate_po_number(session),
        pr_id=pr.id,
        supplier_id=supplier_id,
        status="AWARDED",
        total_amount=total,
        discount_percent=discount,
        currency=pr.currency,
        created_by=created_by,
    )
    session.add(po)
    await session.flush()

    line_items = _build_line_items(po.id, lines)
    for li in line_items:
        session.add(li)

    request_awarded = mark_awarded(pr)
    await session.flush()

    logger.info(
        "po_created",
        po_id=str(po.id),
        po_number=po.po_number,
        pr_id=str(pr.id),
        supplier_id=supplier_id,
        total=str(po.total_amount),
        request_awarded=request_awarded,
    )
    return po, line_items


async def update_lines(
    session: AsyncSession,
    po: PurchaseOrder,
    lines: Sequence[AwardLine],
) -> list[PoLineItem]:
    """Replace the order's lines and recompute its total without any discount."""
    if po.status == "COMPLETED":
        raise StateError("Completed purchase orders cannot be edited")
    lines = validate_lines(lines)
    total = compute_subtotal(lines)

    for li in await get_po_line_items(session, po.id):
        await session.delete(li)
    await session.flush()

    line_items = _build_line_items(po.id, lines)
    for li in line_items:
        session.add(li)
    po.total_amount = total
    await session.flush()

    logger.info("po_updated", po_id=str(po.id), total=str(po.total_amount))
    return line_items


def complete(po: PurchaseOrder) -> None:
    if po.status != "AWARDED":
        raise StateError(f"Only AWARDED purchase orders can be completed (currently {po.status})")
    po.status = "COMPLETED"
    po.completed_at = datetime.utcnow()
