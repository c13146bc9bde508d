from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from orgaflow.database import get_db
from orgaflow.errors import ValidationError
from orgaflow.middleware.auth import get_current_user
from orgaflow.middleware.authorization import require_procurement_role
from orgaflow.models.purchase_order import PO_STATUSES, PurchaseOrder, PoLineItem
from orgaflow.schemas.common import PaginatedResponse, build_pagination, page_offset
from orgaflow.schemas.purchase_order import (
    PoLineItemResponse,
    PurchaseOrderCreate,
    PurchaseOrderResponse,
    PurchaseOrderUpdate,
)
from orgaflow.services import purchase_order_service as po_service
from orgaflow.services import purchase_request_service as pr_service
from orgaflow.services.audit_service import create_audit_log
from orgaflow.services.purchase_order_service import AwardLine

logger = structlog.get_logger()
router = APIRouter()


def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None


def _line_to_response(li: PoLineItem) -> PoLineItemResponse:
    return PoLineItemResponse(
        id=str(li.id),
        line_number=li.line_number,
        item_id=li.item_id,
        quantity=li.quantity,
        price=li.price,
    )


def _to_response(po: PurchaseOrder, line_items: list[PoLineItem]) -> PurchaseOrderResponse:
    return PurchaseOrderResponse(
        id=str(po.id),
        po_number=po.po_number,
        purchase_request_id=str(po.pr_id),
        supplier_id=po.supplier_id,
        status=po.status,
        total_amount=po.total_amount,
        discount_percent=po.discount_percent,
        currency=po.currency,
        created_by=po.created_by,
        line_items=[_line_to_response(li) for li in line_items],
        created_at=_iso(po.created_at) or "",
        updated_at=_iso(po.updated_at) or "",
        completed_at=_iso(po.completed_at),
    )


def _po_state(po: PurchaseOrder) -> dict:
    return {
        "status": po.status,
        "total_amount": po.total_amount,
        "deleted_at": po.deleted_at,
    }


async def _get_po(db: AsyncSession, po_id: str) -> PurchaseOrder:
    result = await db.execute(
        select(PurchaseOrder).where(
            PurchaseOrder.id == pr_service.parse_uuid(po_id, "Purchase order"),
            PurchaseOrder.deleted_at == None,  # noqa: E711
        )
    )
    po = result.scalar_one_or_none()
    if not po:
        raise HTTPException(status_code=404, detail="Purchase order not found")
    return po


def _award_lines(items) -> list[AwardLine]:
    return [AwardLine(item_id=li.item_id, quantity=li.quantity, price=li.price) for li in items]


# ---------- LIST / GET ----------


@router.get("", response_model=PaginatedResponse[PurchaseOrderResponse])
async def list_purchase_orders(
    page: int = Query(1, ge=1, le=1000),
    limit: int = Query(20, ge=1, le=100),
    po_status: str = Query(None, alias="status"),
    purchase_request_id: str = Query(None),
    supplier_id: str = Query(None),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    filters = [PurchaseOrder.deleted_at == None]  # noqa: E711
    if po_status:
        if po_status not in PO_STATUSES:
            raise ValidationError(f"status must be one of {PO_STATUSES}, got '{po_status}'")
        filters.append(PurchaseOrder.status == po_status)
    if purchase_request_id:
        filters.append(PurchaseOrder.pr_id == pr_service.parse_uuid(purchase_request_id))
    if supplier_id:
        filters.append(PurchaseOrder.supplier_id == supplier_id)

    total = (await db.execute(select(func.count(PurchaseOrder.id)).where(*filters))).scalar() or 0
    result = await db.execute(
        select(PurchaseOrder)
        .where(*filters)
        .order_by(PurchaseOrder.created_at.desc())
        .offset(page_offset(page, limit))
        .limit(limit)
    )
    pos = result.scalars().all()

    po_ids = [po.id for po in pos]
    li_map: dict = {}
    if po_ids:
        li_result = await db.execute(
            select(PoLineItem)
            .where(PoLineItem.po_id.in_(po_ids))
            .order_by(PoLineItem.po_id, PoLineItem.line_number)
        )
        for li in li_result.scalars().all():
            li_map.setdefault(str(li.po_id), []).append(li)

    items = [_to_response(po, li_map.get(str(po.id), [])) for po in pos]
    return PaginatedResponse(data=items, pagination=build_pagination(page, limit, total))


@router.get("/{po_id}", response_model=PurchaseOrderResponse)
async def get_purchase_order(
    po_id: str,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    po = await _get_po(db, po_id)
    return _to_response(po, await po_service.get_po_line_items(db, po.id))


# ---------- CREATE (award) ----------


@router.post("", response_model=PurchaseOrderResponse, status_code=status.HTTP_201_CREATED)
async def create_purchase_order(
    body: PurchaseOrderCreate,
    current_user: dict = Depends(get_current_user),
    _auth: None = Depends(require_procurement_role),
    db: AsyncSession = Depends(get_db),
):
    pr = await pr_service.get_visible_purchase_request(db, body.purchase_request_id, current_user)
    pr_line_items = await pr_service.get_line_items(db, pr.id)
    pr_status_before = pr.status

    po, line_items = await po_service.create_from_award(
        db,
        pr,
        pr_line_items,
        body.supplier_id,
        created_by=current_user["user_id"],
        lines=_award_lines(body.line_items) if body.line_items is not None else None,
    )

    await create_audit_log(
        db,
        actor_id=current_user["user_id"],
        actor_name=current_user["name"],
        action="PO_CREATED",
        entity_type="PO",
        entity_id=po.id,
        after_state={**_po_state(po), "supplier_id": po.supplier_id, "pr_id": po.pr_id},
    )
    if pr.status != pr_status_before:
        await create_audit_log(
            db,
            actor_id=current_user["user_id"],
            actor_name=current_user["name"],
            action="PR_AWARDED",
            entity_type="PR",
            entity_id=pr.id,
            before_state={"status": pr_status_before},
            after_state={"status": pr.status},
        )
    return _to_response(po, line_items)


# ---------- UPDATE / COMPLETE / DELETE ----------


@router.put("/{po_id}", response_model=PurchaseOrderResponse)
async def update_purchase_order(
    po_id: str,
    body: PurchaseOrderUpdate,
    current_user: dict = Depends(get_current_user),
    _auth: None = Depends(require_procurement_role),
    db: AsyncSession = Depends(get_db),
):
    po = await _get_po(db, po_id)
    before = _po_state(po)
    line_items = await po_service.update_lines(db, po, _award_lines(body.line_items))

    await create_audit_log(
        db,
        actor_id=current_user["user_id"],
        actor_name=current_user["name"],
        action="PO_UPDATED",
        entity_type="PO",
        entity_id=po.id,
        before_state=before,
        after_state=_po_state(po),
    )
    return _to_response(po, line_items)


@router.post("/{po_id}/complete", response_model=PurchaseOrderResponse)
async def complete_purchase_order(
    po_id: str,
    current_user: dict = Depends(get_current_user),
    _auth: None = Depends(require_procurement_role),
    db: AsyncSession = Depends(get_db),
):
    po = await _get_po(db, po_id)
    before = _po_state(po)
    po_service.complete(po)

    await create_audit_log(
        db,
        actor_id=current_user["user_id"],
        actor_name=current_user["name"],
        action="PO_COMPLETED",
        entity_type="PO",
        entity_id=po.id,
        before_state=before,
        after_state=_po_state(po),
    )
    logger.info("po_completed", po_id=str(po.id), by=current_user["user_id"])
    return _to_response(po, await po_service.get_po_line_items(db, po.id))


@router.delete("/{po_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_purchase_order(
    po_id: str,
    current_user: dict = Depends(get_current_user),
    _auth: None = Depends(require_procurement_role),
    db: AsyncSession = Depends(get_db),
):
    """Soft delete. The originating request keeps its status."""
    po = await _get_po(db, po_id)
    before = _po_state(po)
    po.deleted_at = datetime.utcnow()

    await create_audit_log(
        db,
        actor_id=current_user["user_id"],
        actor_name=current_user["name"],
        action="PO_DELETED",
        entity_type="PO",
        entity_id=po.id,
        before_state=before,
        after_state=_po_state(po),
    )
    await db.flush()
    logger.info("po_deleted", po_id=str(po.id), by=current_user["user_id"])
