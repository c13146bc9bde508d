"""Purchase request records: loading, draft editing and notes."""

from datetime import date, datetime
from typing import Optional, Sequence
import uuid

from fastapi import HTTPException
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from orgaflow.errors import StateError, ValidationError
from orgaflow.models.purchase_request import PurchaseRequest, PrLineItem, PrNote

logger = structlog.get_logger()

REQUEST_CODE_PREFIX = "REQ"
EDITABLE_FIELDS = (
    "project_id",
    "name_ar",
    "name_en",
    "currency",
    "purchase_method",
    "request_date",
    "publication_date",
    "deadline_date",
)


def parse_uuid(value: str, label: str = "Purchase request") -> uuid.UUID:
    """Path ids that aren't UUIDs can't match a row: report them as not found."""
    try:
        return uuid.UUID(str(value))
    except (ValueError, TypeError):
        raise HTTPException(status_code=404, detail=f"{label} not found")


def snapshot_state(pr: PurchaseRequest) -> dict:
    return {
        "status": pr.status,
        "workflow_version": pr.workflow_version,
        "deleted_at": pr.deleted_at,
        **{field: getattr(pr, field) for field in EDITABLE_FIELDS},
    }


async def generate_request_code(db: AsyncSession) -> str:
    result = await db.execute(select(func.count(PurchaseRequest.id)))
    count = (result.scalar() or 0) + 1
    return f"{REQUEST_CODE_PREFIX}-{count:06d}"


async def get_purchase_request(db: AsyncSession, pr_id) -> PurchaseRequest:
    result = await db.execute(
        select(PurchaseRequest).where(
            PurchaseRequest.id == parse_uuid(pr_id),
            PurchaseRequest.deleted_at == None,  # noqa: E711
        )
    )
    pr = result.scalar_one_or_none()
    if not pr:
        raise HTTPException(status_code=404, detail="Purchase request not found")
    return pr


async def get_line_items(db: AsyncSession, pr_id) -> list[PrLineItem]:
    result = await db.execute(
        select(PrLineItem).where(PrLineItem.pr_id == pr_id).order_by(PrLineItem.line_number)
    )
    return list(result.scalars().all())


async def get_notes(db: AsyncSession, pr_id) -> list[PrNote]:
    result = await db.execute(
        select(PrNote).where(PrNote.pr_id == pr_id).order_by(PrNote.created_at)
    )
    return list(result.scalars().all())


def check_draft(pr: PurchaseRequest, action: str) -> None:
    if pr.status != "DRAFT":
        raise StateError(f"Can only {action} purchase requests in DRAFT status")


async def replace_line_items(
    db: AsyncSession, pr: PurchaseRequest, items: Sequence
) -> list[PrLineItem]:
    """Swap the request's line items for items ({item_id, quantity} objects)."""
    for li in await get_line_items(db, pr.id):
        await db.delete(li)
    await db.flush()

    line_items = [
        PrLineItem(pr_id=pr.id, line_number=idx, item_id=item.item_id, quantity=item.quantity)
        for idx, item in enumerate(items, start=1)
    ]
    for li in line_items:
        db.add(li)
    await db.flush()
    return line_items


async def create_draft(
    db: AsyncSession,
    current_user: dict,
    fields: dict,
    items: Sequence,
) -> tuple[PurchaseRequest, list[PrLineItem]]:
    pr = PurchaseRequest(
        request_code=await generate_request_code(db),
        requester_id=current_user["user_id"],
        requester_name=current_user["name"],
        status="DRAFT",
        **{k: v for k, v in fields.items() if k in EDITABLE_FIELDS and v is not None},
    )
    if pr.request_date is None:
        pr.request_date = date.today()
    db.add(pr)
    await db.flush()

    line_items = await replace_line_items(db, pr, items) if items else []
    logger.info("pr_created", pr_id=str(pr.id), request_code=pr.request_code, items=len(line_items))
    return pr, line_items


async def update_draft(
    db: AsyncSession,
    pr: PurchaseRequest,
    fields: dict,
    items: Optional[Sequence] = None,
) -> list[PrLineItem]:
    check_draft(pr, "update")
    for field, value in fields.items():
        if field in EDITABLE_FIELDS and value is not None:
            setattr(pr, field, value)
    if items is not None:
        line_items = await replace_line_items(db, pr, items)
    else:
        line_items = await get_line_items(db, pr.id)
    pr.updated_at = datetime.utcnow()
    await db.flush()
    return line_items


async def add_note(
    db: AsyncSession, pr: PurchaseRequest, text: str, current_user: dict
) -> PrNote:
    check_draft(pr, "add notes to")
    if not text or not text.strip():
        raise ValidationError("Note text cannot be blank")
    note = PrNote(
        pr_id=pr.id,
        text=text.strip(),
        author_id=current_user["user_id"],
        author_name=current_user["name"],
        created_at=datetime.utcnow(),
    )
    db.add(note)
    await db.flush()
    logger.info("pr_note_added", pr_id=str(pr.id), author=current_user["user_id"])
    return note


async def get_visible_purchase_request(
    db: AsyncSession, pr_id, current_user: dict
) -> PurchaseRequest:
    """Drafts are private to their requester; everyone else gets a 404."""
    pr = await get_purchase_request(db, pr_id)
    if pr.status == "DRAFT" and pr.requester_id != current_user["user_id"]:
        raise HTTPException(status_code=404, detail="Purchase request not found")
    return pr
