from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import select, func, or_
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from orgaflow.database import get_db
from orgaflow.middleware.auth import get_current_user
from orgaflow.middleware.authorization import check_requester
from orgaflow.models.approval import Approval
from orgaflow.models.purchase_request import PurchaseRequest, PrLineItem, PrNote
from orgaflow.schemas.approval import ApprovalStepResponse
from orgaflow.schemas.common import PaginatedResponse, build_pagination, page_offset
from orgaflow.schemas.purchase_request import (
    ApproveRequest,
    NoteCreate,
    NoteResponse,
    PrLineItemResponse,
    PurchaseRequestCreate,
    PurchaseRequestResponse,
    PurchaseRequestUpdate,
    RejectRequest,
)
from orgaflow.services import purchase_request_service as pr_service
from orgaflow.services.approval_service import (
    Actor,
    create_approval_workflow,
    find_current_step,
    get_approval_steps,
    is_awaiting_role,
    process_approval,
)
from orgaflow.services.audit_service import create_audit_log
from orgaflow.services.workflow_service import get_current_snapshot

logger = structlog.get_logger()
router = APIRouter()


def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None


def _line_to_response(li: PrLineItem) -> PrLineItemResponse:
    return PrLineItemResponse(
        id=str(li.id),
        line_number=li.line_number,
        item_id=li.item_id,
        quantity=li.quantity,
    )


def _note_to_response(note: PrNote) -> NoteResponse:
    return NoteResponse(
        id=str(note.id),
        text=note.text,
        author_id=note.author_id,
        author_name=note.author_name,
        created_at=_iso(note.created_at) or "",
    )


def step_to_response(step: Approval) -> ApprovalStepResponse:
    return ApprovalStepResponse(
        id=str(step.id),
        approval_level=step.approval_level,
        role_id=step.role_id,
        status=step.status,
        actor_id=step.actor_id,
        actor_name=step.actor_name,
        comments=step.comments,
        acted_at=_iso(step.acted_at),
    )


def to_response(
    pr: PurchaseRequest,
    line_items: list[PrLineItem],
    notes: Optional[list[PrNote]] = None,
    steps: Optional[list[Approval]] = None,
    role_id: Optional[str] = None,
) -> PurchaseRequestResponse:
    steps = steps or []
    return PurchaseRequestResponse(
        id=str(pr.id),
        request_code=pr.request_code,
        project_id=pr.project_id,
        name_ar=pr.name_ar,
        name_en=pr.name_en,
        currency=pr.currency,
        purchase_method=pr.purchase_method,
        request_date=_iso(pr.request_date),
        publication_date=_iso(pr.publication_date),
        deadline_date=_iso(pr.deadline_date),
        requester_id=pr.requester_id,
        requester_name=pr.requester_name,
        status=pr.status,
        workflow_version=pr.workflow_version,
        line_items=[_line_to_response(li) for li in line_items],
        notes=[_note_to_response(n) for n in notes or []],
        approvals=[step_to_response(s) for s in steps],
        current_step_index=find_current_step(steps),
        can_act=bool(role_id) and is_awaiting_role(pr, steps, role_id),
        created_at=_iso(pr.created_at) or "",
        updated_at=_iso(pr.updated_at) or "",
        submitted_at=_iso(pr.submitted_at),
        approved_at=_iso(pr.approved_at),
        rejected_at=_iso(pr.rejected_at),
        awarded_at=_iso(pr.awarded_at),
    )


async def _full_response(
    db: AsyncSession, pr: PurchaseRequest, current_user: dict
) -> PurchaseRequestResponse:
    line_items = await pr_service.get_line_items(db, pr.id)
    notes = await pr_service.get_notes(db, pr.id)
    steps = await get_approval_steps(db, pr.id)
    return to_response(pr, line_items, notes, steps, current_user["role"])


# ---------- LIST / GET ----------


@router.get("", response_model=PaginatedResponse[PurchaseRequestResponse])
async def list_purchase_requests(
    page: int = Query(1, ge=1, le=1000),
    limit: int = Query(20, ge=1, le=100),
    pr_status: str = Query(None, alias="status"),
    project_id: str = Query(None),
    mine: bool = Query(False),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    filters = [
        PurchaseRequest.deleted_at == None,  # noqa: E711
        or_(
            PurchaseRequest.status != "DRAFT",
            PurchaseRequest.requester_id == current_user["user_id"],
        ),
    ]
    if pr_status:
        filters.append(PurchaseRequest.status == pr_status)
    if project_id:
        filters.append(PurchaseRequest.project_id == project_id)
    if mine:
        filters.append(PurchaseRequest.requester_id == current_user["user_id"])

    total = (await db.execute(select(func.count(PurchaseRequest.id)).where(*filters))).scalar() or 0
    result = await db.execute(
        select(PurchaseRequest)
        .where(*filters)
        .order_by(PurchaseRequest.created_at.desc())
        .offset(page_offset(page, limit))
        .limit(limit)
    )
    prs = result.scalars().all()

    # Batch load line items and steps to avoid N+1
    pr_ids = [pr.id for pr in prs]
    li_map: dict = {}
    step_map: dict = {}
    if pr_ids:
        li_result = await db.execute(
            select(PrLineItem)
            .where(PrLineItem.pr_id.in_(pr_ids))
            .order_by(PrLineItem.pr_id, PrLineItem.line_number)
        )
        for li in li_result.scalars().all():
            li_map.setdefault(str(li.pr_id), []).append(li)
        step_result = await db.execute(
            select(Approval)
            .where(Approval.pr_id.in_(pr_ids))
            .order_by(Approval.pr_id, Approval.approval_level)
        )
        for step in step_result.scalars().all():
            step_map.setdefault(str(step.pr_id), []).append(step)

    items = [
        to_response(
            pr,
            li_map.get(str(pr.id), []),
            steps=step_map.get(str(pr.id), []),
            role_id=current_user["role"],
        )
        for pr in prs
    ]
    logger.info("pr_list_result", count=len(items), total=total)
    return PaginatedResponse(data=items, pagination=build_pagination(page, limit, total))


@router.get("/{pr_id}", response_model=PurchaseRequestResponse)
async def get_purchase_request(
    pr_id: str,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    pr = await pr_service.get_visible_purchase_request(db, pr_id, current_user)
    return await _full_response(db, pr, current_user)


# ---------- CREATE / UPDATE / DELETE ----------


@router.post("", response_model=PurchaseRequestResponse, status_code=status.HTTP_201_CREATED)
async def create_purchase_request(
    body: PurchaseRequestCreate,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    fields = body.model_dump(exclude={"line_items"})
    pr, line_items = await pr_service.create_draft(db, current_user, fields, body.line_items)

    await create_audit_log(
        db,
        actor_id=current_user["user_id"],
        actor_name=current_user["name"],
        action="PR_CREATED",
        entity_type="PR",
        entity_id=pr.id,
        after_state=pr_service.snapshot_state(pr),
    )
    return to_response(pr, line_items, role_id=current_user["role"])


@router.put("/{pr_id}", response_model=PurchaseRequestResponse)
async def update_purchase_request(
    pr_id: str,
    body: PurchaseRequestUpdate,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    pr = await pr_service.get_visible_purchase_request(db, pr_id, current_user)
    check_requester(current_user, pr.requester_id, "update")

    before = pr_service.snapshot_state(pr)
    await pr_service.update_draft(
        db, pr, body.model_dump(exclude={"line_items"}, exclude_unset=True), body.line_items
    )

    await create_audit_log(
        db,
        actor_id=current_user["user_id"],
        actor_name=current_user["name"],
        action="PR_UPDATED",
        entity_type="PR",
        entity_id=pr.id,
        before_state=before,
        after_state=pr_service.snapshot_state(pr),
    )
    return await _full_response(db, pr, current_user)


@router.delete("/{pr_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_purchase_request(
    pr_id: str,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    pr = await pr_service.get_visible_purchase_request(db, pr_id, current_user)
    pr_service.check_draft(pr, "delete")
    check_requester(current_user, pr.requester_id, "delete")

    before = pr_service.snapshot_state(pr)
    pr.deleted_at = datetime.utcnow()

    await create_audit_log(
        db,
        actor_id=current_user["user_id"],
        actor_name=current_user["name"],
        action="PR_DELETED",
        entity_type="PR",
        entity_id=pr.id,
        before_state=before,
        after_state=pr_service.snapshot_state(pr),
    )
    await db.flush()


@router.post("/{pr_id}/notes", response_model=NoteResponse, status_code=status.HTTP_201_CREATED)
async def add_note(
    pr_id: str,
    body: NoteCreate,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    pr = await pr_service.get_visible_purchase_request(db, pr_id, current_user)
    note = await pr_service.add_note(db, pr, body.text, current_user)
    return _note_to_response(note)


# ---------- SUBMIT / APPROVE / REJECT ----------


@router.post("/{pr_id}/submit", response_model=PurchaseRequestResponse)
async def submit_purchase_request(
    pr_id: str,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    logger.info("pr_submit_request", pr_id=pr_id, user=current_user["user_id"])
    pr = await pr_service.get_visible_purchase_request(db, pr_id, current_user)
    check_requester(current_user, pr.requester_id, "submit")

    line_items = await pr_service.get_line_items(db, pr.id)
    snapshot = await get_current_snapshot(db)

    before = {"status": pr.status}
    await create_approval_workflow(db, pr, line_items, snapshot)

    await create_audit_log(
        db,
        actor_id=current_user["user_id"],
        actor_name=current_user["name"],
        action="PR_SUBMITTED",
        entity_type="PR",
        entity_id=pr.id,
        before_state=before,
        after_state={"status": pr.status, "workflow_version": pr.workflow_version},
    )
    logger.info("pr_submitted", pr_id=str(pr.id), request_code=pr.request_code)
    return await _full_response(db, pr, current_user)


@router.post("/{pr_id}/approve", response_model=PurchaseRequestResponse)
async def approve_purchase_request(
    pr_id: str,
    body: ApproveRequest,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    pr = await pr_service.get_visible_purchase_request(db, pr_id, current_user)

    before = {"status": pr.status}
    result = await process_approval(db, pr, Actor.from_claims(current_user), "approve", body.comment)

    await create_audit_log(
        db,
        actor_id=current_user["user_id"],
        actor_name=current_user["name"],
        action="PR_APPROVED" if result.is_final else "PR_APPROVAL_STEP",
        entity_type="PR",
        entity_id=pr.id,
        before_state=before,
        after_state={
            "status": pr.status,
            "approved_level": result.step.approval_level,
            "next_role": result.next_approval.role_id if result.next_approval else None,
        },
    )
    return await _full_response(db, pr, current_user)


@router.post("/{pr_id}/reject", response_model=PurchaseRequestResponse)
async def reject_purchase_request(
    pr_id: str,
    body: RejectRequest,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    pr = await pr_service.get_visible_purchase_request(db, pr_id, current_user)

    before = {"status": pr.status}
    result = await process_approval(db, pr, Actor.from_claims(current_user), "reject", body.comments)

    await create_audit_log(
        db,
        actor_id=current_user["user_id"],
        actor_name=current_user["name"],
        action="PR_REJECTED",
        entity_type="PR",
        entity_id=pr.id,
        before_state=before,
        after_state={
            "status": pr.status,
            "rejected_level": result.step.approval_level,
            "comments": result.step.comments,
        },
    )
    logger.info("pr_rejected", pr_id=str(pr.id), by=current_user["user_id"])
    return await _full_response(db, pr, current_user)
