"""
Approvals inbox: requests waiting on the caller's role, and the caller's
own requests with their approval progress.
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from orgaflow.database import get_db
from orgaflow.middleware.auth import get_current_user
from orgaflow.models.approval import Approval
from orgaflow.models.purchase_request import PurchaseRequest
from orgaflow.schemas.approval import PendingApprovalResponse
from orgaflow.schemas.common import PaginatedResponse, build_pagination, page_offset
from orgaflow.services.approval_service import find_current_step, is_awaiting_role

logger = structlog.get_logger()
router = APIRouter()


def _to_pending(pr: PurchaseRequest, steps: list[Approval]) -> PendingApprovalResponse:
    index = find_current_step(steps)
    return PendingApprovalResponse(
        pr_id=str(pr.id),
        request_code=pr.request_code,
        name_en=pr.name_en,
        name_ar=pr.name_ar,
        requester_name=pr.requester_name,
        status=pr.status,
        current_step_index=index,
        current_role_id=steps[index].role_id if index is not None else None,
        total_steps=len(steps),
        submitted_at=pr.submitted_at.isoformat() if pr.submitted_at else None,
    )


async def _load_steps(db: AsyncSession, prs) -> dict:
    step_map: dict = {}
    pr_ids = [pr.id for pr in prs]
    if pr_ids:
        result = await db.execute(
            select(Approval)
            .where(Approval.pr_id.in_(pr_ids))
            .order_by(Approval.pr_id, Approval.approval_level)
        )
        for step in result.scalars().all():
            step_map.setdefault(str(step.pr_id), []).append(step)
    return step_map


@router.get("/pending", response_model=list[PendingApprovalResponse])
async def list_pending_approvals(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """PENDING_APPROVAL requests whose current step belongs to the caller's role."""
    role_id = current_user["role"]

    # Narrow in SQL to requests holding a PENDING step for this role, then
    # keep only those where that step is the current one.
    candidates = (
        select(Approval.pr_id)
        .where(Approval.role_id == role_id, Approval.status == "PENDING")
        .scalar_subquery()
    )
    result = await db.execute(
        select(PurchaseRequest)
        .where(
            PurchaseRequest.status == "PENDING_APPROVAL",
            PurchaseRequest.deleted_at == None,  # noqa: E711
            PurchaseRequest.id.in_(candidates),
        )
        .order_by(PurchaseRequest.submitted_at)
    )
    prs = result.scalars().all()
    step_map = await _load_steps(db, prs)

    pending = [
        _to_pending(pr, step_map.get(str(pr.id), []))
        for pr in prs
        if is_awaiting_role(pr, step_map.get(str(pr.id), []), role_id)
    ]
    logger.info("pending_approvals_listed", role=role_id, count=len(pending))
    return pending


@router.get("/mine", response_model=PaginatedResponse[PendingApprovalResponse])
async def list_my_requests(
    page: int = Query(1, ge=1, le=1000),
    limit: int = Query(20, ge=1, le=100),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    filters = [
        PurchaseRequest.requester_id == current_user["user_id"],
        PurchaseRequest.deleted_at == None,  # noqa: E711
    ]
    total = (await db.execute(select(func.count(PurchaseRequest.id)).where(*filters))).scalar() or 0
    result = await db.execute(
        select(PurchaseRequest)
        .where(*filters)
        .order_by(PurchaseRequest.created_at.desc())
        .offset(page_offset(page, limit))
        .limit(limit)
    )
    prs = result.scalars().all()
    step_map = await _load_steps(db, prs)

    items = [_to_pending(pr, step_map.get(str(pr.id), [])) for pr in prs]
    return PaginatedResponse(data=items, pagination=build_pagination(page, limit, total))
