"""
Approval service: sequential, role-gated approval of purchase requests.

A request's chain is the ordered list of its Approval rows (approval_level
1..n). The step awaiting action is never stored: it is always recomputed as
the first PENDING step, and a REJECTED step anywhere freezes the chain.

Status transitions driven here:
  DRAFT -> PENDING_APPROVAL          (submit)
  PENDING_APPROVAL -> APPROVED       (approve on the last step)
  PENDING_APPROVAL -> REJECTED       (reject on any step, terminal)

The pure functions validate everything before mutating, so a raised error
leaves the request and its steps untouched.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from orgaflow.errors import PermissionDeniedError, StateError, ValidationError
from orgaflow.models.approval import Approval
from orgaflow.models.purchase_request import PurchaseRequest
from orgaflow.services.workflow_service import WorkflowSnapshot

logger = structlog.get_logger()

APPROVAL_ACTIONS = ("approve", "reject")


@dataclass
class Actor:
    user_id: str
    name: str
    role_id: str

    @classmethod
    def from_claims(cls, current_user: dict) -> "Actor":
        return cls(
            user_id=str(current_user["user_id"]),
            name=current_user.get("name") or current_user.get("email") or "",
            role_id=current_user["role"],
        )


@dataclass
class ApprovalResult:
    is_final: bool
    is_rejected: bool
    step: Approval
    next_approval: Optional[Approval] = None


# ---------- pure engine ----------


def build_approval_chain(pr_id, role_ids: Sequence[str]) -> list[Approval]:
    """One PENDING step per role, in registry order."""
    return [
        Approval(
            pr_id=pr_id,
            approval_level=level,
            role_id=role_id,
            status="PENDING",
        )
        for level, role_id in enumerate(role_ids, start=1)
    ]


def find_current_step(steps: Sequence[Approval]) -> Optional[int]:
    """Index of the first PENDING step, or None when resolved or rejected."""
    if any(s.status == "REJECTED" for s in steps):
        return None
    for index, step in enumerate(steps):
        if step.status == "PENDING":
            return index
    return None


def can_act(steps: Sequence[Approval], role_id: str) -> bool:
    index = find_current_step(steps)
    return index is not None and steps[index].role_id == role_id


def is_awaiting_role(pr: PurchaseRequest, steps: Sequence[Approval], role_id: str) -> bool:
    return pr.status == "PENDING_APPROVAL" and can_act(steps, role_id)


def submit(
    pr: PurchaseRequest,
    line_items: Sequence,
    snapshot: WorkflowSnapshot,
) -> list[Approval]:
    """Freeze the registry snapshot into the request and move it to PENDING_APPROVAL."""
    if pr.status != "DRAFT":
        raise StateError("Can only submit purchase requests in DRAFT status")
    if not line_items:
        raise ValidationError("Cannot submit a purchase request with no line items")
    if not snapshot.role_ids:
        raise ValidationError("The approval workflow has no steps configured")

    steps = build_approval_chain(pr.id, snapshot.role_ids)
    pr.status = "PENDING_APPROVAL"
    pr.workflow_version = snapshot.version
    pr.submitted_at = datetime.utcnow()
    return steps


def _current_step_for(
    pr: PurchaseRequest, steps: Sequence[Approval], actor: Actor
) -> int:
    if pr.status != "PENDING_APPROVAL":
        raise StateError(
            f"Purchase request is {pr.status}; only PENDING_APPROVAL requests can be acted on"
        )
    index = find_current_step(steps)
    if index is None:
        raise StateError("No pending approval step found")
    if steps[index].role_id != actor.role_id:
        raise PermissionDeniedError(
            f"Step {index + 1} awaits role '{steps[index].role_id}', "
            f"not '{actor.role_id}'"
        )
    return index


def _stamp(step: Approval, actor: Actor, status: str, comments: Optional[str]) -> None:
    step.status = status
    step.actor_id = actor.user_id
    step.actor_name = actor.name
    step.acted_at = datetime.utcnow()
    step.comments = comments


def approve(
    pr: PurchaseRequest,
    steps: Sequence[Approval],
    actor: Actor,
    comment: Optional[str] = None,
) -> ApprovalResult:
    index = _current_step_for(pr, steps, actor)
    step = steps[index]
    _stamp(step, actor, "APPROVED", comment.strip() if comment and comment.strip() else None)

    if index == len(steps) - 1:
        pr.status = "APPROVED"
        pr.approved_at = step.acted_at
        return ApprovalResult(is_final=True, is_rejected=False, step=step)

    return ApprovalResult(
        is_final=False,
        is_rejected=False,
        step=step,
        next_approval=steps[index + 1],
    )


def reject(
    pr: PurchaseRequest,
    steps: Sequence[Approval],
    actor: Actor,
    comments: Optional[str],
) -> ApprovalResult:
    """Reject at the current step. Later steps stay PENDING and are never actionable."""
    index = _current_step_for(pr, steps, actor)
    if not comments or not comments.strip():
        raise ValidationError("A rejection reason is required")

    step = steps[index]
    _stamp(step, actor, "REJECTED", comments.strip())
    pr.status = "REJECTED"
    pr.rejected_at = step.acted_at
    return ApprovalResult(is_final=False, is_rejected=True, step=step)


# ---------- persistence ----------


async def get_approval_steps(session: AsyncSession, pr_id) -> list[Approval]:
    result = await session.execute(
        select(Approval)
        .where(Approval.pr_id == pr_id)
        .order_by(Approval.approval_level)
    )
    return list(result.scalars().all())


async def create_approval_workflow(
    session: AsyncSession,
    pr: PurchaseRequest,
    line_items: Sequence,
    snapshot: WorkflowSnapshot,
) -> list[Approval]:
    """Submit the request and persist its PENDING steps."""
    steps = submit(pr, line_items, snapshot)
    for step in steps:
        session.add(step)
    await session.flush()

    logger.info(
        "approval_workflow_created",
        pr_id=str(pr.id),
        workflow_version=snapshot.version,
        steps=len(steps),
    )
    return steps


async def process_approval(
    session: AsyncSession,
    pr: PurchaseRequest,
    actor: Actor,
    action: str,
    comment: Optional[str] = None,
) -> ApprovalResult:
    """
    Approve or reject the current step of a request.

    Raises StateError when the request is not awaiting approval,
    PermissionDeniedError when the actor's role is not the current step's,
    ValidationError for a rejection without a reason.
    """
    if action not in APPROVAL_ACTIONS:
        raise ValidationError(f"Unknown approval action '{action}'")

    steps = await get_approval_steps(session, pr.id)
    if action == "reject":
        result = reject(pr, steps, actor, comment)
    else:
        result = approve(pr, steps, actor, comment)
    await session.flush()

    logger.info(
        "approval_step_processed",
        pr_id=str(pr.id),
        action=action,
        level=result.step.approval_level,
        role=actor.role_id,
        actor=actor.user_id,
        is_final=result.is_final,
        rejected=result.is_rejected,
        next_role=result.next_approval.role_id if result.next_approval else None,
    )
    return result
