"""
Workflow registry routes: read and edit the approval chain applied to
purchase requests submitted from now on.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from orgaflow.database import get_db
from orgaflow.middleware.auth import get_current_user
from orgaflow.middleware.authorization import require_workflow_admin
from orgaflow.schemas.workflow import (
    WorkflowReplace,
    WorkflowResponse,
    WorkflowStepAdd,
    WorkflowStepMove,
)
from orgaflow.services import workflow_service
from orgaflow.services.audit_service import create_audit_log
from orgaflow.services.workflow_service import WorkflowSnapshot

logger = structlog.get_logger()
router = APIRouter()

# Audit rows need an entity id; the registry is a singleton.
REGISTRY_ENTITY_ID = "00000000-0000-0000-0000-000000000001"


def _to_response(snapshot: WorkflowSnapshot) -> WorkflowResponse:
    return WorkflowResponse(version=snapshot.version, role_ids=list(snapshot.role_ids))


async def _save(
    db: AsyncSession,
    current: WorkflowSnapshot,
    role_ids,
    action: str,
    current_user: dict,
) -> WorkflowResponse:
    if tuple(role_ids) == current.role_ids:
        return _to_response(current)

    saved = await workflow_service.save_snapshot(db, role_ids, updated_by=current_user["user_id"])
    await create_audit_log(
        db,
        actor_id=current_user["user_id"],
        actor_name=current_user["name"],
        action=action,
        entity_type="WORKFLOW",
        entity_id=REGISTRY_ENTITY_ID,
        before_state={"version": current.version, "role_ids": list(current.role_ids)},
        after_state={"version": saved.version, "role_ids": list(saved.role_ids)},
    )
    return _to_response(saved)


@router.get("", response_model=WorkflowResponse)
async def get_workflow(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return _to_response(await workflow_service.get_current_snapshot(db))


@router.put("", response_model=WorkflowResponse)
async def replace_workflow(
    body: WorkflowReplace,
    current_user: dict = Depends(get_current_user),
    _auth: None = Depends(require_workflow_admin),
    db: AsyncSession = Depends(get_db),
):
    current = await workflow_service.get_current_snapshot(db)
    role_ids = workflow_service.validate_role_ids(body.role_ids)
    return await _save(db, current, role_ids, "WORKFLOW_REPLACED", current_user)


@router.post("/steps", response_model=WorkflowResponse)
async def add_workflow_step(
    body: WorkflowStepAdd,
    current_user: dict = Depends(get_current_user),
    _auth: None = Depends(require_workflow_admin),
    db: AsyncSession = Depends(get_db),
):
    current = await workflow_service.get_current_snapshot(db)
    role_ids = workflow_service.add_role(current.role_ids, body.role_id)
    return await _save(db, current, role_ids, "WORKFLOW_STEP_ADDED", current_user)


@router.delete("/steps/{index}", response_model=WorkflowResponse)
async def remove_workflow_step(
    index: int,
    current_user: dict = Depends(get_current_user),
    _auth: None = Depends(require_workflow_admin),
    db: AsyncSession = Depends(get_db),
):
    current = await workflow_service.get_current_snapshot(db)
    role_ids = workflow_service.remove_role(current.role_ids, index)
    return await _save(db, current, role_ids, "WORKFLOW_STEP_REMOVED", current_user)


@router.post("/steps/{index}/move", response_model=WorkflowResponse)
async def move_workflow_step(
    index: int,
    body: WorkflowStepMove,
    current_user: dict = Depends(get_current_user),
    _auth: None = Depends(require_workflow_admin),
    db: AsyncSession = Depends(get_db),
):
    current = await workflow_service.get_current_snapshot(db)
    role_ids = workflow_service.move_role(current.role_ids, index, body.direction)
    return await _save(db, current, role_ids, "WORKFLOW_STEP_MOVED", current_user)
