"""
Workflow registry: the ordered chain of role ids every new purchase request
must pass through.

The registry is stored as immutable versions. Requests copy the current
snapshot at submission and never read the live registry again, so edits
only affect requests submitted afterwards.
"""

from dataclasses import dataclass
from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from orgaflow.config import settings
from orgaflow.errors import ValidationError
from orgaflow.models.workflow import WorkflowRegistry

logger = structlog.get_logger()

MOVE_DIRECTIONS = ("up", "down")


@dataclass(frozen=True)
class WorkflowSnapshot:
    version: int
    role_ids: tuple[str, ...]


def validate_role_ids(role_ids: Sequence[str]) -> tuple[str, ...]:
    """Strip and check a proposed chain: no blank ids, no duplicates."""
    cleaned = []
    for role_id in role_ids:
        role_id = (role_id or "").strip()
        if not role_id:
            raise ValidationError("Role id cannot be blank")
        if role_id in cleaned:
            raise ValidationError(f"Role '{role_id}' already appears in the approval workflow")
        cleaned.append(role_id)
    return tuple(cleaned)


def add_role(role_ids: Sequence[str], role_id: str) -> tuple[str, ...]:
    return validate_role_ids([*role_ids, role_id])


def remove_role(role_ids: Sequence[str], index: int) -> tuple[str, ...]:
    if index < 0 or index >= len(role_ids):
        raise ValidationError(f"No workflow step at position {index}")
    return tuple(r for i, r in enumerate(role_ids) if i != index)


def move_role(role_ids: Sequence[str], index: int, direction: str) -> tuple[str, ...]:
    """Swap a step with its neighbour. Moving past either end is a no-op."""
    if direction not in MOVE_DIRECTIONS:
        raise ValidationError(f"Direction must be one of {MOVE_DIRECTIONS}")
    if index < 0 or index >= len(role_ids):
        raise ValidationError(f"No workflow step at position {index}")

    target = index - 1 if direction == "up" else index + 1
    if target < 0 or target >= len(role_ids):
        return tuple(role_ids)

    reordered = list(role_ids)
    reordered[index], reordered[target] = reordered[target], reordered[index]
    return tuple(reordered)


def _to_snapshot(row: Optional[WorkflowRegistry]) -> WorkflowSnapshot:
    if row is None:
        return WorkflowSnapshot(version=0, role_ids=tuple(settings.default_workflow_list))
    return WorkflowSnapshot(version=row.version, role_ids=tuple(row.role_ids or ()))


async def get_current_snapshot(session: AsyncSession) -> WorkflowSnapshot:
    """Latest saved version, or the configured default chain (version 0)."""
    result = await session.execute(
        select(WorkflowRegistry).order_by(WorkflowRegistry.version.desc()).limit(1)
    )
    return _to_snapshot(result.scalars().first())


async def save_snapshot(
    session: AsyncSession,
    role_ids: Sequence[str],
    updated_by: Optional[str] = None,
) -> WorkflowSnapshot:
    """Store role_ids as a new registry version. Caller owns the transaction."""
    cleaned = validate_role_ids(role_ids)
    current = await get_current_snapshot(session)

    row = WorkflowRegistry(
        version=current.version + 1,
        role_ids=list(cleaned),
        updated_by=updated_by,
    )
    session.add(row)
    await session.flush()

    logger.info(
        "workflow_registry_saved",
        version=row.version,
        steps=len(cleaned),
        updated_by=updated_by,
    )
    return WorkflowSnapshot(version=row.version, role_ids=cleaned)
