"""Activity log: one row per state change of a request, workflow, quotation or order."""

from typing import Any, Optional
from datetime import datetime
import uuid

from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from orgaflow.models.audit_log import AuditLog

logger = structlog.get_logger()


def _to_entity_uuid(value) -> uuid.UUID:
    try:
        return uuid.UUID(str(value))
    except (ValueError, TypeError):
        raise ValueError(f"entity_id must be a valid UUID, got {value!r}")


def _jsonable(state: Optional[dict]) -> Optional[dict]:
    """Stringify values JSONB can't hold (datetimes, Decimals, UUIDs)."""
    if state is None:
        return None

    def convert(value: Any):
        if isinstance(value, dict):
            return {k: convert(v) for k, v in value.items()}
        if isinstance(value, (list, tuple)):
            return [convert(v) for v in value]
        if value is None or isinstance(value, (str, int, float, bool)):
            return value
        if isinstance(value, datetime):
            return value.isoformat()
        return str(value)

    return convert(state)


def compute_changed_fields(
    before: Optional[dict], after: Optional[dict]
) -> Optional[list[str]]:
    """Diff two state dicts and return list of changed field names."""
    if not before or not after:
        return None
    changed = []
    for key in sorted(set(before) | set(after)):
        if before.get(key) != after.get(key):
            changed.append(key)
    return changed or None


async def create_audit_log(
    session: AsyncSession,
    actor_id: Optional[str],
    action: str,
    entity_type: str,
    entity_id,
    before_state: Optional[dict] = None,
    after_state: Optional[dict] = None,
    actor_name: Optional[str] = None,
) -> AuditLog:
    """
    Create an audit log entry.

    Uses session.flush(): caller owns the transaction.
    """
    before_state = _jsonable(before_state)
    after_state = _jsonable(after_state)
    request_id = structlog.contextvars.get_contextvars().get("request_id")

    audit = AuditLog(
        actor_id=str(actor_id) if actor_id is not None else None,
        actor_name=actor_name,
        action=action,
        entity_type=entity_type,
        entity_id=_to_entity_uuid(entity_id),
        before_state=before_state,
        after_state=after_state,
        changed_fields=compute_changed_fields(before_state, after_state),
        request_id=request_id,
        created_at=datetime.utcnow(),
    )
    session.add(audit)
    await session.flush()

    logger.info(
        "audit_log_created",
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id),
        actor_id=actor_id,
    )
    return audit
