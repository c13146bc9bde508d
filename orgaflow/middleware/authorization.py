from fastapi import Depends

from orgaflow.config import settings
from orgaflow.errors import PermissionDeniedError
from orgaflow.middleware.auth import get_current_user


def _check_role(current_user: dict, allowed) -> None:
    if current_user["role"] not in allowed:
        raise PermissionDeniedError(
            f"Role '{current_user['role']}' cannot perform this action. Required: {tuple(allowed)}",
            code="INSUFFICIENT_PERMISSIONS",
        )


async def require_workflow_admin(current_user: dict = Depends(get_current_user)):
    """Registry edits are limited to WORKFLOW_ADMIN_ROLES, read at call time."""
    _check_role(current_user, settings.workflow_admin_roles_list)
    return None


async def require_procurement_role(current_user: dict = Depends(get_current_user)):
    """
    Saving quotations and issuing, editing, completing or deleting purchase
    orders is limited to PROCUREMENT_ROLES.
    """
    _check_role(current_user, settings.procurement_roles_list)
    return None


def check_requester(current_user: dict, requester_id: str, action: str):
    """Drafts are owned by their requester; only they may change them."""
    if str(current_user["user_id"]) != str(requester_id):
        raise PermissionDeniedError(
            f"Only the requester can {action} this purchase request",
            code="INSUFFICIENT_PERMISSIONS",
        )
