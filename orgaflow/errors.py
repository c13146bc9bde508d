"""
Domain errors raised by the workflow, price-analysis and award services.

Each error is an HTTPException carrying the structured detail
{"error": {"code": ..., "message": ...}} so routes can let them propagate
and the global handler in main.py renders them unchanged. Services raise
before touching any record, so a failed operation leaves state as it was.
"""

from typing import Optional

from fastapi import HTTPException, status

from orgaflow.schemas.common import error_body


class WorkflowError(HTTPException):
    http_status: int = status.HTTP_400_BAD_REQUEST
    default_code: str = "WORKFLOW_ERROR"

    def __init__(self, message: str, code: Optional[str] = None):
        self.code = code or self.default_code
        self.message = message
        super().__init__(
            status_code=self.http_status,
            detail=error_body(self.code, message),
        )

    def __str__(self) -> str:
        return self.message


class ValidationError(WorkflowError):
    """Missing or malformed input: empty items, blank rejection reason, bad prices."""

    http_status = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_code = "VALIDATION_ERROR"


class PermissionDeniedError(WorkflowError):
    """Actor's role does not match the step that is currently awaiting action."""

    http_status = status.HTTP_403_FORBIDDEN
    default_code = "APPROVAL_NOT_YOUR_TURN"


class StateError(WorkflowError):
    """Operation is not allowed while the request is in its current status."""

    http_status = status.HTTP_400_BAD_REQUEST
    default_code = "INVALID_STATE"
