from typing import Optional
from pydantic import BaseModel


class ApprovalStepResponse(BaseModel):
    id: str
    approval_level: int
    role_id: str
    status: str
    actor_id: Optional[str] = None
    actor_name: Optional[str] = None
    comments: Optional[str] = None
    acted_at: Optional[str] = None

    model_config = {"from_attributes": True}


class PendingApprovalResponse(BaseModel):
    pr_id: str
    request_code: str
    name_en: str
    name_ar: str
    requester_name: str
    status: str
    current_step_index: Optional[int] = None
    current_role_id: Optional[str] = None
    total_steps: int
    submitted_at: Optional[str] = None
