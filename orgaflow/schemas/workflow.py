from typing import List, Literal
from pydantic import BaseModel, Field


class WorkflowResponse(BaseModel):
    version: int
    role_ids: List[str]


class WorkflowReplace(BaseModel):
    role_ids: List[str] = Field(default_factory=list, max_length=50)


class WorkflowStepAdd(BaseModel):
    role_id: str = Field(..., max_length=64)


class WorkflowStepMove(BaseModel):
    direction: Literal["up", "down"]
