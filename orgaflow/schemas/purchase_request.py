from datetime import date
from typing import List, Literal, Optional
from pydantic import BaseModel, Field, field_validator

from orgaflow.schemas.approval import ApprovalStepResponse

Currency = Literal["ILS", "USD", "EUR"]
PurchaseMethod = Literal["DIRECT", "QUOTATION", "TENDER"]


class PrLineItemCreate(BaseModel):
    item_id: str = Field(..., min_length=1, max_length=64)
    quantity: int = Field(..., ge=1, le=999999)


def _unique_items(line_items):
    if line_items is None:
        return line_items
    seen = set()
    for li in line_items:
        if li.item_id in seen:
            raise ValueError(f"item '{li.item_id}' appears more than once")
        seen.add(li.item_id)
    return line_items


class PurchaseRequestCreate(BaseModel):
    project_id: str = Field(..., min_length=1, max_length=64)
    name_ar: str = Field(..., min_length=1, max_length=300)
    name_en: str = Field(..., min_length=1, max_length=300)
    currency: Currency = "ILS"
    purchase_method: PurchaseMethod = "DIRECT"
    request_date: Optional[date] = None
    publication_date: Optional[date] = None
    deadline_date: Optional[date] = None
    line_items: List[PrLineItemCreate] = Field(default_factory=list, max_length=200)

    @field_validator("line_items")
    @classmethod
    def check_unique_items(cls, v):
        return _unique_items(v)


class PurchaseRequestUpdate(BaseModel):
    project_id: Optional[str] = Field(None, min_length=1, max_length=64)
    name_ar: Optional[str] = Field(None, min_length=1, max_length=300)
    name_en: Optional[str] = Field(None, min_length=1, max_length=300)
    currency: Optional[Currency] = None
    purchase_method: Optional[PurchaseMethod] = None
    request_date: Optional[date] = None
    publication_date: Optional[date] = None
    deadline_date: Optional[date] = None
    line_items: Optional[List[PrLineItemCreate]] = Field(None, max_length=200)

    @field_validator("line_items")
    @classmethod
    def check_unique_items(cls, v):
        return _unique_items(v)


class PrLineItemResponse(BaseModel):
    id: str
    line_number: int
    item_id: str
    quantity: int

    model_config = {"from_attributes": True}


class NoteCreate(BaseModel):
    text: str = Field(..., min_length=1, max_length=2000)


class NoteResponse(BaseModel):
    id: str
    text: str
    author_id: str
    author_name: str
    created_at: str


class PurchaseRequestResponse(BaseModel):
    id: str
    request_code: str
    project_id: str
    name_ar: str
    name_en: str
    currency: str
    purchase_method: str
    request_date: Optional[str] = None
    publication_date: Optional[str] = None
    deadline_date: Optional[str] = None
    requester_id: str
    requester_name: str
    status: str
    workflow_version: Optional[int] = None
    line_items: List[PrLineItemResponse] = []
    notes: List[NoteResponse] = []
    approvals: List[ApprovalStepResponse] = []
    current_step_index: Optional[int] = None
    can_act: bool = False
    created_at: str
    updated_at: str
    submitted_at: Optional[str] = None
    approved_at: Optional[str] = None
    rejected_at: Optional[str] = None
    awarded_at: Optional[str] = None

    model_config = {"from_attributes": True}


class ApproveRequest(BaseModel):
    comment: Optional[str] = Field(None, max_length=1000)


class RejectRequest(BaseModel):
    # Blank reasons reach the engine, which rejects them with VALIDATION_ERROR
    comments: str = Field("", max_length=1000)
