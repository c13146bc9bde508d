from decimal import Decimal
from typing import List, Optional
from pydantic import BaseModel, Field


class PoLineItemCreate(BaseModel):
    item_id: str = Field(..., min_length=1, max_length=64)
    quantity: int = Field(..., ge=1, le=999999)
    price: Decimal = Field(..., ge=0, lt=Decimal(10) ** 10, decimal_places=4)


class PurchaseOrderCreate(BaseModel):
    purchase_request_id: str
    supplier_id: str = Field(..., min_length=1, max_length=64)
    line_items: Optional[List[PoLineItemCreate]] = Field(None, max_length=200)


class PurchaseOrderUpdate(BaseModel):
    line_items: List[PoLineItemCreate] = Field(..., min_length=1, max_length=200)


class PoLineItemResponse(BaseModel):
    id: str
    line_number: int
    item_id: str
    quantity: int
    price: Decimal

    model_config = {"from_attributes": True}


class PurchaseOrderResponse(BaseModel):
    id: str
    po_number: str
    purchase_request_id: str
    supplier_id: str
    status: str
    total_amount: Decimal
    discount_percent: Decimal
    currency: str
    created_by: str
    line_items: List[PoLineItemResponse] = []
    created_at: str
    updated_at: str
    completed_at: Optional[str] = None

    model_config = {"from_attributes": True}
