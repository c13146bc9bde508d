from decimal import Decimal
from typing import Dict, List, Optional, Union
from pydantic import BaseModel, Field

# Prices and discounts may arrive as numbers or loosely typed strings
# ("", "12.5"); the price comparison service parses them.
LooseNumber = Optional[Union[Decimal, str]]


class PriceAnalysisInput(BaseModel):
    supplier_ids: List[str] = Field(default_factory=list, max_length=50)
    prices: Dict[str, Dict[str, LooseNumber]] = Field(default_factory=dict)
    discounts: Dict[str, LooseNumber] = Field(default_factory=dict)


class ComparisonRowResponse(BaseModel):
    item_id: str
    quantity: int
    prices: Dict[str, Decimal]
    lowest_price: Decimal
    lowest_supplier_ids: List[str]


class PriceComparisonResponse(BaseModel):
    purchase_request_id: str
    currency: str
    supplier_ids: List[str]
    rows: List[ComparisonRowResponse]
    totals: Dict[str, Decimal]
    discounts: Dict[str, Decimal]
    final_totals: Dict[str, Decimal]
    best_supplier_ids: List[str]


class QuotationItemResponse(BaseModel):
    item_id: str
    price: Decimal


class QuotationResponse(BaseModel):
    id: str
    purchase_request_id: str
    supplier_id: str
    discount_percent: Decimal
    quotation_date: Optional[str] = None
    items: List[QuotationItemResponse] = []
