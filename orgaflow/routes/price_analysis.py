"""
Price analysis routes: supplier quotations for an approved purchase request
and the comparison built from them.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from orgaflow.database import get_db
from orgaflow.middleware.auth import get_current_user
from orgaflow.middleware.authorization import require_procurement_role
from orgaflow.models.purchase_request import PurchaseRequest
from orgaflow.schemas.quotation import (
    ComparisonRowResponse,
    PriceAnalysisInput,
    PriceComparisonResponse,
    QuotationItemResponse,
    QuotationResponse,
)
from orgaflow.services import purchase_request_service as pr_service
from orgaflow.services import quotation_service
from orgaflow.services.audit_service import create_audit_log
from orgaflow.services.price_comparison import (
    PriceComparison,
    compare,
    dedupe_supplier_ids,
    normalize_discounts,
    normalize_price_matrix,
)

logger = structlog.get_logger()
router = APIRouter()


def comparison_to_response(pr: PurchaseRequest, comparison: PriceComparison) -> PriceComparisonResponse:
    return PriceComparisonResponse(
        purchase_request_id=str(pr.id),
        currency=pr.currency,
        supplier_ids=comparison.supplier_ids,
        rows=[
            ComparisonRowResponse(
                item_id=row.item_id,
                quantity=row.quantity,
                prices=row.prices,
                lowest_price=row.lowest_price,
                lowest_supplier_ids=row.lowest_supplier_ids,
            )
            for row in comparison.rows
        ],
        totals=comparison.totals,
        discounts=comparison.discounts,
        final_totals=comparison.final_totals,
        best_supplier_ids=comparison.best_supplier_ids,
    )


def _quotation_to_response(record: quotation_service.QuotationRecord) -> QuotationResponse:
    q = record.quotation
    return QuotationResponse(
        id=str(q.id),
        purchase_request_id=str(q.pr_id),
        supplier_id=q.supplier_id,
        discount_percent=q.discount_percent,
        quotation_date=q.quotation_date.isoformat() if q.quotation_date else None,
        items=[QuotationItemResponse(item_id=i.item_id, price=i.price) for i in record.items],
    )


@router.get("/{pr_id}/quotations", response_model=list[QuotationResponse])
async def list_quotations(
    pr_id: str,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    pr = await pr_service.get_visible_purchase_request(db, pr_id, current_user)
    records = await quotation_service.get_quotations(db, pr.id)
    return [_quotation_to_response(r) for r in records]


@router.get("/{pr_id}/price-analysis", response_model=PriceComparisonResponse)
async def get_price_analysis(
    pr_id: str,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    pr = await pr_service.get_visible_purchase_request(db, pr_id, current_user)
    line_items = await pr_service.get_line_items(db, pr.id)
    comparison = await quotation_service.build_saved_comparison(db, pr, line_items)
    return comparison_to_response(pr, comparison)


@router.post("/{pr_id}/price-analysis/preview", response_model=PriceComparisonResponse)
async def preview_price_analysis(
    pr_id: str,
    body: PriceAnalysisInput,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Compute the comparison for unsaved input. Nothing is written."""
    pr = await pr_service.get_visible_purchase_request(db, pr_id, current_user)
    line_items = await pr_service.get_line_items(db, pr.id)
    comparison = compare(
        line_items,
        dedupe_supplier_ids(body.supplier_ids),
        normalize_price_matrix(body.prices),
        normalize_discounts(body.discounts),
    )
    return comparison_to_response(pr, comparison)


@router.put("/{pr_id}/quotations", response_model=PriceComparisonResponse)
async def save_quotations(
    pr_id: str,
    body: PriceAnalysisInput,
    current_user: dict = Depends(get_current_user),
    _auth: None = Depends(require_procurement_role),
    db: AsyncSession = Depends(get_db),
):
    pr = await pr_service.get_visible_purchase_request(db, pr_id, current_user)
    line_items = await pr_service.get_line_items(db, pr.id)

    before_records = await quotation_service.get_quotations(db, pr.id)
    before = _state(before_records)
    records = await quotation_service.save_quotations(
        db, pr, line_items, body.supplier_ids, body.prices, body.discounts
    )

    await create_audit_log(
        db,
        actor_id=current_user["user_id"],
        actor_name=current_user["name"],
        action="QUOTATIONS_SAVED",
        entity_type="PR",
        entity_id=pr.id,
        before_state=before,
        after_state=_state(records),
    )

    supplier_ids, matrix, discounts = quotation_service.to_price_matrix(records)
    return comparison_to_response(pr, compare(line_items, supplier_ids, matrix, discounts))


def _state(records) -> dict:
    if not records:
        return {"suppliers": []}
    return {
        "suppliers": [r.quotation.supplier_id for r in records],
        "discounts": {r.quotation.supplier_id: r.quotation.discount_percent for r in records},
        "prices": {
            r.quotation.supplier_id: {i.item_id: i.price for i in r.items} for r in records
        },
    }
