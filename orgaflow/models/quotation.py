import uuid
from datetime import datetime, date
from decimal import Decimal

from sqlalchemy import (
    String,
    Numeric,
    Date,
    DateTime,
    ForeignKey,
    UniqueConstraint,
    CheckConstraint,
    Index,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from orgaflow.database import Base


class SupplierQuotation(Base):
    __tablename__ = "supplier_quotations"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    pr_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("purchase_requests.id", ondelete="CASCADE"),
        nullable=False,
    )
    supplier_id: Mapped[str] = mapped_column(String(64), nullable=False)
    # Percentage 0-100
    discount_percent: Mapped[Decimal] = mapped_column(
        Numeric(5, 2), nullable=False, default=Decimal("0")
    )
    quotation_date: Mapped[date] = mapped_column(Date, default=date.today)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    __table_args__ = (
        UniqueConstraint("pr_id", "supplier_id", name="uq_quotation_supplier"),
        CheckConstraint(
            "discount_percent >= 0 AND discount_percent <= 100",
            name="chk_quotation_discount",
        ),
        Index("idx_quotations_pr", "pr_id"),
    )


class QuotationItem(Base):
    __tablename__ = "quotation_items"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    quotation_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("supplier_quotations.id", ondelete="CASCADE"),
        nullable=False,
    )
    item_id: Mapped[str] = mapped_column(String(64), nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)

    __table_args__ = (
        UniqueConstraint("quotation_id", "item_id", name="uq_quotation_item"),
        CheckConstraint("price >= 0", name="chk_quotation_item_price"),
        Index("idx_quotation_items_quotation", "quotation_id"),
    )
