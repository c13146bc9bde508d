import uuid
from datetime import datetime, date
from typing import Optional

from sqlalchemy import (
    String,
    Integer,
    Date,
    DateTime,
    Text,
    ForeignKey,
    UniqueConstraint,
    CheckConstraint,
    Index,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from orgaflow.database import Base

PR_STATUSES = ("DRAFT", "PENDING_APPROVAL", "APPROVED", "REJECTED", "AWARDED")
PURCHASE_METHODS = ("DIRECT", "QUOTATION", "TENDER")
CURRENCIES = ("ILS", "USD", "EUR")


class PurchaseRequest(Base):
    __tablename__ = "purchase_requests"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    request_code: Mapped[str] = mapped_column(
        String(50), unique=True, nullable=False
    )
    project_id: Mapped[str] = mapped_column(String(64), nullable=False)
    name_ar: Mapped[str] = mapped_column(String(300), nullable=False)
    name_en: Mapped[str] = mapped_column(String(300), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="ILS")
    purchase_method: Mapped[str] = mapped_column(String(20), default="DIRECT")
    request_date: Mapped[date] = mapped_column(Date, default=date.today)
    publication_date: Mapped[Optional[date]] = mapped_column(Date)
    deadline_date: Mapped[Optional[date]] = mapped_column(Date)
    requester_id: Mapped[str] = mapped_column(String(64), nullable=False)
    requester_name: Mapped[str] = mapped_column(String(200), nullable=False)
    status: Mapped[str] = mapped_column(String(30), default="DRAFT")
    # Registry version the approval chain was copied from at submission
    workflow_version: Mapped[Optional[int]] = mapped_column(Integer)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )
    submitted_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    rejected_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    awarded_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    __table_args__ = (
        CheckConstraint(
            "status IN ('DRAFT','PENDING_APPROVAL','APPROVED','REJECTED','AWARDED')",
            name="chk_pr_status",
        ),
        CheckConstraint(
            "purchase_method IN ('DIRECT','QUOTATION','TENDER')",
            name="chk_pr_method",
        ),
        Index("idx_pr_status", "status"),
        Index("idx_pr_requester", "requester_id"),
        Index("idx_pr_project", "project_id"),
    )


class PrLineItem(Base):
    __tablename__ = "pr_line_items"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    pr_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("purchase_requests.id", ondelete="CASCADE"),
        nullable=False,
    )
    line_number: Mapped[int] = mapped_column(Integer, nullable=False)
    item_id: Mapped[str] = mapped_column(String(64), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow
    )

    __table_args__ = (
        UniqueConstraint("pr_id", "line_number", name="uq_pr_line_item"),
        UniqueConstraint("pr_id", "item_id", name="uq_pr_line_item_item"),
        CheckConstraint("quantity > 0", name="chk_pr_line_qty"),
        Index("idx_pr_items_pr", "pr_id"),
    )


class PrNote(Base):
    __tablename__ = "pr_notes"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    pr_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("purchase_requests.id", ondelete="CASCADE"),
        nullable=False,
    )
    text: Mapped[str] = mapped_column(Text, nullable=False)
    author_id: Mapped[str] = mapped_column(String(64), nullable=False)
    author_name: Mapped[str] = mapped_column(String(200), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow
    )

    __table_args__ = (Index("idx_pr_notes_pr", "pr_id"),)
