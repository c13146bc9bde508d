import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    String,
    Integer,
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

APPROVAL_STATUSES = ("PENDING", "APPROVED", "REJECTED")


class Approval(Base):
    """One role's checkpoint in a purchase request's approval chain."""

    __tablename__ = "approvals"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    pr_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("purchase_requests.id", ondelete="CASCADE"),
        nullable=False,
    )
    # 1-based position in the chain; workflow order
    approval_level: Mapped[int] = mapped_column(Integer, nullable=False)
    role_id: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="PENDING")
    actor_id: Mapped[Optional[str]] = mapped_column(String(64))
    actor_name: Mapped[Optional[str]] = mapped_column(String(200))
    comments: Mapped[Optional[str]] = mapped_column(Text)
    acted_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow
    )

    __table_args__ = (
        UniqueConstraint("pr_id", "approval_level", name="uq_approval_level"),
        CheckConstraint(
            "approval_level > 0", name="chk_approval_level_positive"
        ),
        CheckConstraint(
            "status IN ('PENDING','APPROVED','REJECTED')",
            name="chk_approval_status",
        ),
        Index("idx_approvals_pr", "pr_id"),
        Index("idx_approvals_role", "role_id", "status"),
    )
