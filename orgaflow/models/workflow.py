import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import String, Integer, DateTime, CheckConstraint
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import Mapped, mapped_column

from orgaflow.database import Base


class WorkflowRegistry(Base):
    """Immutable, versioned snapshot of the approval chain (ordered role ids).

    Every edit inserts a new row; the highest version is the live chain.
    """

    __tablename__ = "workflow_registries"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    version: Mapped[int] = mapped_column(Integer, unique=True, nullable=False)
    role_ids: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    updated_by: Mapped[Optional[str]] = mapped_column(String(64))
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow
    )

    __table_args__ = (
        CheckConstraint("version > 0", name="chk_workflow_version_positive"),
    )
