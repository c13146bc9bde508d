"""Central model registry: import all models so Alembic autodiscover works."""

from orgaflow.database import Base  # noqa: F401

from orgaflow.models.purchase_request import PurchaseRequest, PrLineItem, PrNote  # noqa: F401
from orgaflow.models.approval import Approval  # noqa: F401
from orgaflow.models.workflow import WorkflowRegistry  # noqa: F401
from orgaflow.models.quotation import SupplierQuotation, QuotationItem  # noqa: F401
from orgaflow.models.purchase_order import PurchaseOrder, PoLineItem  # noqa: F401
from orgaflow.models.audit_log import AuditLog  # noqa: F401
