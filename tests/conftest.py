import uuid
from unittest.mock import AsyncMock, MagicMock

import pytest

from orgaflow.models.purchase_request import PurchaseRequest, PrLineItem
from orgaflow.services.auth_service import create_access_token


def make_pr(status: str = "DRAFT", requester_id: str = "user-requester", **overrides) -> PurchaseRequest:
    fields = dict(
        id=uuid.uuid4(),
        request_code="REQ-000001",
        project_id="PRJ-7",
        name_ar="طلب شراء قرطاسية",
        name_en="Stationery purchase",
        currency="ILS",
        purchase_method="QUOTATION",
        requester_id=requester_id,
        requester_name="Rana Haddad",
        status=status,
    )
    fields.update(overrides)
    return PurchaseRequest(**fields)


def make_line(item_id: str, quantity: int, line_number: int = 1) -> PrLineItem:
    return PrLineItem(id=uuid.uuid4(), item_id=item_id, quantity=quantity, line_number=line_number)


def result_of(rows) -> MagicMock:
    """A Result whose scalars().all() / scalar_one_or_none() yield rows."""
    result = MagicMock()
    result.scalars.return_value.all.return_value = list(rows)
    result.scalars.return_value.first.return_value = rows[0] if rows else None
    result.scalar_one_or_none.return_value = rows[0] if rows else None
    result.scalar.return_value = len(rows)
    return result


def count_of(n: int) -> MagicMock:
    result = MagicMock()
    result.scalar.return_value = n
    return result


def mock_session() -> AsyncMock:
    """AsyncSession stand-in; flush assigns primary keys like the database would."""
    session = AsyncMock()

    async def _flush():
        for call in session.add.call_args_list:
            obj = call.args[0]
            if getattr(obj, "id", None) is None:
                obj.id = uuid.uuid4()

    session.flush = AsyncMock(side_effect=_flush)
    session.delete = AsyncMock()
    session.add = MagicMock()
    return session


@pytest.fixture
def session():
    return mock_session()


def token_for(role: str, user_id: str = None, name: str = None) -> str:
    return create_access_token(
        user_id=user_id or f"user-{role}",
        role=role,
        name=name or role.replace("_", " ").title(),
        email=f"{role}@orgaflow.test",
    )


@pytest.fixture
def auth_headers():
    def _headers(role: str, user_id: str = None) -> dict:
        return {"Authorization": f"Bearer {token_for(role, user_id)}"}

    return _headers
