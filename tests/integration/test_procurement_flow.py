"""
End-to-end procurement flow against a real PostgreSQL database.

Set TEST_DATABASE_URL (postgresql+asyncpg://...) to run; the schema is
created from the models and dropped afterwards.
"""

import os
from decimal import Decimal

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from conftest import token_for
from orgaflow.database import Base, get_db
from orgaflow.main import app

TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL")

pytestmark = [
    pytest.mark.integration,
    pytest.mark.skipif(not TEST_DATABASE_URL, reason="TEST_DATABASE_URL not set"),
]


@pytest_asyncio.fixture
async def client():
    engine = create_async_engine(TEST_DATABASE_URL)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    sessions = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async def _get_test_db():
        async with sessions() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = _get_test_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


def _auth(role: str, user_id: str = None) -> dict:
    return {"Authorization": f"Bearer {token_for(role, user_id)}"}


REQUESTER = _auth("procurement_officer", "user-requester")


async def _create_and_submit(client: AsyncClient) -> str:
    resp = await client.post(
        "/api/v1/purchase-requests",
        json={
            "project_id": "PRJ-42",
            "name_ar": "أجهزة مكتبية",
            "name_en": "Office equipment",
            "currency": "USD",
            "purchase_method": "QUOTATION",
            "line_items": [{"item_id": "X", "quantity": 5}, {"item_id": "Y", "quantity": 2}],
        },
        headers=REQUESTER,
    )
    assert resp.status_code == 201, resp.text
    pr_id = resp.json()["id"]
    assert resp.json()["request_code"].startswith("REQ-")

    resp = await client.post(f"/api/v1/purchase-requests/{pr_id}/notes", json={"text": "urgent"}, headers=REQUESTER)
    assert resp.status_code == 201

    resp = await client.post(f"/api/v1/purchase-requests/{pr_id}/submit", headers=REQUESTER)
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["status"] == "PENDING_APPROVAL"
    assert [s["status"] for s in body["approvals"]] == ["PENDING"] * 3
    return pr_id


@pytest.mark.asyncio
async def test_request_to_purchase_order(client):
    pr_id = await _create_and_submit(client)

    # Later edits to the registry do not touch the submitted request
    resp = await client.post("/api/v1/workflow/steps", json={"role_id": "auditor"}, headers=_auth("admin"))
    assert resp.status_code == 200
    assert resp.json()["version"] == 1

    resp = await client.get("/api/v1/approvals/pending", headers=_auth("procurement_officer"))
    assert [p["pr_id"] for p in resp.json()] == [pr_id]
    resp = await client.get("/api/v1/approvals/pending", headers=_auth("finance_manager"))
    assert resp.json() == []

    for role in ("procurement_officer", "finance_manager", "exec_director"):
        resp = await client.post(f"/api/v1/purchase-requests/{pr_id}/approve", json={}, headers=_auth(role))
        assert resp.status_code == 200, resp.text
    assert resp.json()["status"] == "APPROVED"
    assert len(resp.json()["approvals"]) == 3

    resp = await client.put(
        f"/api/v1/purchase-requests/{pr_id}/quotations",
        json={
            "supplier_ids": ["A", "B"],
            "prices": {"X": {"A": "10", "B": "12"}, "Y": {"A": "4", "B": "3"}},
            "discounts": {"A": "10"},
        },
        headers=REQUESTER,
    )
    assert resp.status_code == 200, resp.text

    resp = await client.get(f"/api/v1/purchase-requests/{pr_id}/price-analysis", headers=REQUESTER)
    analysis = resp.json()
    assert {k: Decimal(v) for k, v in analysis["totals"].items()} == {"A": Decimal("58"), "B": Decimal("66")}
    assert Decimal(analysis["final_totals"]["A"]) == Decimal("52.20")

    resp = await client.post(
        "/api/v1/purchase-orders",
        json={"purchase_request_id": pr_id, "supplier_id": "A"},
        headers=REQUESTER,
    )
    assert resp.status_code == 201, resp.text
    po = resp.json()
    assert po["status"] == "AWARDED"
    assert Decimal(po["total_amount"]) == Decimal("52.20")

    resp = await client.get(f"/api/v1/purchase-requests/{pr_id}", headers=REQUESTER)
    assert resp.json()["status"] == "AWARDED"

    # Partial award to a second supplier; request stays AWARDED
    resp = await client.post(
        "/api/v1/purchase-orders",
        json={
            "purchase_request_id": pr_id,
            "supplier_id": "B",
            "line_items": [{"item_id": "Y", "quantity": 2, "price": "3"}],
        },
        headers=REQUESTER,
    )
    assert resp.status_code == 201, resp.text

    # Quotations are frozen once the request is awarded
    resp = await client.put(
        f"/api/v1/purchase-requests/{pr_id}/quotations",
        json={"supplier_ids": ["A"], "prices": {}},
        headers=REQUESTER,
    )
    assert resp.status_code == 400

    resp = await client.put(
        f"/api/v1/purchase-orders/{po['id']}",
        json={"line_items": [{"item_id": "X", "quantity": 4, "price": "10"}]},
        headers=REQUESTER,
    )
    assert Decimal(resp.json()["total_amount"]) == Decimal("40.00")

    resp = await client.post(f"/api/v1/purchase-orders/{po['id']}/complete", headers=REQUESTER)
    assert resp.json()["status"] == "COMPLETED"

    resp = await client.get(f"/api/v1/purchase-orders?purchase_request_id={pr_id}", headers=REQUESTER)
    assert resp.json()["pagination"]["total"] == 2


@pytest.mark.asyncio
async def test_rejection_freezes_the_chain(client):
    pr_id = await _create_and_submit(client)

    resp = await client.post(f"/api/v1/purchase-requests/{pr_id}/approve", json={}, headers=_auth("procurement_officer"))
    assert resp.status_code == 200

    resp = await client.post(
        f"/api/v1/purchase-requests/{pr_id}/reject",
        json={"comments": "budget exceeded"},
        headers=_auth("finance_manager"),
    )
    body = resp.json()
    assert body["status"] == "REJECTED"
    assert [s["status"] for s in body["approvals"]] == ["APPROVED", "REJECTED", "PENDING"]
    assert body["approvals"][1]["comments"] == "budget exceeded"

    resp = await client.post(f"/api/v1/purchase-requests/{pr_id}/approve", json={}, headers=_auth("exec_director"))
    assert resp.status_code == 400

    resp = await client.post(
        "/api/v1/purchase-orders",
        json={"purchase_request_id": pr_id, "supplier_id": "A", "line_items": [{"item_id": "X", "quantity": 1, "price": "1"}]},
        headers=REQUESTER,
    )
    assert resp.status_code == 400
