"""
Unit tests for orgaflow/services/purchase_request_service.py

Tests: draft creation and editing, notes, visibility of drafts.
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest
from fastapi import HTTPException

from conftest import count_of, make_line, make_pr, mock_session, result_of
from orgaflow.errors import StateError, ValidationError
from orgaflow.services import purchase_request_service as pr_service

USER = {"user_id": "user-requester", "role": "procurement_officer", "name": "Rana Haddad"}


def _item(item_id, quantity):
    return SimpleNamespace(item_id=item_id, quantity=quantity)


def test_parse_uuid_invalid_is_404():
    with pytest.raises(HTTPException) as exc_info:
        pr_service.parse_uuid("not-a-uuid", "Purchase order")
    assert exc_info.value.status_code == 404
    assert exc_info.value.detail == "Purchase order not found"


@pytest.mark.asyncio
async def test_create_draft_numbers_request_and_lines():
    session = mock_session()
    session.execute = AsyncMock(side_effect=[count_of(4), result_of([])])

    pr, line_items = await pr_service.create_draft(
        session,
        USER,
        {"project_id": "PRJ-1", "name_ar": "ورق", "name_en": "Paper", "currency": "USD", "status": "APPROVED"},
        [_item("X", 5), _item("Y", 1)],
    )

    assert pr.request_code == "REQ-000005"
    assert pr.status == "DRAFT"
    assert pr.requester_id == "user-requester"
    assert pr.request_date is not None
    assert [(li.line_number, li.item_id, li.quantity) for li in line_items] == [(1, "X", 5), (2, "Y", 1)]
    assert all(li.pr_id == pr.id for li in line_items)


@pytest.mark.asyncio
async def test_update_draft_replaces_items():
    pr = make_pr()
    old = [make_line("X", 5)]
    session = mock_session()
    session.execute = AsyncMock(return_value=result_of(old))

    line_items = await pr_service.update_draft(session, pr, {"name_en": "Paper A4"}, [_item("Z", 3)])

    assert pr.name_en == "Paper A4"
    session.delete.assert_awaited_once_with(old[0])
    assert [li.item_id for li in line_items] == ["Z"]


@pytest.mark.asyncio
async def test_update_after_submit_is_rejected():
    with pytest.raises(StateError):
        await pr_service.update_draft(mock_session(), make_pr(status="PENDING_APPROVAL"), {"name_en": "x"})


@pytest.mark.asyncio
async def test_add_note_trims_and_requires_text(session):
    pr = make_pr()
    note = await pr_service.add_note(session, pr, "  deliver by Monday ", USER)
    assert note.text == "deliver by Monday"
    assert note.author_name == "Rana Haddad"

    with pytest.raises(ValidationError):
        await pr_service.add_note(session, pr, "   ", USER)


@pytest.mark.asyncio
async def test_notes_only_on_drafts(session):
    with pytest.raises(StateError):
        await pr_service.add_note(session, make_pr(status="APPROVED"), "late", USER)


@pytest.mark.asyncio
async def test_drafts_visible_only_to_requester():
    pr = make_pr(status="DRAFT")
    session = mock_session()
    session.execute = AsyncMock(return_value=result_of([pr]))

    assert await pr_service.get_visible_purchase_request(session, str(pr.id), USER) is pr
    with pytest.raises(HTTPException) as exc_info:
        await pr_service.get_visible_purchase_request(session, str(pr.id), {"user_id": "someone-else"})
    assert exc_info.value.status_code == 404


@pytest.mark.asyncio
async def test_submitted_requests_visible_to_everyone():
    pr = make_pr(status="PENDING_APPROVAL")
    session = mock_session()
    session.execute = AsyncMock(return_value=result_of([pr]))

    assert await pr_service.get_visible_purchase_request(session, str(pr.id), {"user_id": "x"}) is pr
