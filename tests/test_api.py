"""
HTTP boundary tests.

Runs the FastAPI app in-process over httpx's ASGI transport with the
database and audit dependencies pointed at the per-test SQLite file.
"""

import uuid

import httpx
import pytest

from conftest import access_token, auth_header, seed_tasks
from taskboard.core.database import get_db
from taskboard.main import app
from taskboard.services.audit_service import DatabaseAuditRecorder, get_audit_recorder

DENIED = {"detail": {"code": "FORBIDDEN", "message": "Access denied"}}


@pytest.fixture
async def client(session_factory, audit):
    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_audit_recorder] = lambda: audit
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


def tasks_url(org_id, task_id=None, suffix=""):
    url = f"/api/v1/organizations/{org_id}/tasks"
    if task_id is not None:
        url += f"/{task_id}"
    return url + suffix


# ---------------------------------------------------------------------------
# Health / auth
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_health(client):
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


@pytest.mark.asyncio
async def test_missing_token_rejected(client, board):
    resp = await client.get(tasks_url(board.org.id))
    assert resp.status_code == 401
    assert resp.json()["detail"]["code"] == "MISSING_TOKEN"


@pytest.mark.asyncio
async def test_refresh_token_is_not_an_access_token(client, board):
    resp = await client.get(
        tasks_url(board.org.id),
        headers={"Authorization": f"Bearer {access_token(board.owner.id, 'refresh')}"},
    )
    assert resp.status_code == 401
    assert resp.json()["detail"]["code"] == "INVALID_TOKEN"


@pytest.mark.asyncio
async def test_token_for_unknown_user_rejected(client, board):
    resp = await client.get(tasks_url(board.org.id), headers=auth_header(uuid.uuid4()))
    assert resp.status_code == 401
    assert resp.json()["detail"]["code"] == "USER_NOT_FOUND"


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_create_and_list_tasks(client, board):
    headers = auth_header(board.admin.id)
    for title in ("First", "Second", "Third"):
        resp = await client.post(tasks_url(board.org.id), json={"title": title}, headers=headers)
        assert resp.status_code == 201

    assert resp.json()["position"] == 2

    resp = await client.get(tasks_url(board.org.id), headers=auth_header(board.viewer.id))
    assert resp.status_code == 200
    body = resp.json()
    assert body["total"] == 3
    assert [t["title"] for t in body["data"]] == ["First", "Second", "Third"]


@pytest.mark.asyncio
async def test_reorder_endpoint(client, service, board):
    first, second, third = await seed_tasks(service, board.org.id, board.owner, 3)

    resp = await client.patch(
        tasks_url(board.org.id, first, "/reorder"),
        json={"new_position": 2},
        headers=auth_header(board.viewer.id),
    )
    assert resp.status_code == 200
    assert resp.json()["position"] == 2

    resp = await client.get(tasks_url(board.org.id), headers=auth_header(board.viewer.id))
    assert [t["id"] for t in resp.json()["data"]] == [str(second), str(third), str(first)]


@pytest.mark.asyncio
async def test_status_change_via_patch(client, service, board):
    ids = await seed_tasks(service, board.org.id, board.owner, 3)

    resp = await client.patch(
        tasks_url(board.org.id, ids[1]),
        json={"status": "done"},
        headers=auth_header(board.owner.id),
    )
    assert resp.status_code == 200
    assert (resp.json()["status"], resp.json()["position"]) == ("done", 0)

    resp = await client.get(
        tasks_url(board.org.id), params={"status": "todo"}, headers=auth_header(board.owner.id)
    )
    assert [t["position"] for t in resp.json()["data"]] == [0, 1]


@pytest.mark.asyncio
async def test_negative_position_is_bad_request(client, service, board):
    [task_id] = await seed_tasks(service, board.org.id, board.owner, 1)

    resp = await client.patch(
        tasks_url(board.org.id, task_id, "/reorder"),
        json={"new_position": -1},
        headers=auth_header(board.owner.id),
    )
    assert resp.status_code == 400
    assert resp.json()["detail"]["code"] == "INVALID_POSITION"


@pytest.mark.asyncio
async def test_delete_returns_no_content(client, service, board):
    [task_id] = await seed_tasks(service, board.org.id, board.owner, 1)

    resp = await client.delete(tasks_url(board.org.id, task_id), headers=auth_header(board.admin.id))
    assert resp.status_code == 204

    resp = await client.get(tasks_url(board.org.id, task_id), headers=auth_header(board.admin.id))
    assert resp.status_code == 403


# ---------------------------------------------------------------------------
# Uniform denials
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_denied_missing_and_foreign_tasks_are_indistinguishable(client, service, board):
    [task_id] = await seed_tasks(service, board.org.id, board.owner, 1)

    responses = [
        # not a member of the org
        await client.get(tasks_url(board.org.id, task_id), headers=auth_header(board.outsider.id)),
        # task belongs to another org
        await client.get(
            tasks_url(board.other_org.id, task_id), headers=auth_header(board.outsider.id)
        ),
        # no such task
        await client.get(tasks_url(board.org.id, uuid.uuid4()), headers=auth_header(board.owner.id)),
        # member without the role
        await client.delete(tasks_url(board.org.id, task_id), headers=auth_header(board.viewer.id)),
    ]

    for resp in responses:
        assert resp.status_code == 403
        assert resp.json() == DENIED


@pytest.mark.asyncio
async def test_denials_are_audited(client, audit, board):
    resp = await client.post(
        tasks_url(board.org.id), json={"title": "Sneaky"}, headers=auth_header(board.viewer.id)
    )
    assert resp.status_code == 403
    assert audit.actions() == ["access_denied"]
    assert audit.events[0]["actor_id"] == board.viewer.id


# ---------------------------------------------------------------------------
# Organizations
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_last_owner_conflict(client, board):
    resp = await client.patch(
        f"/api/v1/organizations/{board.org.id}/members/{board.owner.id}",
        json={"role": "admin"},
        headers=auth_header(board.owner.id),
    )
    assert resp.status_code == 409
    assert resp.json()["detail"]["code"] == "LAST_OWNER"


@pytest.mark.asyncio
async def test_nested_sub_organization_rejected(client, board):
    headers = auth_header(board.owner.id)
    resp = await client.post(
        "/api/v1/organizations",
        json={"name": "Acme Labs", "slug": "acme-labs", "parent_id": str(board.org.id)},
        headers=headers,
    )
    assert resp.status_code == 201
    child_id = resp.json()["id"]

    resp = await client.post(
        "/api/v1/organizations",
        json={"name": "Too Deep", "slug": "too-deep", "parent_id": child_id},
        headers=headers,
    )
    assert resp.status_code == 400
    assert resp.json()["detail"]["code"] == "NESTING_TOO_DEEP"


@pytest.mark.asyncio
async def test_members_listing(client, board):
    resp = await client.get(
        f"/api/v1/organizations/{board.org.id}/members", headers=auth_header(board.viewer.id)
    )
    assert resp.status_code == 200
    assert resp.json()["total"] == 4


# ---------------------------------------------------------------------------
# Audit trail
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_audit_trail_visible_to_admins_only(client, session_factory, board):
    app.dependency_overrides[get_audit_recorder] = lambda: DatabaseAuditRecorder(session_factory)

    resp = await client.post(
        tasks_url(board.org.id), json={"title": "Tracked"}, headers=auth_header(board.admin.id)
    )
    task_id = resp.json()["id"]

    resp = await client.get(
        f"/api/v1/organizations/{board.org.id}/audit-logs", headers=auth_header(board.admin.id)
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["total"] == 1
    entry = body["data"][0]
    assert (entry["action"], entry["resource_id"]) == ("create", task_id)
    assert entry["metadata"] == {"title": "Tracked", "status": "todo", "position": 0}

    resp = await client.get(
        f"/api/v1/organizations/{board.org.id}/audit-logs", headers=auth_header(board.viewer.id)
    )
    assert resp.status_code == 403
    assert resp.json() == DENIED
