"""
Smoke tests: health, auth guards, error envelope and project routes.
"""

from decimal import Decimal

from httpx import ASGITransport, AsyncClient
from sqlalchemy import select

from finverno.main import app
from finverno.models.project import Project
from finverno.services.cache import InMemoryTTLCache, get_cache


async def test_health(client):
    resp = await client.get("/health")
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "healthy"
    assert body["checks"] == {"db": "ok", "cache": "ok"}


async def test_missing_token_is_401(client):
    resp = await client.get("/purchase-requests")
    assert resp.status_code == 401
    error = resp.json()["error"]
    assert error["code"] == "AUTH_TOKEN_INVALID"
    assert error["message"]


async def test_garbage_token_is_401(client):
    resp = await client.get("/purchase-requests", headers={"Authorization": "Bearer not-a-jwt"})
    assert resp.status_code == 401


async def test_wrong_role_is_403(client, seed, contractor_headers, investor_headers):
    admin_only = await client.get("/admin/contractors", headers=contractor_headers)
    assert admin_only.status_code == 403
    assert admin_only.json()["error"]["code"] == "INSUFFICIENT_PERMISSIONS"

    contractor_only = await client.get("/projects", headers=investor_headers)
    assert contractor_only.status_code == 403


async def test_request_validation_envelope(client, seed, contractor_headers):
    resp = await client.post("/projects", json={"client_name": "No name"}, headers=contractor_headers)
    assert resp.status_code == 422
    error = resp.json()["error"]
    assert error["code"] == "VALIDATION_ERROR"
    assert any(d["loc"][-1] == "project_name" for d in error["details"])


async def test_project_create_and_convert(client, seed, contractor_headers):
    created = await client.post(
        "/projects",
        json={"project_name": "Warehouse B", "client_name": "Logistics Co"},
        headers=contractor_headers,
    )
    assert created.status_code == 201, created.text
    project = created.json()
    assert project["status"] == "draft"
    assert project["funding_status"] == "pending"

    over = await client.put(
        f"/projects/{project['id']}/convert",
        json={"estimated_value": "1000000", "funding_required": "2000000"},
        headers=contractor_headers,
    )
    assert over.status_code == 400
    assert over.json()["error"]["code"] == "VALIDATION_ERROR"

    converted = await client.put(
        f"/projects/{project['id']}/convert",
        json={"estimated_value": "1000000", "funding_required": "600000", "po_number": "CL-PO-77"},
        headers=contractor_headers,
    )
    assert converted.status_code == 200, converted.text
    assert converted.json()["status"] == "awarded"
    assert Decimal(converted.json()["funding_required"]) == Decimal("600000")

    again = await client.put(
        f"/projects/{project['id']}/convert",
        json={"estimated_value": "1000000"},
        headers=contractor_headers,
    )
    assert again.status_code == 400
    assert again.json()["error"]["details"]["current_state"] == "awarded"


async def test_add_material_reports_availability(client, seed, contractor_headers):
    resp = await client.post(
        f"/projects/{seed['project'].id}/materials",
        json={"name": "TMT bar 12mm", "unit": "tonne", "required_qty": "30", "available_qty": "5"},
        headers=contractor_headers,
    )
    assert resp.status_code == 201, resp.text
    body = resp.json()
    assert Decimal(body["max_requestable"]) == Decimal("25")
    assert Decimal(body["requested_qty"]) == Decimal("0")


async def test_admin_listings_are_cached_and_invalidated(client, seed, admin_headers, contractor_headers, cache):
    first = await client.get("/admin/projects", headers=admin_headers)
    assert first.status_code == 200
    assert [p["project_name"] for p in first.json()["data"]] == ["Tower A"]
    assert await cache.get("admin:projects") is not None

    await client.post("/projects", json={"project_name": "Warehouse B"}, headers=contractor_headers)
    assert await cache.get("admin:projects") is None

    second = await client.get("/admin/projects", headers=admin_headers)
    names = {p["project_name"] for p in second.json()["data"]}
    assert names == {"Tower A", "Warehouse B"}

    contractors = await client.get("/admin/contractors", headers=admin_headers)
    counts = {c["company_name"]: c["project_count"] for c in contractors.json()["data"]}
    assert counts == {"Acme Builders": 2, "Other Build Co": 0}


class _BrokenCache(InMemoryTTLCache):
    async def get(self, key):
        raise RuntimeError("cache backend exploded")

    async def invalidate(self, key):
        raise RuntimeError("cache backend exploded")


async def test_unexpected_error_uses_envelope(client, seed, admin_headers):
    app.dependency_overrides[get_cache] = lambda: _BrokenCache()
    # Starlette re-raises after the handler responds; keep the response instead.
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as raw:
        resp = await raw.get("/admin/projects", headers=admin_headers)

    assert resp.status_code == 500
    error = resp.json()["error"]
    assert error["code"] == "DEPENDENCY_ERROR"
    assert error["message"] == "Internal server error"
    assert error["details"] == "RuntimeError"


async def test_cache_failure_does_not_fail_project_writes(client, seed, contractor_headers, session_factory):
    app.dependency_overrides[get_cache] = lambda: _BrokenCache()

    created = await client.post("/projects", json={"project_name": "Depot C"}, headers=contractor_headers)
    assert created.status_code == 201, created.text

    converted = await client.put(
        f"/projects/{created.json()['id']}/convert",
        json={"estimated_value": "500000"},
        headers=contractor_headers,
    )
    assert converted.status_code == 200, converted.text

    async with session_factory() as s:
        project = (await s.execute(select(Project).where(Project.project_name == "Depot C"))).scalar_one()
    assert project.status == "awarded"
