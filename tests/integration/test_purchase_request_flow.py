from decimal import Decimal

import pytest
from sqlalchemy import select

from finverno.errors import StateError, ValidationError
from finverno.models.audit_log import AuditLog
from finverno.models.project import ProjectMaterial
from finverno.services import purchase_request_service as pr_service


async def _materials(client, headers, project_id):
    resp = await client.get(f"/projects/{project_id}/materials", headers=headers)
    assert resp.status_code == 200, resp.text
    return resp.json()


async def test_draft_reduces_max_requestable(client, seed, contractor_headers, session_factory):
    project_id = str(seed["project"].id)
    material_id = str(seed["material"].id)

    async with session_factory() as s:
        material = await s.get(ProjectMaterial, seed["material"].id)
        material.available_qty = Decimal("20")
        await s.commit()

    [before] = await _materials(client, contractor_headers, project_id)
    assert Decimal(before["max_requestable"]) == Decimal("80")

    resp = await client.post(
        "/purchase-requests",
        json={
            "project_id": project_id,
            "remarks": "Foundation pour",
            "items": [{"project_material_id": material_id, "requested_qty": "100"}],
        },
        headers=contractor_headers,
    )
    assert resp.status_code == 201, resp.text
    body = resp.json()
    assert body["status"] == "draft"
    assert body["items"][0]["status"] == "pending"

    [after] = await _materials(client, contractor_headers, project_id)
    assert Decimal(after["max_requestable"]) == Decimal("0")
    assert Decimal(after["requested_qty"]) == Decimal("100")


async def test_create_validation(client, seed, contractor_headers):
    project_id = str(seed["project"].id)
    material_id = str(seed["material"].id)

    empty = await client.post(
        "/purchase-requests",
        json={"project_id": project_id, "items": []},
        headers=contractor_headers,
    )
    assert empty.status_code == 400
    assert empty.json()["error"]["code"] == "VALIDATION_ERROR"

    zero = await client.post(
        "/purchase-requests",
        json={"project_id": project_id, "items": [{"project_material_id": material_id, "requested_qty": 0}]},
        headers=contractor_headers,
    )
    assert zero.status_code in (400, 422)


async def test_other_contractor_cannot_use_project(client, seed, other_contractor_headers):
    resp = await client.post(
        "/purchase-requests",
        json={
            "project_id": str(seed["project"].id),
            "items": [{"project_material_id": str(seed["material"].id), "requested_qty": 5}],
        },
        headers=other_contractor_headers,
    )
    assert resp.status_code == 404


async def test_approval_requires_every_item(session_factory, seed, admin_actor, contractor_actor):
    async with session_factory() as s:
        pr, items = await pr_service.create_draft(
            s,
            contractor_id=seed["contractor"].id,
            project_id=seed["project"].id,
            lines=[
                {"project_material_id": seed["material"].id, "requested_qty": "10"},
                {"project_material_id": seed["material"].id, "requested_qty": "5"},
            ],
            actor=contractor_actor,
        )
        first, second = items
        await pr_service.submit(s, pr.id, seed["contractor"].id, contractor_actor)

        pr, items = await pr_service.review(
            s, pr.id, [{"item_id": first.id, "status": "approved", "approved_qty": "8"}], admin_actor
        )
        assert pr.status == "submitted"

        pr, items = await pr_service.review(
            s, pr.id, [{"item_id": second.id, "status": "rejected"}], admin_actor
        )
        assert pr.status == "approved"
        assert pr.approved_at is not None
        assert pr.approved_by == admin_actor["user_id"]
        assert {i.status for i in items} == {"approved", "rejected"}
        assert second.approved_qty == 0
        await s.commit()


async def test_all_rejected_rejects_request(session_factory, seed, admin_actor, contractor_actor):
    async with session_factory() as s:
        pr, items = await pr_service.create_draft(
            s,
            contractor_id=seed["contractor"].id,
            project_id=seed["project"].id,
            lines=[
                {"project_material_id": seed["material"].id, "requested_qty": "10"},
                {"project_material_id": seed["material"].id, "requested_qty": "4"},
            ],
            actor=contractor_actor,
        )
        await pr_service.submit(s, pr.id, seed["contractor"].id, contractor_actor)

        pr, _ = await pr_service.review(s, pr.id, [{"item_id": items[0].id, "status": "rejected"}], admin_actor)
        assert pr.status == "submitted"

        pr, reviewed = await pr_service.review(
            s, pr.id, [{"item_id": items[1].id, "status": "rejected"}], admin_actor
        )
        assert pr.status == "rejected"
        assert pr.approved_at is None
        assert {i.status for i in reviewed} == {"rejected"}


async def test_approved_qty_bounds(session_factory, seed, admin_actor, contractor_actor):
    async with session_factory() as s:
        pr, items = await pr_service.create_draft(
            s,
            contractor_id=seed["contractor"].id,
            project_id=seed["project"].id,
            lines=[{"project_material_id": seed["material"].id, "requested_qty": "10"}],
            actor=contractor_actor,
        )
        await pr_service.submit(s, pr.id, seed["contractor"].id, contractor_actor)
        with pytest.raises(ValidationError):
            await pr_service.review(
                s, pr.id, [{"item_id": items[0].id, "status": "approved", "approved_qty": "11"}], admin_actor
            )


async def test_review_requires_submitted(make_request, session_factory, admin_actor):
    request_id = await make_request(until="draft")
    async with session_factory() as s:
        items = await pr_service.get_items(s, request_id)
        with pytest.raises(StateError) as exc:
            await pr_service.review(s, request_id, [{"item_id": items[0].id, "status": "approved"}], admin_actor)
        assert exc.value.current_state == "draft"


async def test_admin_lifecycle_routes(client, make_request, admin_headers, session_factory):
    request_id = await make_request(until="approved")

    funded = await client.post(f"/admin/purchase-requests/{request_id}/fund", headers=admin_headers)
    assert funded.status_code == 200, funded.text
    assert funded.json()["status"] == "funded"
    assert funded.json()["funded_at"] is not None

    po = await client.post(f"/admin/purchase-requests/{request_id}/generate-po", headers=admin_headers)
    assert po.json()["po_number"] == "PO-000001"
    assert po.json()["items"][0]["status"] == "ordered"

    done = await client.post(f"/admin/purchase-requests/{request_id}/complete", headers=admin_headers)
    assert done.json()["status"] == "completed"
    assert done.json()["items"][0]["status"] == "received"

    again = await client.post(f"/admin/purchase-requests/{request_id}/fund", headers=admin_headers)
    assert again.status_code == 400
    assert again.json()["error"]["code"] == "INVALID_STATE"
    assert again.json()["error"]["details"]["current_state"] == "completed"

    async with session_factory() as s:
        result = await s.execute(select(AuditLog.action).where(AuditLog.entity_id == request_id))
        actions = set(result.scalars().all())
    assert {"PURCHASE_REQUEST_FUNDED", "PURCHASE_ORDER_GENERATED", "PURCHASE_REQUEST_COMPLETED"} <= actions


async def test_contractor_routes_are_scoped(client, make_request, contractor_headers, other_contractor_headers, admin_headers):
    request_id = await make_request(until="draft")

    mine = await client.get(f"/purchase-requests/{request_id}", headers=contractor_headers)
    assert mine.status_code == 200

    theirs = await client.get(f"/purchase-requests/{request_id}", headers=other_contractor_headers)
    assert theirs.status_code == 404

    listing = await client.get("/purchase-requests", headers=contractor_headers)
    assert listing.json()["pagination"]["total"] == 1

    forbidden = await client.get("/admin/purchase-requests", headers=contractor_headers)
    assert forbidden.status_code == 403

    submitted = await client.post(f"/purchase-requests/{request_id}/submit", headers=contractor_headers)
    assert submitted.json()["status"] == "submitted"
    assert submitted.json()["submitted_at"] is not None

    edit = await client.patch(
        f"/purchase-requests/{request_id}", json={"remarks": "late"}, headers=contractor_headers
    )
    assert edit.status_code == 400

    cancelled = await client.post(f"/purchase-requests/{request_id}/cancel", headers=contractor_headers)
    assert cancelled.json()["status"] == "cancelled"

    admin_list = await client.get("/admin/purchase-requests?status=cancelled", headers=admin_headers)
    assert admin_list.json()["pagination"]["total"] == 1
