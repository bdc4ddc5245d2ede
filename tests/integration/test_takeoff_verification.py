import uuid
from decimal import Decimal

import pytest

from finverno.errors import NotFoundError, StateError, ValidationError
from finverno.services import takeoff_service

LINES = [
    {"description": "PCC 1:4:8", "unit": "cum", "quantity": 12.5},
    {"description": "Brickwork", "unit": "cum", "quantity": 40},
]


async def _save(client, headers, project_id, file_name="ground-floor.pdf"):
    resp = await client.post(
        "/boq-takeoffs",
        json={
            "project_id": str(project_id),
            "file_name": file_name,
            "file_url": f"uploads/{file_name}",
            "takeoff_data": LINES,
        },
        headers=headers,
    )
    assert resp.status_code == 201, resp.text
    return resp.json()


async def _submit(client, headers, project_id, file_name="ground-floor.pdf"):
    return await client.post(
        "/takeoff-verification",
        json={"project_id": str(project_id), "file_name": file_name},
        headers=headers,
    )


async def test_submit_requires_saved_takeoff(client, seed, contractor_headers):
    resp = await _submit(client, contractor_headers, seed["project"].id, "missing.pdf")
    assert resp.status_code == 404


async def test_submit_never_creates(session_factory, seed, contractor_actor):
    async with session_factory() as s:
        with pytest.raises(NotFoundError):
            await takeoff_service.submit_for_verification(
                s, seed["contractor"].id, seed["project"].id, "nope.pdf", contractor_actor
            )
        status = await takeoff_service.contractor_status(s, seed["contractor"].id, seed["project"].id)
    assert status["takeoffs"] == []


async def test_save_submit_and_status(client, seed, contractor_headers):
    saved = await _save(client, contractor_headers, seed["project"].id)
    assert saved["total_items"] == 2
    assert saved["verification_status"] == "none"

    submitted = await _submit(client, contractor_headers, seed["project"].id)
    assert submitted.status_code == 200, submitted.text
    assert submitted.json()["verification_status"] == "pending"
    assert submitted.json()["submitted_for_verification_at"] is not None

    status = await client.get(
        f"/takeoff-verification?project_id={seed['project'].id}", headers=contractor_headers
    )
    summary = status.json()["summary"]
    assert summary["pending"] == 1
    assert summary["total"] == 1


async def test_admin_listing_and_single_review(client, seed, contractor_headers, admin_headers):
    saved = await _save(client, contractor_headers, seed["project"].id)
    await _submit(client, contractor_headers, seed["project"].id)

    listing = await client.get("/admin/takeoff-verification", headers=admin_headers)
    assert listing.status_code == 200, listing.text
    body = listing.json()
    assert body["summary"]["pending"] == 1
    assert body["pagination"]["total"] == 1
    [row] = body["takeoffs"]
    assert row["contractor"]["company_name"] == "Acme Builders"
    assert row["file_download_url"] == "https://signed.test/boq-takeoffs/uploads/ground-floor.pdf"

    review = await client.put(
        "/admin/takeoff-verification",
        json={
            "takeoff_id": saved["id"],
            "verification_status": "verified",
            "admin_verified_quantity": 55,
            "estimated_rate": "4200.50",
            "admin_notes": "Checked against drawings",
        },
        headers=admin_headers,
    )
    assert review.status_code == 200, review.text
    reviewed = review.json()
    assert reviewed["verification_status"] == "verified"
    assert reviewed["verified_by"] == "admin-0001"
    assert Decimal(reviewed["admin_verified_quantity"]) == Decimal("55")

    # A verified takeoff is frozen.
    resave = await client.post(
        "/boq-takeoffs",
        json={"project_id": str(seed["project"].id), "file_name": "ground-floor.pdf", "takeoff_data": []},
        headers=contractor_headers,
    )
    assert resave.status_code == 400


async def test_bulk_review_reports_each_item(client, seed, contractor_headers, admin_headers):
    a = await _save(client, contractor_headers, seed["project"].id, "a.pdf")
    b = await _save(client, contractor_headers, seed["project"].id, "b.pdf")
    c = await _save(client, contractor_headers, seed["project"].id, "c.pdf")
    for name in ("a.pdf", "b.pdf", "c.pdf"):
        await _submit(client, contractor_headers, seed["project"].id, name)

    first = await client.put(
        "/admin/takeoff-verification",
        json={"takeoff_id": b["id"], "verification_status": "verified"},
        headers=admin_headers,
    )
    assert first.status_code == 200

    missing = str(uuid.uuid4())
    resp = await client.post(
        "/admin/takeoff-verification",
        json={
            "takeoff_ids": [a["id"], b["id"], missing, c["id"]],
            "verification_status": "revision_required",
            "admin_notes": "Split by floor",
        },
        headers=admin_headers,
    )
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["updated"] == 2
    assert body["failed"] == 2
    outcome = {r["id"]: r for r in body["results"]}
    assert outcome[a["id"]]["status"] == "success"
    assert outcome[c["id"]]["verification_status"] == "revision_required"
    assert outcome[b["id"]]["code"] == "INVALID_STATE"
    assert outcome[missing]["code"] == "NOT_FOUND"

    listing = await client.get("/admin/takeoff-verification?status=revision_required", headers=admin_headers)
    summary = listing.json()["summary"]
    assert summary == {"pending": 0, "verified": 1, "disputed": 0, "revision_required": 2}


async def test_negative_quantity_rejected_before_write(session_factory, seed, contractor_actor, admin_actor):
    async with session_factory() as s:
        takeoff = await takeoff_service.save_takeoff(
            s, seed["contractor"].id, seed["project"].id, "x.pdf", LINES, contractor_actor
        )
        await takeoff_service.submit_for_verification(
            s, seed["contractor"].id, seed["project"].id, "x.pdf", contractor_actor
        )
        with pytest.raises(ValidationError):
            await takeoff_service.review_takeoff(
                s, takeoff.id, "verified", admin_actor, admin_verified_quantity=-1
            )
        assert takeoff.verification_status == "pending"


async def test_resubmit_after_revision(session_factory, seed, contractor_actor, admin_actor):
    async with session_factory() as s:
        takeoff = await takeoff_service.save_takeoff(
            s, seed["contractor"].id, seed["project"].id, "r.pdf", LINES, contractor_actor
        )
        await takeoff_service.submit_for_verification(
            s, seed["contractor"].id, seed["project"].id, "r.pdf", contractor_actor
        )
        await takeoff_service.review_takeoff(s, takeoff.id, "revision_required", admin_actor)
        again = await takeoff_service.submit_for_verification(
            s, seed["contractor"].id, seed["project"].id, "r.pdf", contractor_actor
        )
        assert again.verification_status == "pending"

        await takeoff_service.review_takeoff(s, takeoff.id, "verified", admin_actor)
        with pytest.raises(StateError):
            await takeoff_service.submit_for_verification(
                s, seed["contractor"].id, seed["project"].id, "r.pdf", contractor_actor
            )
