from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import select

from finverno.errors import StateError
from finverno.models.capital import CapitalTransaction, InvestorPaymentSubmission
from finverno.models.investor import InvestorAccount
from finverno.services import capital_service


async def _submit(client, headers, amount="50000", **extra):
    resp = await client.post(
        "/investor/payment-submissions",
        json={
            "amount": amount,
            "payment_date": "2026-10-01",
            "payment_reference": "UTR123456",
            "proof_document_path": "proofs/utr123456.png",
            **extra,
        },
        headers=headers,
    )
    return resp


async def test_approval_creates_linked_inflow(client, seed, investor_headers, admin_headers, session_factory):
    created = await _submit(client, investor_headers)
    assert created.status_code == 201, created.text
    submission = created.json()
    assert submission["status"] == "pending"
    assert submission["payment_method"] == "bank_transfer"

    pending = await client.get("/admin/capital/payment-submissions", headers=admin_headers)
    [row] = pending.json()
    assert row["investor"]["name"] == "Fund One"
    assert row["proof_signed_url"] == "https://signed.test/investor-documents/proofs/utr123456.png"

    resp = await client.patch(
        "/admin/capital/payment-submissions",
        json={"id": submission["id"], "action": "approve", "review_notes": "Matched bank statement"},
        headers=admin_headers,
    )
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["submission"]["status"] == "approved"
    txn = body["transaction"]
    assert txn["transaction_type"] == "inflow"
    assert txn["status"] == "completed"
    assert Decimal(txn["amount"]) == Decimal("50000")
    assert txn["description"] == "Investor payment confirmation (bank_transfer)"
    assert txn["reference_number"] == "UTR123456"
    assert body["submission"]["capital_transaction_id"] == txn["id"]

    async with session_factory() as s:
        account = (
            await s.execute(select(InvestorAccount).where(InvestorAccount.investor_id == seed["investor"].id))
        ).scalar_one()
        assert account is not None

    accounts = await client.get("/admin/capital/accounts", headers=admin_headers)
    [acct] = accounts.json()
    assert Decimal(acct["balances"]["inflow"]) == Decimal("50000")
    assert Decimal(acct["balances"]["balance"]) == Decimal("50000")
    assert "return" in acct["balances"]


async def test_review_only_pending(client, seed, investor_headers, admin_headers):
    submission = (await _submit(client, investor_headers, amount="1000")).json()
    first = await client.patch(
        "/admin/capital/payment-submissions",
        json={"id": submission["id"], "action": "reject"},
        headers=admin_headers,
    )
    assert first.json()["submission"]["status"] == "rejected"
    assert first.json()["transaction"] is None

    second = await client.patch(
        "/admin/capital/payment-submissions",
        json={"id": submission["id"], "action": "approve"},
        headers=admin_headers,
    )
    assert second.status_code == 400
    assert second.json()["error"]["details"]["current_state"] == "rejected"


async def test_invalid_amount_is_400(client, seed, investor_headers):
    resp = await _submit(client, investor_headers, amount="0")
    assert resp.status_code == 400


async def test_failed_approval_rolls_back(seed, session_factory, admin_actor, monkeypatch):
    async with session_factory() as s:
        submission = await capital_service.submit_payment(
            s, seed["investor"].id, Decimal("2500"), date(2026, 10, 2),
            {"user_id": "investor-0001"},
        )
        await s.commit()
        submission_id = submission.id

    async def boom(*args, **kwargs):
        raise RuntimeError("audit store down")

    monkeypatch.setattr(capital_service, "create_audit_log", boom)

    async with session_factory() as s:
        with pytest.raises(RuntimeError):
            await capital_service.review_submission(s, submission_id, "approve", admin_actor)
        await s.rollback()

    async with session_factory() as s:
        fresh = await s.get(InvestorPaymentSubmission, submission_id)
        assert fresh.status == "pending"
        assert fresh.capital_transaction_id is None
        txns = (await s.execute(select(CapitalTransaction))).scalars().all()
        assert txns == []


async def test_outflow_needs_balance(client, seed, admin_headers):
    investor_id = str(seed["investor"].id)
    denied = await client.post(
        "/admin/capital/transactions",
        json={"investor_id": investor_id, "transaction_type": "allocation", "amount": "10", "description": "Tower A"},
        headers=admin_headers,
    )
    assert denied.status_code == 400
    assert denied.json()["error"]["details"]["available_balance"] == "0"

    inflow = await client.post(
        "/admin/capital/transactions",
        json={"investor_id": investor_id, "transaction_type": "inflow", "amount": "1000", "description": "Wire"},
        headers=admin_headers,
    )
    assert inflow.status_code == 201

    allocation = await client.post(
        "/admin/capital/transactions",
        json={"investor_id": investor_id, "transaction_type": "allocation", "amount": "400", "description": "Tower A"},
        headers=admin_headers,
    )
    assert allocation.status_code == 201

    listing = await client.get(f"/admin/capital/transactions?investor_id={investor_id}", headers=admin_headers)
    assert listing.json()["pagination"]["total"] == 2


async def test_bank_details_round_trip(client, seed, investor_headers):
    missing = await client.get("/investor/bank-details", headers=investor_headers)
    assert missing.status_code == 404

    payload = {
        "account_holder_name": "Fund One LLP",
        "bank_name": "HDFC Bank",
        "account_number": "50100012345678",
        "ifsc_code": "HDFC0001234",
    }
    saved = await client.put("/investor/bank-details", json=payload, headers=investor_headers)
    assert saved.status_code == 200, saved.text
    assert saved.json()["ifsc_code"] == "HDFC0001234"

    bad = await client.put(
        "/investor/bank-details", json={**payload, "ifsc_code": "BAD"}, headers=investor_headers
    )
    assert bad.status_code == 422
    assert bad.json()["error"]["code"] == "VALIDATION_ERROR"


async def test_review_twice_raises_state_error(seed, session_factory, admin_actor):
    async with session_factory() as s:
        submission = await capital_service.submit_payment(
            s, seed["investor"].id, "750", date(2026, 10, 3), {"user_id": "investor-0001"}
        )
        await capital_service.review_submission(s, submission.id, "approve", admin_actor)
        with pytest.raises(StateError):
            await capital_service.review_submission(s, submission.id, "approve", admin_actor)
