"""
Unit tests for the max_requestable formula in availability_service.
"""

from decimal import Decimal

from finverno.services.availability_service import (
    RequestItemQuantity,
    compute_availability,
    is_active_request,
)


def _item(request_status, item_status, requested, approved=None):
    return RequestItemQuantity(
        request_status=request_status,
        item_status=item_status,
        requested_qty=Decimal(requested),
        approved_qty=Decimal(approved) if approved is not None else None,
    )


def test_no_requests():
    result = compute_availability("m1", 100, 20, [])
    assert result.max_requestable == Decimal("80")
    assert result.requested_qty == 0
    assert result.ordered_qty == 0


def test_draft_requests_count_as_active():
    before = compute_availability("m1", Decimal("100"), Decimal("20"), [])
    after = compute_availability(
        "m1", Decimal("100"), Decimal("20"), [_item("draft", "pending", "100")]
    )
    assert before.max_requestable == Decimal("80")
    assert after.max_requestable == Decimal("0")
    assert after.requested_qty == Decimal("100")


def test_rejected_and_cancelled_requests_ignored():
    items = [
        _item("rejected", "rejected", "30"),
        _item("cancelled", "pending", "40"),
    ]
    assert compute_availability("m1", 100, 0, items).max_requestable == Decimal("100")


def test_requested_and_ordered_buckets():
    items = [
        _item("submitted", "pending", "10"),
        _item("approved", "approved", "20", approved="15"),
        _item("po_generated", "ordered", "25", approved="25"),
        _item("completed", "received", "5", approved="5"),
        _item("approved", "rejected", "7", approved="0"),
    ]
    result = compute_availability("m1", 100, 10, items)
    assert result.requested_qty == Decimal("25")
    assert result.ordered_qty == Decimal("30")
    assert result.max_requestable == Decimal("35")


def test_floored_at_zero():
    result = compute_availability("m1", 10, 5, [_item("submitted", "pending", "50")])
    assert result.max_requestable == Decimal("0")


def test_is_active_request():
    assert is_active_request("draft")
    assert is_active_request("completed")
    assert not is_active_request("rejected")
    assert not is_active_request("cancelled")
