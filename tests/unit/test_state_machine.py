"""
Unit tests for finverno/services/state_machine.py

Tests: purchase request, delivery and takeoff transition tables; StateError
carries the current state.
"""

import pytest

from finverno.errors import StateError
from finverno.models.enums import DeliveryStatus, PurchaseRequestStatus, VerificationStatus
from finverno.services.state_machine import (
    TERMINAL_PURCHASE_REQUEST_STATES,
    can_transition,
    transition,
)

PR = PurchaseRequestStatus
DS = DeliveryStatus
VS = VerificationStatus


@pytest.mark.parametrize(
    "current,target",
    [
        (PR.DRAFT, PR.SUBMITTED),
        (PR.DRAFT, PR.CANCELLED),
        (PR.SUBMITTED, PR.APPROVED),
        (PR.SUBMITTED, PR.REJECTED),
        (PR.APPROVED, PR.FUNDED),
        (PR.FUNDED, PR.PO_GENERATED),
        (PR.PO_GENERATED, PR.COMPLETED),
    ],
)
def test_purchase_request_allowed(current, target):
    assert transition(PR, current.value, target) == target


@pytest.mark.parametrize(
    "current,target",
    [
        (PR.DRAFT, PR.APPROVED),
        (PR.SUBMITTED, PR.FUNDED),
        (PR.APPROVED, PR.SUBMITTED),
        (PR.COMPLETED, PR.CANCELLED),
        (PR.REJECTED, PR.SUBMITTED),
    ],
)
def test_purchase_request_rejected(current, target):
    assert not can_transition(PR, current, target)
    with pytest.raises(StateError) as exc:
        transition(PR, current, target)
    assert exc.value.current_state == current.value
    assert exc.value.status_code == 400


def test_terminal_states():
    assert TERMINAL_PURCHASE_REQUEST_STATES == {PR.COMPLETED, PR.REJECTED, PR.CANCELLED}


def test_dispatch_only_from_not_dispatched():
    assert transition(DS, "not_dispatched", DS.DISPATCHED) == DS.DISPATCHED
    for current in ("dispatched", "disputed", "delivered"):
        with pytest.raises(StateError) as exc:
            transition(DS, current, DS.DISPATCHED, action="dispatch")
        assert f"current status is '{current}'" in exc.value.message


def test_dispute_then_deliver():
    assert can_transition(DS, DS.DISPATCHED, DS.DISPUTED)
    assert can_transition(DS, DS.DISPUTED, DS.DELIVERED)
    assert not can_transition(DS, DS.DISPUTED, DS.DISPUTED)
    assert not can_transition(DS, DS.DELIVERED, DS.DISPUTED)


def test_takeoff_resubmission_paths():
    for current in (VS.NONE, VS.REVISION_REQUIRED, VS.DISPUTED, VS.PENDING):
        assert can_transition(VS, current, VS.PENDING)
    assert not can_transition(VS, VS.VERIFIED, VS.PENDING)


def test_takeoff_null_status_is_none():
    assert transition(VS, None, VS.PENDING) == VS.PENDING


def test_unknown_status_is_state_error():
    with pytest.raises(StateError):
        transition(PR, "archived", PR.SUBMITTED)
