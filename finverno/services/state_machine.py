"""
Lifecycle transition tables.

Each workflow has one table mapping a state to the states it may move to.
Services call `transition()` instead of re-checking preconditions ad hoc, so
an invalid move is rejected in exactly one place with a StateError naming the
current state.
"""

from enum import Enum
from typing import Mapping, Type

from finverno.errors import StateError
from finverno.models.enums import (
    DeliveryStatus,
    PurchaseRequestStatus,
    VerificationStatus,
)

PR = PurchaseRequestStatus
DS = DeliveryStatus
VS = VerificationStatus

PURCHASE_REQUEST_TRANSITIONS: Mapping[PR, frozenset] = {
    PR.DRAFT: frozenset({PR.SUBMITTED, PR.CANCELLED}),
    PR.SUBMITTED: frozenset({PR.APPROVED, PR.REJECTED, PR.CANCELLED}),
    PR.APPROVED: frozenset({PR.FUNDED}),
    PR.FUNDED: frozenset({PR.PO_GENERATED}),
    PR.PO_GENERATED: frozenset({PR.COMPLETED}),
    PR.COMPLETED: frozenset(),
    PR.REJECTED: frozenset(),
    PR.CANCELLED: frozenset(),
}

DELIVERY_TRANSITIONS: Mapping[DS, frozenset] = {
    DS.NOT_DISPATCHED: frozenset({DS.DISPATCHED}),
    DS.DISPATCHED: frozenset({DS.DISPUTED, DS.DELIVERED}),
    DS.DISPUTED: frozenset({DS.DELIVERED}),
    DS.DELIVERED: frozenset(),
}

TAKEOFF_TRANSITIONS: Mapping[VS, frozenset] = {
    VS.NONE: frozenset(
        {VS.PENDING, VS.VERIFIED, VS.DISPUTED, VS.REVISION_REQUIRED}
    ),
    VS.PENDING: frozenset(
        {VS.PENDING, VS.VERIFIED, VS.DISPUTED, VS.REVISION_REQUIRED}
    ),
    VS.DISPUTED: frozenset({VS.PENDING}),
    VS.REVISION_REQUIRED: frozenset({VS.PENDING}),
    VS.VERIFIED: frozenset(),
}

_TABLES: dict = {
    PR: ("purchase request", PURCHASE_REQUEST_TRANSITIONS),
    DS: ("delivery", DELIVERY_TRANSITIONS),
    VS: ("takeoff verification", TAKEOFF_TRANSITIONS),
}

EDITABLE_PURCHASE_REQUEST_STATES = frozenset({PR.DRAFT})
TERMINAL_PURCHASE_REQUEST_STATES = frozenset(
    state for state, targets in PURCHASE_REQUEST_TRANSITIONS.items() if not targets
)
INACTIVE_PURCHASE_REQUEST_STATES = frozenset({PR.REJECTED, PR.CANCELLED})
REVIEW_OUTCOMES = frozenset({VS.VERIFIED, VS.DISPUTED, VS.REVISION_REQUIRED})


def _coerce(enum_cls: Type[Enum], value) -> Enum:
    if isinstance(value, enum_cls):
        return value
    # NULL verification status on legacy rows means "none"
    if value is None and enum_cls is VS:
        return VS.NONE
    try:
        return enum_cls(value)
    except ValueError:
        label = _TABLES[enum_cls][0]
        raise StateError(
            f"Unknown {label} status '{value}'", current_state=str(value)
        )


def can_transition(enum_cls: Type[Enum], current, target) -> bool:
    table = _TABLES[enum_cls][1]
    return _coerce(enum_cls, target) in table[_coerce(enum_cls, current)]


def transition(enum_cls: Type[Enum], current, target, action: str = None) -> Enum:
    """Return the target state, or raise StateError if the move is not allowed."""
    label, table = _TABLES[enum_cls]
    current_state = _coerce(enum_cls, current)
    target_state = _coerce(enum_cls, target)
    if target_state not in table[current_state]:
        verb = action or f"move {label} to '{target_state.value}'"
        raise StateError(
            f"Cannot {verb}: current status is '{current_state.value}'",
            current_state=current_state.value,
        )
    return target_state
