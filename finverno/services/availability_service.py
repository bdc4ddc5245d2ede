"""
Project-material availability.

max_requestable = required - available - requested - ordered, floored at zero.

  requested: pending/approved items on active purchase requests
  ordered:   ordered/received items on active purchase requests
  active:    every request status except rejected and cancelled (drafts count)

Nothing here is stored or cached; every read recomputes from the item rows.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from finverno.models.enums import PurchaseRequestItemStatus
from finverno.models.project import ProjectMaterial
from finverno.models.purchase_request import PurchaseRequest, PurchaseRequestItem
from finverno.services.state_machine import INACTIVE_PURCHASE_REQUEST_STATES

ZERO = Decimal("0")

_REQUESTED_ITEM_STATES = {
    PurchaseRequestItemStatus.PENDING.value,
    PurchaseRequestItemStatus.APPROVED.value,
}
_ORDERED_ITEM_STATES = {
    PurchaseRequestItemStatus.ORDERED.value,
    PurchaseRequestItemStatus.RECEIVED.value,
}
_INACTIVE = {s.value for s in INACTIVE_PURCHASE_REQUEST_STATES}


@dataclass(frozen=True)
class RequestItemQuantity:
    request_status: str
    item_status: str
    requested_qty: Decimal
    approved_qty: Optional[Decimal] = None


@dataclass
class MaterialAvailability:
    project_material_id: str
    required_qty: Decimal
    available_qty: Decimal
    requested_qty: Decimal
    ordered_qty: Decimal
    max_requestable: Decimal


def to_decimal(value) -> Decimal:
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def is_active_request(status: str) -> bool:
    return status not in _INACTIVE


def _effective_qty(item: RequestItemQuantity) -> Decimal:
    if item.item_status != PurchaseRequestItemStatus.PENDING.value and item.approved_qty is not None:
        return to_decimal(item.approved_qty)
    return to_decimal(item.requested_qty)


def compute_availability(
    project_material_id,
    required_qty,
    available_qty,
    items: Iterable[RequestItemQuantity],
) -> MaterialAvailability:
    requested = ZERO
    ordered = ZERO
    for item in items:
        if not is_active_request(item.request_status):
            continue
        if item.item_status in _REQUESTED_ITEM_STATES:
            requested += _effective_qty(item)
        elif item.item_status in _ORDERED_ITEM_STATES:
            ordered += _effective_qty(item)

    required = to_decimal(required_qty)
    available = to_decimal(available_qty)
    remainder = required - available - requested - ordered
    return MaterialAvailability(
        project_material_id=str(project_material_id),
        required_qty=required,
        available_qty=available,
        requested_qty=requested,
        ordered_qty=ordered,
        max_requestable=max(remainder, ZERO),
    )


async def load_request_items(
    session: AsyncSession, project_material_ids: list
) -> dict[str, list[RequestItemQuantity]]:
    """All purchase-request items for the given materials, keyed by material id."""
    if not project_material_ids:
        return {}
    result = await session.execute(
        select(
            PurchaseRequestItem.project_material_id,
            PurchaseRequest.status,
            PurchaseRequestItem.status,
            PurchaseRequestItem.requested_qty,
            PurchaseRequestItem.approved_qty,
        )
        .join(PurchaseRequest, PurchaseRequestItem.purchase_request_id == PurchaseRequest.id)
        .where(PurchaseRequestItem.project_material_id.in_(project_material_ids))
    )
    items: dict[str, list[RequestItemQuantity]] = {}
    for material_id, request_status, item_status, requested_qty, approved_qty in result.all():
        items.setdefault(str(material_id), []).append(
            RequestItemQuantity(
                request_status=request_status,
                item_status=item_status,
                requested_qty=to_decimal(requested_qty),
                approved_qty=to_decimal(approved_qty) if approved_qty is not None else None,
            )
        )
    return items


async def get_project_availability(
    session: AsyncSession, project_id
) -> list[tuple[ProjectMaterial, MaterialAvailability]]:
    result = await session.execute(
        select(ProjectMaterial)
        .where(ProjectMaterial.project_id == project_id)
        .order_by(ProjectMaterial.created_at)
    )
    materials = list(result.scalars().all())
    items_by_material = await load_request_items(session, [m.id for m in materials])
    return [
        (
            material,
            compute_availability(
                material.id,
                material.required_qty,
                material.available_qty,
                items_by_material.get(str(material.id), []),
            ),
        )
        for material in materials
    ]


async def get_material_availability(
    session: AsyncSession, material: ProjectMaterial
) -> MaterialAvailability:
    items_by_material = await load_request_items(session, [material.id])
    return compute_availability(
        material.id,
        material.required_qty,
        material.available_qty,
        items_by_material.get(str(material.id), []),
    )
