"""
Purchase request lifecycle.

draft -> submitted -> approved -> funded -> po_generated -> completed, with
rejected and cancelled as exits. Every move goes through
state_machine.transition() and writes an audit row in the caller's transaction.
"""

from decimal import Decimal, InvalidOperation
from typing import Iterable, Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from finverno.database import utcnow
from finverno.errors import NotFoundError, StateError, ValidationError
from finverno.models.enums import PurchaseRequestItemStatus, PurchaseRequestStatus
from finverno.models.project import Project, ProjectMaterial
from finverno.models.purchase_request import PurchaseRequest, PurchaseRequestItem
from finverno.services.audit_service import create_audit_log
from finverno.services.state_machine import (
    EDITABLE_PURCHASE_REQUEST_STATES,
    transition,
)

logger = structlog.get_logger()

PR = PurchaseRequestStatus
ITEM = PurchaseRequestItemStatus
ENTITY = "purchase_request"
PO_PREFIX = "PO"


def _qty(value, field: str) -> Decimal:
    try:
        qty = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError(f"{field} must be a number")
    if not qty.is_finite():
        raise ValidationError(f"{field} must be a finite number")
    return qty


def _field(line, name, default=None):
    if isinstance(line, dict):
        return line.get(name, default)
    return getattr(line, name, default)


async def get_purchase_request(
    session: AsyncSession, request_id, contractor_id=None, for_update: bool = False
) -> PurchaseRequest:
    """Load a request; scoped to the contractor when one is given."""
    q = select(PurchaseRequest).where(PurchaseRequest.id == request_id)
    if contractor_id is not None:
        q = q.where(PurchaseRequest.contractor_id == contractor_id)
    if for_update:
        q = q.with_for_update()
    result = await session.execute(q)
    pr = result.scalar_one_or_none()
    if not pr:
        raise NotFoundError("Purchase request not found")
    return pr


async def get_items(session: AsyncSession, request_id) -> list[PurchaseRequestItem]:
    result = await session.execute(
        select(PurchaseRequestItem)
        .where(PurchaseRequestItem.purchase_request_id == request_id)
        .order_by(PurchaseRequestItem.created_at, PurchaseRequestItem.id)
    )
    return list(result.scalars().all())


async def get_items_map(
    session: AsyncSession, request_ids: list
) -> dict[str, list[PurchaseRequestItem]]:
    """Batch load items for many requests in one query."""
    if not request_ids:
        return {}
    result = await session.execute(
        select(PurchaseRequestItem)
        .where(PurchaseRequestItem.purchase_request_id.in_(request_ids))
        .order_by(PurchaseRequestItem.created_at, PurchaseRequestItem.id)
    )
    items: dict[str, list[PurchaseRequestItem]] = {}
    for item in result.scalars().all():
        items.setdefault(str(item.purchase_request_id), []).append(item)
    return items


async def _build_items(
    session: AsyncSession, project_id, contractor_id, lines: Iterable
) -> list[PurchaseRequestItem]:
    lines = list(lines or [])
    if not lines:
        raise ValidationError("At least one item is required")

    material_ids = [_field(line, "project_material_id") for line in lines]
    result = await session.execute(
        select(ProjectMaterial).where(ProjectMaterial.id.in_(material_ids))
    )
    materials = {str(m.id): m for m in result.scalars().all()}

    items = []
    for idx, line in enumerate(lines):
        material = materials.get(str(_field(line, "project_material_id")))
        if (
            material is None
            or str(material.project_id) != str(project_id)
            or str(material.contractor_id) != str(contractor_id)
        ):
            raise ValidationError(
                "Project material does not belong to this project",
                details={"index": idx, "project_material_id": str(_field(line, "project_material_id"))},
            )
        requested = _qty(_field(line, "requested_qty"), "requested_qty")
        if requested <= 0:
            raise ValidationError(
                "requested_qty must be greater than 0", details={"index": idx}
            )
        unit_rate = _field(line, "unit_rate")
        tax_percent = _field(line, "tax_percent")
        items.append(
            PurchaseRequestItem(
                project_material_id=material.id,
                item_description=_field(line, "item_description") or material.name,
                hsn_code=_field(line, "hsn_code"),
                requested_qty=requested,
                unit_rate=_qty(unit_rate, "unit_rate") if unit_rate is not None else None,
                tax_percent=_qty(tax_percent, "tax_percent") if tax_percent is not None else Decimal("0"),
                status=ITEM.PENDING.value,
            )
        )
    return items


async def create_draft(
    session: AsyncSession,
    contractor_id,
    project_id,
    lines: Iterable,
    actor: dict,
    remarks: Optional[str] = None,
) -> tuple[PurchaseRequest, list[PurchaseRequestItem]]:
    result = await session.execute(
        select(Project).where(
            Project.id == project_id, Project.contractor_id == contractor_id
        )
    )
    project = result.scalar_one_or_none()
    if not project:
        raise NotFoundError("Project not found")

    items = await _build_items(session, project.id, contractor_id, lines)

    pr = PurchaseRequest(
        project_id=project.id,
        contractor_id=contractor_id,
        status=PR.DRAFT.value,
        remarks=remarks,
        delivery_status="not_dispatched",
    )
    session.add(pr)
    await session.flush()

    for item in items:
        item.purchase_request_id = pr.id
        session.add(item)
    await session.flush()

    await create_audit_log(
        session,
        actor_id=actor.get("user_id"),
        action="PURCHASE_REQUEST_CREATED",
        entity_type=ENTITY,
        entity_id=pr.id,
        after_state={"status": pr.status, "items": len(items)},
        actor_email=actor.get("email"),
    )
    logger.info("purchase_request_created", purchase_request_id=str(pr.id), items=len(items))
    return pr, items


async def edit_draft(
    session: AsyncSession,
    request_id,
    contractor_id,
    actor: dict,
    remarks: Optional[str] = None,
    lines: Optional[Iterable] = None,
) -> tuple[PurchaseRequest, list[PurchaseRequestItem]]:
    pr = await get_purchase_request(session, request_id, contractor_id, for_update=True)
    if PR(pr.status) not in EDITABLE_PURCHASE_REQUEST_STATES:
        raise StateError(
            f"Cannot edit purchase request: current status is '{pr.status}'",
            current_state=pr.status,
        )

    if remarks is not None:
        pr.remarks = remarks

    if lines is not None:
        new_items = await _build_items(session, pr.project_id, contractor_id, lines)
        for existing in await get_items(session, pr.id):
            await session.delete(existing)
        await session.flush()
        for item in new_items:
            item.purchase_request_id = pr.id
            session.add(item)

    await session.flush()
    items = await get_items(session, pr.id)
    await create_audit_log(
        session,
        actor_id=actor.get("user_id"),
        action="PURCHASE_REQUEST_UPDATED",
        entity_type=ENTITY,
        entity_id=pr.id,
        after_state={"status": pr.status, "items": len(items)},
        actor_email=actor.get("email"),
    )
    return pr, items


async def _move(
    session: AsyncSession,
    pr: PurchaseRequest,
    target: PurchaseRequestStatus,
    actor: dict,
    action: str,
    verb: str,
) -> dict:
    before = {"status": pr.status}
    pr.status = transition(PR, pr.status, target, action=verb).value
    await session.flush()
    await create_audit_log(
        session,
        actor_id=actor.get("user_id"),
        action=action,
        entity_type=ENTITY,
        entity_id=pr.id,
        before_state=before,
        after_state={"status": pr.status},
        actor_email=actor.get("email"),
    )
    return before


async def submit(session: AsyncSession, request_id, contractor_id, actor: dict) -> PurchaseRequest:
    pr = await get_purchase_request(session, request_id, contractor_id, for_update=True)
    transition(PR, pr.status, PR.SUBMITTED, action="submit purchase request")
    pr.submitted_at = utcnow()
    await _move(session, pr, PR.SUBMITTED, actor, "PURCHASE_REQUEST_SUBMITTED", "submit purchase request")
    logger.info("purchase_request_submitted", purchase_request_id=str(pr.id))
    return pr


async def cancel(session: AsyncSession, request_id, contractor_id, actor: dict) -> PurchaseRequest:
    pr = await get_purchase_request(session, request_id, contractor_id, for_update=True)
    await _move(session, pr, PR.CANCELLED, actor, "PURCHASE_REQUEST_CANCELLED", "cancel purchase request")
    logger.info("purchase_request_cancelled", purchase_request_id=str(pr.id))
    return pr


async def review(
    session: AsyncSession,
    request_id,
    decisions: Iterable,
    actor: dict,
    notes: Optional[str] = None,
) -> tuple[PurchaseRequest, list[PurchaseRequestItem]]:
    """
    Apply per-item review decisions to a submitted request.

    Each decision is (item_id, status approved|rejected, approved_qty?).
    The request only leaves `submitted` once every item has been reviewed:
    all rejected -> rejected, otherwise approved.
    """
    pr = await get_purchase_request(session, request_id, for_update=True)
    transition(PR, pr.status, PR.APPROVED, action="review purchase request")

    decisions = list(decisions or [])
    if not decisions:
        raise ValidationError("At least one item decision is required")

    items = await get_items(session, pr.id)
    by_id = {str(item.id): item for item in items}

    for idx, decision in enumerate(decisions):
        item = by_id.get(str(_field(decision, "item_id")))
        if item is None:
            raise ValidationError(
                "Item does not belong to this purchase request",
                details={"index": idx, "item_id": str(_field(decision, "item_id"))},
            )
        outcome = _field(decision, "status")
        if isinstance(outcome, ITEM):
            outcome = outcome.value
        if outcome not in (ITEM.APPROVED.value, ITEM.REJECTED.value):
            raise ValidationError(
                "Item status must be 'approved' or 'rejected'", details={"index": idx}
            )

        requested = _qty(item.requested_qty, "requested_qty")
        raw_qty = _field(decision, "approved_qty")
        if raw_qty is None:
            approved_qty = requested if outcome == ITEM.APPROVED.value else Decimal("0")
        else:
            approved_qty = _qty(raw_qty, "approved_qty")
        if approved_qty < 0 or approved_qty > requested:
            raise ValidationError(
                "approved_qty must be between 0 and requested_qty",
                details={"index": idx, "requested_qty": str(requested)},
            )

        item.status = outcome
        item.approved_qty = approved_qty

    await session.flush()

    statuses = {item.status for item in items}
    if statuses <= {ITEM.APPROVED.value, ITEM.REJECTED.value}:
        now = utcnow()
        target = PR.REJECTED if statuses == {ITEM.REJECTED.value} else PR.APPROVED
        pr.approved_by = actor.get("user_id")
        pr.approval_notes = notes
        if target == PR.APPROVED:
            pr.approved_at = now
        await _move(
            session,
            pr,
            target,
            actor,
            f"PURCHASE_REQUEST_{target.value.upper()}",
            "review purchase request",
        )
        logger.info(
            "purchase_request_reviewed",
            purchase_request_id=str(pr.id),
            status=pr.status,
        )
    else:
        logger.info(
            "purchase_request_partially_reviewed",
            purchase_request_id=str(pr.id),
            pending=sum(1 for item in items if item.status == ITEM.PENDING.value),
        )
    return pr, items


async def fund(session: AsyncSession, request_id, actor: dict) -> PurchaseRequest:
    pr = await get_purchase_request(session, request_id, for_update=True)
    transition(PR, pr.status, PR.FUNDED, action="fund purchase request")
    pr.funded_at = utcnow()
    await _move(session, pr, PR.FUNDED, actor, "PURCHASE_REQUEST_FUNDED", "fund purchase request")
    logger.info("purchase_request_funded", purchase_request_id=str(pr.id))
    return pr


async def _next_po_number(session: AsyncSession) -> str:
    result = await session.execute(
        select(func.count(PurchaseRequest.id)).where(PurchaseRequest.po_number.is_not(None))
    )
    count = (result.scalar() or 0) + 1
    return f"{PO_PREFIX}-{count:06d}"


async def generate_po(session: AsyncSession, request_id, actor: dict) -> PurchaseRequest:
    pr = await get_purchase_request(session, request_id, for_update=True)
    transition(PR, pr.status, PR.PO_GENERATED, action="generate purchase order")
    pr.po_number = await _next_po_number(session)
    for item in await get_items(session, pr.id):
        if item.status == ITEM.APPROVED.value:
            item.status = ITEM.ORDERED.value
    await _move(session, pr, PR.PO_GENERATED, actor, "PURCHASE_ORDER_GENERATED", "generate purchase order")
    logger.info("purchase_order_generated", purchase_request_id=str(pr.id), po_number=pr.po_number)
    return pr


async def complete(session: AsyncSession, request_id, actor: dict) -> PurchaseRequest:
    pr = await get_purchase_request(session, request_id, for_update=True)
    transition(PR, pr.status, PR.COMPLETED, action="complete purchase request")
    for item in await get_items(session, pr.id):
        if item.status == ITEM.ORDERED.value:
            item.status = ITEM.RECEIVED.value
    await _move(session, pr, PR.COMPLETED, actor, "PURCHASE_REQUEST_COMPLETED", "complete purchase request")
    logger.info("purchase_request_completed", purchase_request_id=str(pr.id))
    return pr


async def list_purchase_requests(
    session: AsyncSession,
    page: int = 1,
    limit: int = 20,
    contractor_id=None,
    project_id=None,
    status: Optional[str] = None,
) -> tuple[list[PurchaseRequest], int]:
    q = select(PurchaseRequest)
    count_q = select(func.count(PurchaseRequest.id))
    filters = []
    if contractor_id is not None:
        filters.append(PurchaseRequest.contractor_id == contractor_id)
    if project_id is not None:
        filters.append(PurchaseRequest.project_id == project_id)
    if status:
        filters.append(PurchaseRequest.status == status)
    if filters:
        q = q.where(*filters)
        count_q = count_q.where(*filters)

    total = (await session.execute(count_q)).scalar() or 0
    result = await session.execute(
        q.order_by(PurchaseRequest.created_at.desc()).offset((page - 1) * limit).limit(limit)
    )
    return list(result.scalars().all()), total
