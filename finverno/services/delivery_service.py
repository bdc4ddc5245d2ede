"""
Delivery and dispute workflow.

not_dispatched -> dispatched -> (disputed ->) delivered

Dispatch opens a dispute window; a dispute may be raised until the deadline.
After the deadline, the deemed-delivery sweep generates the invoice. The sweep
claims rows first (invoice_claimed_at, committed) so overlapping runs never
pick up the same request, then generates each invoice in its own transaction.
"""

from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation
import math
from typing import Awaitable, Callable, Optional

from sqlalchemy import select, update, or_
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
import structlog

from finverno.config import settings
from finverno.database import utcnow
from finverno.errors import AuthorizationError, NotFoundError, StateError, ValidationError
from finverno.models.contractor import Contractor
from finverno.models.enums import DeliveryStatus
from finverno.models.project import Project
from finverno.models.purchase_request import PurchaseRequest
from finverno.services.audit_service import create_audit_log
from finverno.services.invoice_service import generate_invoice_for_request
from finverno.services.state_machine import transition

logger = structlog.get_logger()

DS = DeliveryStatus
ENTITY = "purchase_request"


def clamp_dispute_window(value) -> int:
    """
    Normalise a requested dispute window to whole hours.

    Missing or non-numeric input falls back to the default; numbers (and
    numeric strings) are clamped into [MIN, MAX].
    """
    default = settings.DEFAULT_DISPUTE_WINDOW_HOURS
    low = settings.MIN_DISPUTE_WINDOW_HOURS
    high = settings.MAX_DISPUTE_WINDOW_HOURS

    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, str):
        try:
            hours = float(value.strip())
        except ValueError:
            return default
    elif isinstance(value, (int, float, Decimal)):
        try:
            hours = float(value)
        except OverflowError:
            return high if value > 0 else low
        except (InvalidOperation, ValueError):
            return default
    else:
        return default

    if math.isnan(hours):
        return default
    hours = min(max(hours, low), high)
    return int(round(hours))


def dispute_window_state(pr: PurchaseRequest, now: Optional[datetime] = None) -> dict:
    now = now or utcnow()
    open_ = (
        pr.delivery_status == DS.DISPATCHED.value
        and pr.dispute_deadline is not None
        and now < pr.dispute_deadline
    )
    remaining = None
    if open_:
        remaining = round((pr.dispute_deadline - now).total_seconds() / 3600, 2)
    return {"can_dispute": open_, "hours_remaining": remaining}


async def _load(
    session: AsyncSession, request_id, contractor_id=None, for_update: bool = True
) -> PurchaseRequest:
    q = select(PurchaseRequest).where(PurchaseRequest.id == request_id)
    if for_update:
        q = q.with_for_update()
    result = await session.execute(q)
    pr = result.scalar_one_or_none()
    if not pr:
        raise NotFoundError("Purchase request not found")
    if contractor_id is not None and str(pr.contractor_id) != str(contractor_id):
        raise AuthorizationError("You can only act on your own purchase requests")
    return pr


async def _audit(session, pr, actor: dict, action: str, before: dict):
    await create_audit_log(
        session,
        actor_id=actor.get("user_id"),
        action=action,
        entity_type=ENTITY,
        entity_id=pr.id,
        before_state=before,
        after_state={"delivery_status": pr.delivery_status},
        actor_email=actor.get("email"),
    )


async def dispatch(
    session: AsyncSession,
    request_id,
    actor: dict,
    dispute_window_hours=None,
    now: Optional[datetime] = None,
) -> PurchaseRequest:
    pr = await _load(session, request_id)
    before = {"delivery_status": pr.delivery_status}
    target = transition(DS, pr.delivery_status, DS.DISPATCHED, action="dispatch")

    now = now or utcnow()
    hours = clamp_dispute_window(dispute_window_hours)
    pr.delivery_status = target.value
    pr.dispatched_at = now
    pr.dispute_window_hours = hours
    pr.dispute_deadline = now + timedelta(hours=hours)
    await session.flush()

    await _audit(session, pr, actor, "DELIVERY_DISPATCHED", before)
    logger.info(
        "delivery_dispatched",
        purchase_request_id=str(pr.id),
        dispute_window_hours=hours,
        dispute_deadline=pr.dispute_deadline.isoformat(),
    )
    return pr


async def raise_dispute(
    session: AsyncSession,
    request_id,
    reason: str,
    actor: dict,
    contractor_id=None,
    now: Optional[datetime] = None,
) -> PurchaseRequest:
    """Raise a dispute; contractor_id scopes the call to the owning contractor."""
    if not reason or not reason.strip():
        raise ValidationError("dispute_reason is required")

    pr = await _load(session, request_id, contractor_id)
    before = {"delivery_status": pr.delivery_status}
    target = transition(DS, pr.delivery_status, DS.DISPUTED, action="raise dispute")

    now = now or utcnow()
    if pr.dispute_deadline is None or now >= pr.dispute_deadline:
        raise StateError(
            "Dispute window has closed. Goods are deemed delivered.",
            current_state=pr.delivery_status,
        )

    pr.delivery_status = target.value
    pr.dispute_raised_at = now
    pr.dispute_raised_by = actor.get("user_id")
    pr.dispute_reason = reason.strip()
    await session.flush()

    await _audit(session, pr, actor, "DELIVERY_DISPUTED", before)
    logger.info("delivery_disputed", purchase_request_id=str(pr.id), raised_by=pr.dispute_raised_by)
    return pr


async def confirm_delivery(
    session: AsyncSession, request_id, contractor_id, actor: dict
):
    """Contractor confirms receipt; the invoice is generated in the same transaction."""
    pr = await _load(session, request_id, contractor_id)
    before = {"delivery_status": pr.delivery_status}
    transition(DS, pr.delivery_status, DS.DELIVERED, action="confirm delivery")

    invoice = await generate_invoice_for_request(
        session, pr.id, generated_by=actor.get("user_id") or "contractor", actor_email=actor.get("email")
    )
    await _audit(session, pr, actor, "DELIVERY_CONFIRMED", before)
    logger.info("delivery_confirmed", purchase_request_id=str(pr.id))
    return pr, invoice


async def resolve_dispute(session: AsyncSession, request_id, actor: dict):
    """Admin closes a dispute as delivered and generates the invoice."""
    pr = await _load(session, request_id)
    before = {"delivery_status": pr.delivery_status}
    transition(DS, pr.delivery_status, DS.DELIVERED, action="resolve dispute")
    if pr.delivery_status != DS.DISPUTED.value:
        raise StateError(
            f"Cannot resolve dispute: current status is '{pr.delivery_status}'",
            current_state=pr.delivery_status,
        )

    invoice = await generate_invoice_for_request(
        session, pr.id, generated_by=actor.get("user_id") or "admin", actor_email=actor.get("email")
    )
    await _audit(session, pr, actor, "DISPUTE_RESOLVED", before)
    logger.info("dispute_resolved", purchase_request_id=str(pr.id))
    return pr, invoice


async def list_deliveries(
    session: AsyncSession,
    contractor_id=None,
    project_id=None,
    status: Optional[str] = None,
) -> list[tuple[PurchaseRequest, Optional[str], Optional[str]]]:
    """Dispatched, disputed and delivered requests with project and company names."""
    q = (
        select(PurchaseRequest, Project.project_name, Contractor.company_name)
        .join(Project, PurchaseRequest.project_id == Project.id)
        .join(Contractor, PurchaseRequest.contractor_id == Contractor.id)
        .where(PurchaseRequest.delivery_status != DS.NOT_DISPATCHED.value)
    )
    if contractor_id is not None:
        q = q.where(PurchaseRequest.contractor_id == contractor_id)
    if project_id is not None:
        q = q.where(PurchaseRequest.project_id == project_id)
    if status:
        q = q.where(PurchaseRequest.delivery_status == status)
    result = await session.execute(q.order_by(PurchaseRequest.dispatched_at.desc()))
    return [tuple(row) for row in result.all()]


# ---------- DEEMED-DELIVERY SWEEP ----------


async def claim_overdue_requests(
    session: AsyncSession, now: datetime, claim_ttl_minutes: Optional[int] = None
) -> list:
    """
    Mark overdue dispatched requests as claimed and return their ids.

    A claim older than the TTL is treated as abandoned and can be re-claimed.
    Rows locked by a concurrent sweep are skipped.
    """
    ttl = claim_ttl_minutes if claim_ttl_minutes is not None else settings.SWEEP_CLAIM_TTL_MINUTES
    stale_before = now - timedelta(minutes=ttl)
    result = await session.execute(
        select(PurchaseRequest.id)
        .where(
            PurchaseRequest.delivery_status == DS.DISPATCHED.value,
            PurchaseRequest.dispute_deadline < now,
            PurchaseRequest.invoice_generated_at.is_(None),
            or_(
                PurchaseRequest.invoice_claimed_at.is_(None),
                PurchaseRequest.invoice_claimed_at < stale_before,
            ),
        )
        .order_by(PurchaseRequest.dispute_deadline)
        .with_for_update(skip_locked=True)
    )
    ids = list(result.scalars().all())
    if ids:
        await session.execute(
            update(PurchaseRequest)
            .where(PurchaseRequest.id.in_(ids))
            .values(invoice_claimed_at=now)
        )
    return ids


async def release_claim(session_factory: async_sessionmaker, request_id) -> None:
    try:
        async with session_factory() as session:
            async with session.begin():
                await session.execute(
                    update(PurchaseRequest)
                    .where(
                        PurchaseRequest.id == request_id,
                        PurchaseRequest.invoice_generated_at.is_(None),
                    )
                    .values(invoice_claimed_at=None)
                )
    except Exception as e:
        # The claim expires after SWEEP_CLAIM_TTL_MINUTES either way.
        logger.error("sweep_claim_release_failed", purchase_request_id=str(request_id), error=str(e))


async def _deemed_delivery_invoice(session: AsyncSession, request_id):
    return await generate_invoice_for_request(session, request_id, generated_by="deemed_delivery")


def _error_message(exc: Exception) -> str:
    return getattr(exc, "message", None) or str(exc) or type(exc).__name__


async def run_deemed_delivery_sweep(
    session_factory: async_sessionmaker,
    generate: Callable[[AsyncSession, object], Awaitable] = _deemed_delivery_invoice,
    now: Optional[datetime] = None,
    claim_ttl_minutes: Optional[int] = None,
) -> dict:
    """
    Generate invoices for every dispatched request whose dispute window closed.

    One request failing does not affect the others: each runs in its own
    transaction and a failure releases its claim for the next run.
    """
    now = now or utcnow()

    async with session_factory() as session:
        async with session.begin():
            claimed = await claim_overdue_requests(session, now, claim_ttl_minutes)

    if not claimed:
        logger.info("deemed_delivery_sweep_complete", processed=0)
        return {
            "success": True,
            "processed": 0,
            "invoicesGenerated": 0,
            "errors": 0,
            "details": [],
            "message": "No overdue requests found",
        }

    details = []
    for request_id in claimed:
        try:
            async with session_factory() as session:
                async with session.begin():
                    await generate(session, request_id)
            details.append({"id": str(request_id), "status": "success"})
        except Exception as e:
            logger.error(
                "deemed_delivery_failed",
                purchase_request_id=str(request_id),
                error=_error_message(e),
            )
            await release_claim(session_factory, request_id)
            details.append({"id": str(request_id), "status": "error", "error": _error_message(e)})

    generated = sum(1 for d in details if d["status"] == "success")
    errors = len(details) - generated
    logger.info(
        "deemed_delivery_sweep_complete",
        processed=len(claimed),
        invoices_generated=generated,
        errors=errors,
    )
    return {
        "success": True,
        "processed": len(claimed),
        "invoicesGenerated": generated,
        "errors": errors,
        "details": details,
    }
