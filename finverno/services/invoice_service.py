"""Invoice generation for delivered purchase requests."""

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from finverno.database import utcnow
from finverno.errors import NotFoundError
from finverno.models.enums import DeliveryStatus, PurchaseRequestItemStatus
from finverno.models.invoice import Invoice
from finverno.models.purchase_request import PurchaseRequest, PurchaseRequestItem
from finverno.services.audit_service import create_audit_log
from finverno.services.state_machine import transition

logger = structlog.get_logger()

INVOICE_PREFIX = "INV"
CENT = Decimal("0.01")
HUNDRED = Decimal("100")


@dataclass
class InvoiceLine:
    item_id: str
    description: Optional[str]
    hsn_code: Optional[str]
    quantity: Decimal
    unit_rate: Decimal
    tax_percent: Decimal
    amount: Decimal
    tax: Decimal
    total: Decimal

    def as_dict(self) -> dict:
        return {
            "item_id": self.item_id,
            "description": self.description,
            "hsn_code": self.hsn_code,
            "quantity": str(self.quantity),
            "unit_rate": str(self.unit_rate),
            "tax_percent": str(self.tax_percent),
            "amount": str(self.amount),
            "tax": str(self.tax),
            "total": str(self.total),
        }


def _money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def _dec(value) -> Decimal:
    if value is None:
        return Decimal("0")
    return value if isinstance(value, Decimal) else Decimal(str(value))


def build_invoice_lines(items: Iterable[PurchaseRequestItem]) -> list[InvoiceLine]:
    """Price each billable item: approved quantity when set, rejected items skipped."""
    lines = []
    for item in items:
        if item.status == PurchaseRequestItemStatus.REJECTED.value:
            continue
        qty = _dec(item.approved_qty if item.approved_qty is not None else item.requested_qty)
        if qty <= 0:
            continue
        rate = _dec(item.unit_rate)
        tax_percent = _dec(item.tax_percent)
        amount = _money(qty * rate)
        tax = _money(amount * tax_percent / HUNDRED)
        lines.append(
            InvoiceLine(
                item_id=str(item.id),
                description=item.item_description,
                hsn_code=item.hsn_code,
                quantity=qty,
                unit_rate=rate,
                tax_percent=tax_percent,
                amount=amount,
                tax=tax,
                total=amount + tax,
            )
        )
    return lines


def summarize(lines: list[InvoiceLine]) -> tuple[Decimal, Decimal, Decimal]:
    subtotal = sum((line.amount for line in lines), Decimal("0"))
    total_tax = sum((line.tax for line in lines), Decimal("0"))
    return subtotal, total_tax, subtotal + total_tax


async def _next_invoice_number(session: AsyncSession) -> str:
    result = await session.execute(select(func.count(Invoice.id)))
    count = (result.scalar() or 0) + 1
    return f"{INVOICE_PREFIX}-{count:06d}"


async def get_invoice_for_request(session: AsyncSession, request_id) -> Optional[Invoice]:
    result = await session.execute(
        select(Invoice).where(Invoice.purchase_request_id == request_id)
    )
    return result.scalar_one_or_none()


async def generate_invoice_for_request(
    session: AsyncSession,
    request_id,
    generated_by: str = "system",
    actor_email: Optional[str] = None,
) -> Invoice:
    """
    Create the invoice for a purchase request and mark it delivered.

    Idempotent: an existing invoice is returned unchanged. Runs inside the
    caller's transaction; the caller commits or rolls back.
    """
    existing = await get_invoice_for_request(session, request_id)
    if existing:
        logger.info("invoice_exists", purchase_request_id=str(request_id), invoice_id=str(existing.id))
        return existing

    result = await session.execute(
        select(PurchaseRequest).where(PurchaseRequest.id == request_id)
    )
    pr = result.scalar_one_or_none()
    if pr is None:
        raise NotFoundError("Purchase request not found")

    items_result = await session.execute(
        select(PurchaseRequestItem)
        .where(PurchaseRequestItem.purchase_request_id == pr.id)
        .order_by(PurchaseRequestItem.created_at, PurchaseRequestItem.id)
    )
    lines = build_invoice_lines(items_result.scalars().all())
    subtotal, total_tax, total = summarize(lines)

    now = utcnow()
    before = {"delivery_status": pr.delivery_status}
    if pr.delivery_status != DeliveryStatus.DELIVERED.value:
        pr.delivery_status = transition(
            DeliveryStatus, pr.delivery_status, DeliveryStatus.DELIVERED, action="mark delivered"
        ).value
    if pr.delivered_at is None:
        pr.delivered_at = now
    pr.invoice_generated_at = now
    pr.invoice_claimed_at = None

    invoice = Invoice(
        purchase_request_id=pr.id,
        contractor_id=pr.contractor_id,
        project_id=pr.project_id,
        invoice_number=await _next_invoice_number(session),
        invoice_date=now,
        subtotal=subtotal,
        total_tax=total_tax,
        total_amount=total,
        line_items=[line.as_dict() for line in lines],
        status="generated",
        generated_by=generated_by,
    )
    session.add(invoice)
    await session.flush()

    await create_audit_log(
        session,
        actor_id=generated_by,
        action="INVOICE_GENERATED",
        entity_type="purchase_request",
        entity_id=pr.id,
        before_state=before,
        after_state={
            "delivery_status": pr.delivery_status,
            "invoice_number": invoice.invoice_number,
            "total_amount": str(total),
        },
        actor_email=actor_email,
    )
    logger.info(
        "invoice_generated",
        purchase_request_id=str(pr.id),
        invoice_number=invoice.invoice_number,
        total_amount=str(total),
    )
    return invoice


async def list_invoices(
    session: AsyncSession, contractor_id=None, project_id=None, page: int = 1, limit: int = 20
) -> tuple[list[Invoice], int]:
    q = select(Invoice)
    count_q = select(func.count(Invoice.id))
    if contractor_id is not None:
        q = q.where(Invoice.contractor_id == contractor_id)
        count_q = count_q.where(Invoice.contractor_id == contractor_id)
    if project_id is not None:
        q = q.where(Invoice.project_id == project_id)
        count_q = count_q.where(Invoice.project_id == project_id)
    total = (await session.execute(count_q)).scalar() or 0
    result = await session.execute(
        q.order_by(Invoice.created_at.desc()).offset((page - 1) * limit).limit(limit)
    )
    return list(result.scalars().all()), total


async def list_invoices_for_requests(session: AsyncSession, request_ids: list) -> dict[str, Invoice]:
    if not request_ids:
        return {}
    result = await session.execute(
        select(Invoice).where(Invoice.purchase_request_id.in_(request_ids))
    )
    return {str(inv.purchase_request_id): inv for inv in result.scalars().all()}
