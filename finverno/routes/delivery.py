import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from finverno.config import settings
from finverno.database import get_db, utcnow
from finverno.errors import AuthorizationError
from finverno.middleware.auth import get_current_user
from finverno.middleware.authorization import get_current_contractor, require_roles
from finverno.models.contractor import Contractor
from finverno.models.enums import DeliveryStatus
from finverno.schemas.delivery import (
    DeliveryActionResponse,
    DeliveryConfirm,
    DeliveryResponse,
    DeliveryUpdate,
    DisputeCreate,
)
from finverno.schemas.purchase_request import PurchaseRequestItemResponse
from finverno.services import delivery_service
from finverno.services.invoice_service import list_invoices_for_requests
from finverno.services.purchase_request_service import get_items_map
from finverno.services.storage import R2Client, get_storage

logger = structlog.get_logger()

admin_router = APIRouter(dependencies=[Depends(require_roles("admin"))])
tracker_router = APIRouter()


async def _delivery_rows(db: AsyncSession, rows, storage: R2Client = None) -> list[DeliveryResponse]:
    ids = [pr.id for pr, _, _ in rows]
    items_map = await get_items_map(db, ids)
    invoices = await list_invoices_for_requests(db, ids)
    urls = {}
    if storage is not None:
        refs = [(key, inv.invoice_url) for key, inv in invoices.items() if inv.invoice_url]
        signed = await storage.signed_urls(settings.INVOICE_BUCKET, [ref for _, ref in refs])
        urls = {key: url for (key, _), url in zip(refs, signed)}

    now = utcnow()
    data = []
    for pr, project_name, company_name in rows:
        invoice = invoices.get(str(pr.id))
        window = delivery_service.dispute_window_state(pr, now)
        data.append(
            DeliveryResponse(
                id=pr.id,
                project_id=pr.project_id,
                contractor_id=pr.contractor_id,
                project_name=project_name,
                company_name=company_name,
                status=pr.status,
                delivery_status=pr.delivery_status,
                dispatched_at=pr.dispatched_at,
                dispute_window_hours=pr.dispute_window_hours,
                dispute_deadline=pr.dispute_deadline,
                dispute_raised_at=pr.dispute_raised_at,
                dispute_reason=pr.dispute_reason,
                delivered_at=pr.delivered_at,
                invoice_generated_at=pr.invoice_generated_at,
                can_dispute=window["can_dispute"],
                hours_remaining=window["hours_remaining"],
                invoice_number=invoice.invoice_number if invoice else None,
                invoice_download_url=urls.get(str(pr.id)),
                items=[
                    PurchaseRequestItemResponse.model_validate(item)
                    for item in items_map.get(str(pr.id), [])
                ],
            )
        )
    return data


# ---------- ADMIN ----------


@admin_router.get("", response_model=list[DeliveryResponse])
async def list_deliveries(
    delivery_status: DeliveryStatus = Query(None, alias="status"),
    contractor_id: uuid.UUID = Query(None),
    db: AsyncSession = Depends(get_db),
):
    rows = await delivery_service.list_deliveries(
        db,
        contractor_id=contractor_id,
        status=delivery_status.value if delivery_status else None,
    )
    return await _delivery_rows(db, rows)


@admin_router.patch("", response_model=DeliveryActionResponse)
async def update_delivery(
    body: DeliveryUpdate,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Dispatch a funded request, or close a dispute as delivered (action=mark_delivered)."""
    if body.action == "mark_delivered":
        pr, invoice = await delivery_service.resolve_dispute(db, body.purchase_request_id, current_user)
        return DeliveryActionResponse(
            message="Dispute resolved and goods marked as delivered.",
            purchase_request_id=pr.id,
            delivery_status=pr.delivery_status,
            invoice_number=invoice.invoice_number,
            invoice_total=invoice.total_amount,
        )

    pr = await delivery_service.dispatch(
        db, body.purchase_request_id, current_user, body.dispute_window_hours
    )
    return DeliveryActionResponse(
        message=(
            f"Purchase request marked as dispatched. Dispute window: {pr.dispute_window_hours} hours "
            f"(closes {pr.dispute_deadline.isoformat()})."
        ),
        purchase_request_id=pr.id,
        delivery_status=pr.delivery_status,
        dispute_deadline=pr.dispute_deadline,
    )


# ---------- CONTRACTOR TRACKER ----------


@tracker_router.get("", response_model=list[DeliveryResponse])
async def delivery_tracker(
    project_id: uuid.UUID = Query(None),
    contractor: Contractor = Depends(get_current_contractor),
    storage: R2Client = Depends(get_storage),
    db: AsyncSession = Depends(get_db),
):
    rows = await delivery_service.list_deliveries(db, contractor_id=contractor.id, project_id=project_id)
    return await _delivery_rows(db, rows, storage)


@tracker_router.post("", response_model=DeliveryActionResponse)
async def raise_dispute(
    body: DisputeCreate,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """The owning contractor, or an admin, disputes a dispatched delivery inside its window."""
    if current_user["role"] == "admin":
        contractor_id = None
    elif current_user["role"] == "contractor":
        contractor = await get_current_contractor(current_user, db)
        contractor_id = contractor.id
    else:
        raise AuthorizationError("Only the contractor or an admin can raise a dispute")

    pr = await delivery_service.raise_dispute(
        db, body.purchase_request_id, body.dispute_reason, current_user, contractor_id=contractor_id
    )
    return DeliveryActionResponse(
        message="Dispute raised successfully. Our team will review and contact you shortly.",
        purchase_request_id=pr.id,
        delivery_status=pr.delivery_status,
        dispute_deadline=pr.dispute_deadline,
    )


@tracker_router.patch("", response_model=DeliveryActionResponse)
async def confirm_delivery(
    body: DeliveryConfirm,
    current_user: dict = Depends(get_current_user),
    contractor: Contractor = Depends(get_current_contractor),
    db: AsyncSession = Depends(get_db),
):
    pr, invoice = await delivery_service.confirm_delivery(
        db, body.purchase_request_id, contractor.id, current_user
    )
    return DeliveryActionResponse(
        message="Delivery confirmed. Invoice generated.",
        purchase_request_id=pr.id,
        delivery_status=pr.delivery_status,
        invoice_number=invoice.invoice_number,
        invoice_total=invoice.total_amount,
    )
