import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from finverno.config import settings
from finverno.database import get_db
from finverno.middleware.authorization import get_current_contractor
from finverno.models.contractor import Contractor
from finverno.schemas.common import PaginatedResponse, build_pagination
from finverno.schemas.invoice import InvoiceResponse
from finverno.services.invoice_service import list_invoices
from finverno.services.storage import R2Client, get_storage

router = APIRouter()


@router.get("", response_model=PaginatedResponse[InvoiceResponse])
async def list_contractor_invoices(
    page: int = Query(1, ge=1, le=1000),
    limit: int = Query(20, ge=1, le=100),
    project_id: uuid.UUID = Query(None),
    contractor: Contractor = Depends(get_current_contractor),
    storage: R2Client = Depends(get_storage),
    db: AsyncSession = Depends(get_db),
):
    invoices, total = await list_invoices(
        db, contractor_id=contractor.id, project_id=project_id, page=page, limit=limit
    )
    urls = await storage.signed_urls(settings.INVOICE_BUCKET, [inv.invoice_url for inv in invoices])
    data = []
    for invoice, url in zip(invoices, urls):
        response = InvoiceResponse.model_validate(invoice)
        response.invoice_download_url = url
        data.append(response)
    return PaginatedResponse(data=data, pagination=build_pagination(page, limit, total))
