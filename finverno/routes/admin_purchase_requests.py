import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from finverno.database import get_db
from finverno.middleware.auth import get_current_user
from finverno.middleware.authorization import require_roles
from finverno.routes.purchase_requests import paginated, to_response
from finverno.schemas.common import PaginatedResponse
from finverno.schemas.purchase_request import PurchaseRequestResponse, PurchaseRequestReview
from finverno.services import purchase_request_service as pr_service

router = APIRouter(dependencies=[Depends(require_roles("admin"))])


@router.get("", response_model=PaginatedResponse[PurchaseRequestResponse])
async def list_purchase_requests(
    page: int = Query(1, ge=1, le=1000),
    limit: int = Query(20, ge=1, le=100),
    pr_status: str = Query(None, alias="status"),
    contractor_id: uuid.UUID = Query(None),
    project_id: uuid.UUID = Query(None),
    db: AsyncSession = Depends(get_db),
):
    prs, total = await pr_service.list_purchase_requests(
        db, page, limit, contractor_id=contractor_id, project_id=project_id, status=pr_status
    )
    return await paginated(db, prs, page, limit, total)


@router.get("/{request_id}", response_model=PurchaseRequestResponse)
async def get_purchase_request(request_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    pr = await pr_service.get_purchase_request(db, request_id)
    return to_response(pr, await pr_service.get_items(db, pr.id))


@router.post("/{request_id}/review", response_model=PurchaseRequestResponse)
async def review_purchase_request(
    request_id: uuid.UUID,
    body: PurchaseRequestReview,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    pr, items = await pr_service.review(
        db, request_id, body.items, current_user, notes=body.approval_notes
    )
    return to_response(pr, items)


@router.post("/{request_id}/fund", response_model=PurchaseRequestResponse)
async def fund_purchase_request(
    request_id: uuid.UUID,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    pr = await pr_service.fund(db, request_id, current_user)
    return to_response(pr, await pr_service.get_items(db, pr.id))


@router.post("/{request_id}/generate-po", response_model=PurchaseRequestResponse)
async def generate_purchase_order(
    request_id: uuid.UUID,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    pr = await pr_service.generate_po(db, request_id, current_user)
    return to_response(pr, await pr_service.get_items(db, pr.id))


@router.post("/{request_id}/complete", response_model=PurchaseRequestResponse)
async def complete_purchase_request(
    request_id: uuid.UUID,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    pr = await pr_service.complete(db, request_id, current_user)
    return to_response(pr, await pr_service.get_items(db, pr.id))
