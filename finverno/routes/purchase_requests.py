import uuid

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from finverno.database import get_db
from finverno.middleware.auth import get_current_user
from finverno.middleware.authorization import get_current_contractor, require_roles
from finverno.models.contractor import Contractor
from finverno.models.purchase_request import PurchaseRequest, PurchaseRequestItem
from finverno.schemas.common import PaginatedResponse, build_pagination
from finverno.schemas.purchase_request import (
    PurchaseRequestCreate,
    PurchaseRequestItemResponse,
    PurchaseRequestResponse,
    PurchaseRequestUpdate,
)
from finverno.services import purchase_request_service as pr_service

logger = structlog.get_logger()
router = APIRouter()


def to_response(pr: PurchaseRequest, items: list[PurchaseRequestItem]) -> PurchaseRequestResponse:
    response = PurchaseRequestResponse.model_validate(pr, from_attributes=True)
    response.items = [PurchaseRequestItemResponse.model_validate(item) for item in items]
    return response


async def paginated(db: AsyncSession, prs: list, page: int, limit: int, total: int):
    # Batch load all items in a single query to avoid N+1
    items_map = await pr_service.get_items_map(db, [pr.id for pr in prs])
    return PaginatedResponse(
        data=[to_response(pr, items_map.get(str(pr.id), [])) for pr in prs],
        pagination=build_pagination(page, limit, total),
    )


# ---------- LIST / GET ----------


@router.get("", response_model=PaginatedResponse[PurchaseRequestResponse])
async def list_purchase_requests(
    page: int = Query(1, ge=1, le=1000),
    limit: int = Query(20, ge=1, le=100),
    pr_status: str = Query(None, alias="status"),
    project_id: uuid.UUID = Query(None),
    _auth: None = Depends(require_roles("contractor")),
    contractor: Contractor = Depends(get_current_contractor),
    db: AsyncSession = Depends(get_db),
):
    prs, total = await pr_service.list_purchase_requests(
        db, page, limit, contractor_id=contractor.id, project_id=project_id, status=pr_status
    )
    return await paginated(db, prs, page, limit, total)


@router.get("/{request_id}", response_model=PurchaseRequestResponse)
async def get_purchase_request(
    request_id: uuid.UUID,
    contractor: Contractor = Depends(get_current_contractor),
    db: AsyncSession = Depends(get_db),
):
    pr = await pr_service.get_purchase_request(db, request_id, contractor.id)
    return to_response(pr, await pr_service.get_items(db, pr.id))


# ---------- CREATE / UPDATE ----------


@router.post("", response_model=PurchaseRequestResponse, status_code=status.HTTP_201_CREATED)
async def create_purchase_request(
    body: PurchaseRequestCreate,
    current_user: dict = Depends(get_current_user),
    contractor: Contractor = Depends(get_current_contractor),
    db: AsyncSession = Depends(get_db),
):
    pr, items = await pr_service.create_draft(
        db,
        contractor_id=contractor.id,
        project_id=body.project_id,
        lines=body.items,
        actor=current_user,
        remarks=body.remarks,
    )
    return to_response(pr, items)


@router.patch("/{request_id}", response_model=PurchaseRequestResponse)
async def update_purchase_request(
    request_id: uuid.UUID,
    body: PurchaseRequestUpdate,
    current_user: dict = Depends(get_current_user),
    contractor: Contractor = Depends(get_current_contractor),
    db: AsyncSession = Depends(get_db),
):
    pr, items = await pr_service.edit_draft(
        db,
        request_id,
        contractor.id,
        current_user,
        remarks=body.remarks,
        lines=body.items,
    )
    return to_response(pr, items)


# ---------- SUBMIT / CANCEL ----------


@router.post("/{request_id}/submit", response_model=PurchaseRequestResponse)
async def submit_purchase_request(
    request_id: uuid.UUID,
    current_user: dict = Depends(get_current_user),
    contractor: Contractor = Depends(get_current_contractor),
    db: AsyncSession = Depends(get_db),
):
    logger.info("pr_submit_request", purchase_request_id=str(request_id))
    pr = await pr_service.submit(db, request_id, contractor.id, current_user)
    return to_response(pr, await pr_service.get_items(db, pr.id))


@router.post("/{request_id}/cancel", response_model=PurchaseRequestResponse)
async def cancel_purchase_request(
    request_id: uuid.UUID,
    current_user: dict = Depends(get_current_user),
    contractor: Contractor = Depends(get_current_contractor),
    db: AsyncSession = Depends(get_db),
):
    pr = await pr_service.cancel(db, request_id, contractor.id, current_user)
    return to_response(pr, await pr_service.get_items(db, pr.id))
