import uuid

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from finverno.database import get_db
from finverno.middleware.auth import get_current_user
from finverno.middleware.authorization import get_current_contractor, require_roles
from finverno.models.contractor import Contractor
from finverno.models.enums import VerificationStatus
from finverno.schemas.takeoff import (
    AdminTakeoffListResponse,
    AdminTakeoffRow,
    BulkReviewResponse,
    OffsetPagination,
    TakeoffBulkReview,
    TakeoffResponse,
    TakeoffReview,
    TakeoffSave,
    TakeoffSubmit,
)
from finverno.services import takeoff_service
from finverno.services.storage import R2Client, get_storage

router = APIRouter()
verification_router = APIRouter()
admin_router = APIRouter(dependencies=[Depends(require_roles("admin"))])


# ---------- CONTRACTOR ----------


@router.post("", response_model=TakeoffResponse, status_code=status.HTTP_201_CREATED)
async def save_takeoff(
    body: TakeoffSave,
    current_user: dict = Depends(get_current_user),
    contractor: Contractor = Depends(get_current_contractor),
    db: AsyncSession = Depends(get_db),
):
    takeoff = await takeoff_service.save_takeoff(
        db,
        contractor.id,
        body.project_id,
        body.file_name,
        body.takeoff_data,
        current_user,
        file_url=body.file_url,
    )
    return takeoff


@verification_router.post("", response_model=TakeoffResponse)
async def submit_for_verification(
    body: TakeoffSubmit,
    current_user: dict = Depends(get_current_user),
    contractor: Contractor = Depends(get_current_contractor),
    db: AsyncSession = Depends(get_db),
):
    return await takeoff_service.submit_for_verification(
        db, contractor.id, body.project_id, body.file_name, current_user
    )


@verification_router.get("")
async def verification_status(
    project_id: uuid.UUID = Query(...),
    file_name: str = Query(None),
    contractor: Contractor = Depends(get_current_contractor),
    db: AsyncSession = Depends(get_db),
):
    """One file's status, or every takeoff in the project with a summary."""
    result = await takeoff_service.contractor_status(db, contractor.id, project_id, file_name)
    if file_name:
        return {
            "takeoff": TakeoffResponse.model_validate(result["takeoff"]),
            "overall_status": result["overall_status"],
        }
    return {
        "takeoffs": [TakeoffResponse.model_validate(t) for t in result["takeoffs"]],
        "summary": result["summary"],
    }


# ---------- ADMIN ----------


@admin_router.get("", response_model=AdminTakeoffListResponse)
async def list_takeoffs_for_review(
    verification_status: VerificationStatus = Query(VerificationStatus.PENDING, alias="status"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    storage: R2Client = Depends(get_storage),
    db: AsyncSession = Depends(get_db),
):
    result = await takeoff_service.list_for_review(
        db, storage, verification_status.value, limit=limit, offset=offset
    )
    rows = [
        AdminTakeoffRow(
            **TakeoffResponse.model_validate(row["takeoff"]).model_dump(),
            project_name=row["project_name"],
            contractor=row["contractor"],
            file_download_url=row["file_download_url"],
        )
        for row in result["takeoffs"]
    ]
    return AdminTakeoffListResponse(
        takeoffs=rows,
        summary=result["summary"],
        pagination=OffsetPagination(limit=limit, offset=offset, total=result["total"]),
    )


@admin_router.put("", response_model=TakeoffResponse)
async def review_takeoff(
    body: TakeoffReview,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await takeoff_service.review_takeoff(
        db,
        body.takeoff_id,
        body.verification_status,
        current_user,
        admin_verified_quantity=body.admin_verified_quantity,
        estimated_rate=body.estimated_rate,
        admin_notes=body.admin_notes,
    )


@admin_router.post("", response_model=BulkReviewResponse)
async def bulk_review_takeoffs(
    body: TakeoffBulkReview,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    result = await takeoff_service.review_bulk(
        db,
        body.takeoff_ids,
        body.verification_status,
        current_user,
        admin_notes=body.admin_notes,
        admin_verified_quantity=body.admin_verified_quantity,
        estimated_rate=body.estimated_rate,
    )
    return BulkReviewResponse(success=result["updated"] > 0, **result)
