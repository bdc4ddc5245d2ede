import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, List, Literal, Optional
from pydantic import BaseModel, Field

ReviewStatus = Literal["verified", "disputed", "revision_required"]


class TakeoffSave(BaseModel):
    project_id: uuid.UUID
    file_name: str = Field(..., min_length=1, max_length=255)
    file_url: Optional[str] = None
    takeoff_data: List[Any]


class TakeoffSubmit(BaseModel):
    project_id: uuid.UUID
    file_name: str = Field(..., min_length=1, max_length=255)


class TakeoffReview(BaseModel):
    takeoff_id: uuid.UUID
    verification_status: ReviewStatus
    admin_verified_quantity: Optional[Decimal] = None
    estimated_rate: Optional[Decimal] = None
    admin_notes: Optional[str] = Field(None, max_length=2000)


class TakeoffBulkReview(BaseModel):
    takeoff_ids: List[uuid.UUID] = Field(..., min_length=1, max_length=500)
    verification_status: ReviewStatus
    admin_verified_quantity: Optional[Decimal] = None
    estimated_rate: Optional[Decimal] = None
    admin_notes: Optional[str] = Field(None, max_length=2000)


class TakeoffResponse(BaseModel):
    id: uuid.UUID
    project_id: uuid.UUID
    contractor_id: uuid.UUID
    file_name: str
    file_url: Optional[str] = None
    takeoff_data: Optional[List[Any]] = None
    total_items: int = 0
    verification_status: str = "none"
    admin_verified_quantity: Optional[Decimal] = None
    estimated_rate: Optional[Decimal] = None
    admin_notes: Optional[str] = None
    verified_by: Optional[str] = None
    verified_at: Optional[datetime] = None
    submitted_for_verification_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class TakeoffContractorInfo(BaseModel):
    company_name: Optional[str] = None
    contact_person: Optional[str] = None
    email: Optional[str] = None


class AdminTakeoffRow(TakeoffResponse):
    project_name: Optional[str] = None
    contractor: TakeoffContractorInfo
    file_download_url: Optional[str] = None


class VerificationSummary(BaseModel):
    pending: int = 0
    verified: int = 0
    disputed: int = 0
    revision_required: int = 0


class OffsetPagination(BaseModel):
    limit: int
    offset: int
    total: int


class AdminTakeoffListResponse(BaseModel):
    takeoffs: List[AdminTakeoffRow] = []
    summary: VerificationSummary
    pagination: OffsetPagination


class BulkReviewItem(BaseModel):
    id: str
    status: Literal["success", "error"]
    file_name: Optional[str] = None
    verification_status: Optional[str] = None
    code: Optional[str] = None
    error: Optional[str] = None


class BulkReviewResponse(BaseModel):
    success: bool
    updated: int
    failed: int
    results: List[BulkReviewItem]
