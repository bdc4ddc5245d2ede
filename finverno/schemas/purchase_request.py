import uuid
from datetime import datetime
from decimal import Decimal
from typing import List, Literal, Optional
from pydantic import BaseModel, Field


class PurchaseRequestItemCreate(BaseModel):
    project_material_id: uuid.UUID
    # Quantity bounds are enforced by the service so they surface as 400s.
    requested_qty: Decimal
    unit_rate: Optional[Decimal] = Field(None, ge=0)
    tax_percent: Optional[Decimal] = Field(None, ge=0, le=100)
    item_description: Optional[str] = Field(None, max_length=1000)
    hsn_code: Optional[str] = Field(None, max_length=20)


class PurchaseRequestCreate(BaseModel):
    project_id: uuid.UUID
    remarks: Optional[str] = Field(None, max_length=2000)
    items: List[PurchaseRequestItemCreate] = Field(default_factory=list, max_length=200)


class PurchaseRequestUpdate(BaseModel):
    remarks: Optional[str] = Field(None, max_length=2000)
    items: Optional[List[PurchaseRequestItemCreate]] = Field(None, max_length=200)


class PurchaseRequestItemResponse(BaseModel):
    id: uuid.UUID
    project_material_id: uuid.UUID
    item_description: Optional[str] = None
    hsn_code: Optional[str] = None
    requested_qty: Decimal
    approved_qty: Optional[Decimal] = None
    unit_rate: Optional[Decimal] = None
    tax_percent: Optional[Decimal] = None
    status: str

    model_config = {"from_attributes": True}


class PurchaseRequestResponse(BaseModel):
    id: uuid.UUID
    project_id: uuid.UUID
    contractor_id: uuid.UUID
    status: str
    remarks: Optional[str] = None
    approved_by: Optional[str] = None
    approval_notes: Optional[str] = None
    po_number: Optional[str] = None
    delivery_status: str
    dispatched_at: Optional[datetime] = None
    dispute_window_hours: Optional[int] = None
    dispute_deadline: Optional[datetime] = None
    dispute_raised_at: Optional[datetime] = None
    dispute_reason: Optional[str] = None
    delivered_at: Optional[datetime] = None
    invoice_generated_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    submitted_at: Optional[datetime] = None
    approved_at: Optional[datetime] = None
    funded_at: Optional[datetime] = None
    items: List[PurchaseRequestItemResponse] = []

    model_config = {"from_attributes": True}


class ItemReview(BaseModel):
    item_id: uuid.UUID
    status: Literal["approved", "rejected"]
    approved_qty: Optional[Decimal] = None


class PurchaseRequestReview(BaseModel):
    items: List[ItemReview] = Field(..., min_length=1)
    approval_notes: Optional[str] = Field(None, max_length=2000)
