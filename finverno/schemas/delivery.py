import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, List, Literal, Optional
from pydantic import BaseModel, Field

from finverno.schemas.purchase_request import PurchaseRequestItemResponse


class DeliveryUpdate(BaseModel):
    purchase_request_id: uuid.UUID
    action: Literal["dispatch", "mark_delivered"] = "dispatch"
    # Anything non-numeric falls back to the default window.
    dispute_window_hours: Optional[Any] = None


class DisputeCreate(BaseModel):
    purchase_request_id: uuid.UUID
    dispute_reason: str = Field(..., max_length=2000)


class DeliveryConfirm(BaseModel):
    purchase_request_id: uuid.UUID
    action: Literal["confirm"]


class DeliveryResponse(BaseModel):
    id: uuid.UUID
    project_id: uuid.UUID
    contractor_id: uuid.UUID
    project_name: Optional[str] = None
    company_name: Optional[str] = None
    status: str
    delivery_status: str
    dispatched_at: Optional[datetime] = None
    dispute_window_hours: Optional[int] = None
    dispute_deadline: Optional[datetime] = None
    dispute_raised_at: Optional[datetime] = None
    dispute_reason: Optional[str] = None
    delivered_at: Optional[datetime] = None
    invoice_generated_at: Optional[datetime] = None
    can_dispute: bool = False
    hours_remaining: Optional[float] = None
    invoice_number: Optional[str] = None
    invoice_download_url: Optional[str] = None
    items: List[PurchaseRequestItemResponse] = []


class DeliveryActionResponse(BaseModel):
    success: bool = True
    message: str
    purchase_request_id: uuid.UUID
    delivery_status: str
    dispute_deadline: Optional[datetime] = None
    invoice_number: Optional[str] = None
    invoice_total: Optional[Decimal] = None


class SweepItemResult(BaseModel):
    id: str
    status: Literal["success", "error"]
    error: Optional[str] = None


class SweepResponse(BaseModel):
    success: bool
    processed: int
    invoicesGenerated: int
    errors: int
    details: List[SweepItemResult] = []
    message: Optional[str] = None
