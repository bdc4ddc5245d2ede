import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, Field


class ProjectCreate(BaseModel):
    project_name: str = Field(..., min_length=1, max_length=255)
    client_name: Optional[str] = Field(None, max_length=255)
    estimated_value: Optional[Decimal] = Field(None, ge=0)


class ProjectConvert(BaseModel):
    estimated_value: Decimal
    po_number: Optional[str] = Field(None, max_length=100)
    funding_required: Optional[Decimal] = None


class ProjectResponse(BaseModel):
    id: uuid.UUID
    contractor_id: uuid.UUID
    project_name: str
    client_name: Optional[str] = None
    status: str
    estimated_value: Optional[Decimal] = None
    funding_required: Optional[Decimal] = None
    funding_status: str
    po_number: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class ProjectMaterialCreate(BaseModel):
    material_id: Optional[uuid.UUID] = None
    name: Optional[str] = Field(None, max_length=255)
    unit: Optional[str] = Field(None, max_length=30)
    required_qty: Decimal = Field(..., ge=0)
    available_qty: Decimal = Field(Decimal("0"), ge=0)
    source_type: Optional[str] = Field(None, max_length=50)
    source_file_name: Optional[str] = Field(None, max_length=255)
    notes: Optional[str] = None


class ProjectMaterialResponse(BaseModel):
    id: uuid.UUID
    project_id: uuid.UUID
    material_id: Optional[uuid.UUID] = None
    name: Optional[str] = None
    unit: Optional[str] = None
    required_qty: Decimal
    available_qty: Decimal
    requested_qty: Decimal
    ordered_qty: Decimal
    max_requestable: Decimal
    source_type: Optional[str] = None
    source_file_name: Optional[str] = None
    notes: Optional[str] = None
