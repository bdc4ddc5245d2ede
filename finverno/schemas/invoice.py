import uuid
from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from pydantic import BaseModel


class InvoiceLineResponse(BaseModel):
    item_id: str
    description: Optional[str] = None
    hsn_code: Optional[str] = None
    quantity: Decimal
    unit_rate: Decimal
    tax_percent: Decimal
    amount: Decimal
    tax: Decimal
    total: Decimal


class InvoiceResponse(BaseModel):
    id: uuid.UUID
    purchase_request_id: uuid.UUID
    contractor_id: uuid.UUID
    project_id: uuid.UUID
    invoice_number: str
    invoice_date: datetime
    subtotal: Decimal
    total_tax: Decimal
    total_amount: Decimal
    line_items: List[InvoiceLineResponse] = []
    status: str
    generated_by: str
    invoice_download_url: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}
