import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import List, Literal, Optional
from pydantic import BaseModel, Field


class PaymentSubmissionCreate(BaseModel):
    # Positivity is checked by the service so it surfaces as a 400.
    amount: Decimal
    payment_date: date
    payment_method: Optional[str] = Field(None, max_length=50)
    payment_reference: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = Field(None, max_length=2000)
    proof_document_path: Optional[str] = None


class PaymentSubmissionReview(BaseModel):
    id: uuid.UUID
    action: Literal["approve", "reject"]
    review_notes: Optional[str] = Field(None, max_length=2000)
    description: Optional[str] = Field(None, max_length=500)
    reference_number: Optional[str] = Field(None, max_length=100)


class InvestorSummary(BaseModel):
    id: uuid.UUID
    name: str
    email: str
    investor_type: Optional[str] = None
    status: Optional[str] = None

    model_config = {"from_attributes": True}


class PaymentSubmissionResponse(BaseModel):
    id: uuid.UUID
    investor_id: uuid.UUID
    amount: Decimal
    payment_date: date
    payment_method: str
    payment_reference: Optional[str] = None
    notes: Optional[str] = None
    proof_document_path: Optional[str] = None
    proof_signed_url: Optional[str] = None
    status: str
    review_notes: Optional[str] = None
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    capital_transaction_id: Optional[uuid.UUID] = None
    investor: Optional[InvestorSummary] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class CapitalTransactionCreate(BaseModel):
    investor_id: uuid.UUID
    transaction_type: Literal["inflow", "outflow", "allocation", "return"]
    amount: Decimal
    description: str = Field(..., min_length=1, max_length=500)
    reference_number: Optional[str] = Field(None, max_length=100)


class CapitalTransactionResponse(BaseModel):
    id: uuid.UUID
    investor_id: uuid.UUID
    transaction_type: str
    amount: Decimal
    description: Optional[str] = None
    reference_number: Optional[str] = None
    admin_user_id: Optional[str] = None
    status: str
    investor: Optional[InvestorSummary] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class PaymentReviewResponse(BaseModel):
    success: bool = True
    submission: PaymentSubmissionResponse
    transaction: Optional[CapitalTransactionResponse] = None


class AccountBalances(BaseModel):
    inflow: Decimal
    outflow: Decimal
    allocation: Decimal
    # "return" is a keyword, so the field is aliased.
    returns: Decimal = Field(..., alias="return")
    balance: Decimal

    model_config = {"populate_by_name": True}


class InvestorAccountResponse(BaseModel):
    id: uuid.UUID
    investor_id: uuid.UUID
    investor: InvestorSummary
    balances: AccountBalances
    created_at: datetime


class BankDetailsUpdate(BaseModel):
    account_holder_name: str = Field(..., min_length=1, max_length=255)
    bank_name: str = Field(..., min_length=1, max_length=255)
    account_number: str = Field(..., min_length=4, max_length=50, pattern=r"^[0-9A-Za-z]+$")
    ifsc_code: str = Field(..., pattern=r"^[A-Za-z]{4}0[A-Za-z0-9]{6}$")
    branch: Optional[str] = Field(None, max_length=255)


class BankDetailsResponse(BaseModel):
    id: uuid.UUID
    investor_id: uuid.UUID
    account_holder_name: str
    bank_name: str
    account_number: str
    ifsc_code: str
    branch: Optional[str] = None
    updated_at: datetime

    model_config = {"from_attributes": True}
