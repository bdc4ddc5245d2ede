import uuid

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from finverno.config import settings
from finverno.database import get_db
from finverno.errors import NotFoundError
from finverno.middleware.auth import get_current_user
from finverno.middleware.authorization import get_current_investor, require_roles
from finverno.models.capital import CapitalTransaction, InvestorPaymentSubmission
from finverno.models.investor import Investor
from finverno.schemas.capital import (
    BankDetailsResponse,
    BankDetailsUpdate,
    CapitalTransactionCreate,
    CapitalTransactionResponse,
    InvestorAccountResponse,
    InvestorSummary,
    PaymentReviewResponse,
    PaymentSubmissionCreate,
    PaymentSubmissionResponse,
    PaymentSubmissionReview,
)
from finverno.schemas.common import PaginatedResponse, build_pagination
from finverno.services import capital_service
from finverno.services.storage import R2Client, get_storage

investor_router = APIRouter()
admin_router = APIRouter(dependencies=[Depends(require_roles("admin"))])


def _submission(
    submission: InvestorPaymentSubmission, investor: Investor = None, proof_url: str = None
) -> PaymentSubmissionResponse:
    response = PaymentSubmissionResponse.model_validate(submission)
    response.proof_signed_url = proof_url
    if investor is not None:
        response.investor = InvestorSummary.model_validate(investor)
    return response


def _transaction(txn: CapitalTransaction, investor: Investor = None) -> CapitalTransactionResponse:
    response = CapitalTransactionResponse.model_validate(txn)
    if investor is not None:
        response.investor = InvestorSummary.model_validate(investor)
    return response


async def _with_proof_urls(rows, storage: R2Client) -> list[PaymentSubmissionResponse]:
    urls = await storage.signed_urls(
        settings.INVESTOR_DOCUMENT_BUCKET, [s.proof_document_path for s, _ in rows]
    )
    return [_submission(s, inv, url) for (s, inv), url in zip(rows, urls)]


# ---------- INVESTOR ----------


@investor_router.get("/payment-submissions", response_model=list[PaymentSubmissionResponse])
async def list_my_submissions(
    investor: Investor = Depends(get_current_investor),
    storage: R2Client = Depends(get_storage),
    db: AsyncSession = Depends(get_db),
):
    rows = await capital_service.list_submissions(db, investor_id=investor.id)
    return await _with_proof_urls(rows, storage)


@investor_router.post(
    "/payment-submissions",
    response_model=PaymentSubmissionResponse,
    status_code=status.HTTP_201_CREATED,
)
async def submit_payment(
    body: PaymentSubmissionCreate,
    current_user: dict = Depends(get_current_user),
    investor: Investor = Depends(get_current_investor),
    db: AsyncSession = Depends(get_db),
):
    submission = await capital_service.submit_payment(
        db,
        investor.id,
        body.amount,
        body.payment_date,
        current_user,
        payment_method=body.payment_method,
        payment_reference=body.payment_reference,
        notes=body.notes,
        proof_document_path=body.proof_document_path,
    )
    return _submission(submission)


@investor_router.get("/bank-details", response_model=BankDetailsResponse)
async def get_bank_details(
    investor: Investor = Depends(get_current_investor),
    db: AsyncSession = Depends(get_db),
):
    details = await capital_service.get_bank_details(db, investor.id)
    if details is None:
        raise NotFoundError("Bank details not found")
    return details


@investor_router.put("/bank-details", response_model=BankDetailsResponse)
async def put_bank_details(
    body: BankDetailsUpdate,
    current_user: dict = Depends(get_current_user),
    investor: Investor = Depends(get_current_investor),
    db: AsyncSession = Depends(get_db),
):
    return await capital_service.upsert_bank_details(
        db, investor.id, current_user, **body.model_dump()
    )


# ---------- ADMIN ----------


@admin_router.get("/payment-submissions", response_model=list[PaymentSubmissionResponse])
async def list_submissions(
    submission_status: str = Query("pending", alias="status"),
    storage: R2Client = Depends(get_storage),
    db: AsyncSession = Depends(get_db),
):
    rows = await capital_service.list_submissions(db, status=submission_status.lower())
    return await _with_proof_urls(rows, storage)


@admin_router.patch("/payment-submissions", response_model=PaymentReviewResponse)
async def review_submission(
    body: PaymentSubmissionReview,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    submission, transaction = await capital_service.review_submission(
        db,
        body.id,
        body.action,
        current_user,
        review_notes=body.review_notes,
        description=body.description,
        reference_number=body.reference_number,
    )
    return PaymentReviewResponse(
        submission=_submission(submission),
        transaction=_transaction(transaction) if transaction else None,
    )


@admin_router.get("/transactions", response_model=PaginatedResponse[CapitalTransactionResponse])
async def list_transactions(
    page: int = Query(1, ge=1, le=1000),
    limit: int = Query(50, ge=1, le=200),
    investor_id: uuid.UUID = Query(None),
    transaction_type: str = Query(None),
    db: AsyncSession = Depends(get_db),
):
    rows, total = await capital_service.list_transactions(
        db, investor_id=investor_id, transaction_type=transaction_type, page=page, limit=limit
    )
    return PaginatedResponse(
        data=[_transaction(txn, investor) for txn, investor in rows],
        pagination=build_pagination(page, limit, total),
    )


@admin_router.post(
    "/transactions",
    response_model=CapitalTransactionResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_transaction(
    body: CapitalTransactionCreate,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    txn = await capital_service.create_transaction(
        db,
        body.investor_id,
        body.transaction_type,
        body.amount,
        body.description,
        current_user,
        reference_number=body.reference_number,
    )
    return _transaction(txn)


@admin_router.get("/accounts", response_model=list[InvestorAccountResponse])
async def list_accounts(
    investor_id: uuid.UUID = Query(None),
    db: AsyncSession = Depends(get_db),
):
    accounts = await capital_service.list_accounts(db, investor_id=investor_id)
    return [
        InvestorAccountResponse(
            id=row["account"].id,
            investor_id=row["account"].investor_id,
            investor=InvestorSummary.model_validate(row["investor"]),
            balances=row["balances"],
            created_at=row["account"].created_at,
        )
        for row in accounts
    ]
