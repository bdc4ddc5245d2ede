"""
Investor capital: payment submissions, capital transactions, account balances
and bank details.

Approving a submission ensures the investor account, records a completed
inflow and links it to the submission. All three writes share the caller's
transaction, so they commit or roll back together.
"""

from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Optional

from sqlalchemy import select, func, case
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from finverno.database import utcnow
from finverno.errors import NotFoundError, StateError, ValidationError
from finverno.models.capital import CapitalTransaction, InvestorPaymentSubmission
from finverno.models.enums import SubmissionStatus, TransactionStatus, TransactionType
from finverno.models.investor import Investor, InvestorAccount, InvestorBankDetails
from finverno.services.audit_service import create_audit_log

logger = structlog.get_logger()

TT = TransactionType
DEFAULT_PAYMENT_METHOD = "bank_transfer"
REVIEW_ACTIONS = ("approve", "reject")
_DEBITS = (TT.OUTFLOW.value, TT.ALLOCATION.value)


def _amount(value) -> Decimal:
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError("Amount must be a positive number")
    if not amount.is_finite() or amount <= 0:
        raise ValidationError("Amount must be a positive number")
    return amount


# ---------- PAYMENT SUBMISSIONS ----------


async def submit_payment(
    session: AsyncSession,
    investor_id,
    amount,
    payment_date: date,
    actor: dict,
    payment_method: Optional[str] = None,
    payment_reference: Optional[str] = None,
    notes: Optional[str] = None,
    proof_document_path: Optional[str] = None,
) -> InvestorPaymentSubmission:
    if payment_date is None:
        raise ValidationError("payment_date is required")

    submission = InvestorPaymentSubmission(
        investor_id=investor_id,
        amount=_amount(amount),
        payment_date=payment_date,
        payment_method=(payment_method or DEFAULT_PAYMENT_METHOD).strip() or DEFAULT_PAYMENT_METHOD,
        payment_reference=(payment_reference or "").strip() or None,
        notes=(notes or "").strip() or None,
        proof_document_path=proof_document_path,
        status=SubmissionStatus.PENDING.value,
    )
    session.add(submission)
    await session.flush()

    await create_audit_log(
        session,
        actor_id=actor.get("user_id"),
        action="PAYMENT_SUBMITTED",
        entity_type="payment_submission",
        entity_id=submission.id,
        after_state={"status": submission.status, "amount": str(submission.amount)},
        actor_email=actor.get("email"),
    )
    logger.info("payment_submitted", submission_id=str(submission.id), amount=str(submission.amount))
    return submission


async def list_submissions(
    session: AsyncSession,
    investor_id=None,
    status: Optional[str] = None,
    limit: int = 200,
) -> list[tuple[InvestorPaymentSubmission, Investor]]:
    q = select(InvestorPaymentSubmission, Investor).join(
        Investor, InvestorPaymentSubmission.investor_id == Investor.id
    )
    if investor_id is not None:
        q = q.where(InvestorPaymentSubmission.investor_id == investor_id)
    if status and status != "all":
        q = q.where(InvestorPaymentSubmission.status == status)
    result = await session.execute(
        q.order_by(InvestorPaymentSubmission.created_at.desc()).limit(limit)
    )
    return [tuple(row) for row in result.all()]


async def ensure_account(session: AsyncSession, investor_id, lock: bool = False) -> InvestorAccount:
    """Load or create the investor account; `lock` holds the row until commit."""
    q = select(InvestorAccount).where(InvestorAccount.investor_id == investor_id)
    if lock:
        q = q.with_for_update()
    result = await session.execute(q)
    account = result.scalar_one_or_none()
    if account is None:
        account = InvestorAccount(investor_id=investor_id)
        session.add(account)
        await session.flush()
        logger.info("investor_account_created", investor_id=str(investor_id))
    return account


async def review_submission(
    session: AsyncSession,
    submission_id,
    action: str,
    actor: dict,
    review_notes: Optional[str] = None,
    description: Optional[str] = None,
    reference_number: Optional[str] = None,
) -> tuple[InvestorPaymentSubmission, Optional[CapitalTransaction]]:
    if action not in REVIEW_ACTIONS:
        raise ValidationError("Invalid action", details={"allowed": list(REVIEW_ACTIONS)})

    result = await session.execute(
        select(InvestorPaymentSubmission)
        .where(InvestorPaymentSubmission.id == submission_id)
        .with_for_update()
    )
    submission = result.scalar_one_or_none()
    if submission is None:
        raise NotFoundError("Payment submission not found")
    if submission.status != SubmissionStatus.PENDING.value:
        raise StateError(
            f"This submission has already been reviewed: current status is '{submission.status}'",
            current_state=submission.status,
        )

    admin_id = actor.get("user_id")
    before = {"status": submission.status}
    notes = (review_notes or "").strip() or None
    transaction = None

    if action == "approve":
        await ensure_account(session, submission.investor_id)
        method = submission.payment_method or DEFAULT_PAYMENT_METHOD
        transaction = CapitalTransaction(
            investor_id=submission.investor_id,
            transaction_type=TT.INFLOW.value,
            amount=submission.amount,
            description=(description or "").strip() or f"Investor payment confirmation ({method})",
            reference_number=(reference_number or submission.payment_reference or "").strip() or None,
            admin_user_id=admin_id,
            status=TransactionStatus.COMPLETED.value,
        )
        session.add(transaction)
        await session.flush()
        submission.capital_transaction_id = transaction.id
        submission.status = SubmissionStatus.APPROVED.value
    else:
        submission.status = SubmissionStatus.REJECTED.value

    submission.review_notes = notes
    submission.approved_by = admin_id
    submission.approved_at = utcnow()
    await session.flush()

    await create_audit_log(
        session,
        actor_id=admin_id,
        action=f"PAYMENT_{submission.status.upper()}",
        entity_type="payment_submission",
        entity_id=submission.id,
        before_state=before,
        after_state={
            "status": submission.status,
            "capital_transaction_id": str(transaction.id) if transaction else None,
        },
        actor_email=actor.get("email"),
    )
    logger.info(
        "payment_submission_reviewed",
        submission_id=str(submission.id),
        status=submission.status,
        transaction_id=str(transaction.id) if transaction else None,
    )
    return submission, transaction


# ---------- TRANSACTIONS / ACCOUNTS ----------


def _balance_columns():
    completed = CapitalTransaction.status == TransactionStatus.COMPLETED.value

    def total(txn_type: str):
        return func.coalesce(
            func.sum(
                case(
                    (completed & (CapitalTransaction.transaction_type == txn_type), CapitalTransaction.amount),
                    else_=0,
                )
            ),
            0,
        )

    return [total(t.value).label(t.value) for t in TT]


def _balance_from(totals: dict) -> dict:
    values = {t.value: Decimal(str(totals.get(t.value) or 0)) for t in TT}
    values["balance"] = (
        values[TT.INFLOW.value]
        + values[TT.RETURN.value]
        - values[TT.OUTFLOW.value]
        - values[TT.ALLOCATION.value]
    )
    return values


async def account_balance(session: AsyncSession, investor_id) -> dict:
    result = await session.execute(
        select(*_balance_columns()).where(CapitalTransaction.investor_id == investor_id)
    )
    return _balance_from(dict(result.one()._mapping))


async def create_transaction(
    session: AsyncSession,
    investor_id,
    transaction_type: str,
    amount,
    description: str,
    actor: dict,
    reference_number: Optional[str] = None,
) -> CapitalTransaction:
    if transaction_type not in {t.value for t in TT}:
        raise ValidationError("Invalid transaction type")
    if not description or not description.strip():
        raise ValidationError("description is required")
    value = _amount(amount)

    investor = await session.execute(select(Investor.id).where(Investor.id == investor_id))
    if investor.scalar_one_or_none() is None:
        raise NotFoundError("Investor not found")

    # Debits serialise on the account row so two can never spend the same balance.
    await ensure_account(session, investor_id, lock=transaction_type in _DEBITS)

    if transaction_type in _DEBITS:
        balance = (await account_balance(session, investor_id))["balance"]
        if balance < value:
            logger.warning(
                "capital_insufficient_balance",
                investor_id=str(investor_id),
                transaction_type=transaction_type,
                requested=str(value),
                available=str(balance),
            )
            raise ValidationError(
                "Insufficient available balance for this transaction",
                details={"available_balance": str(balance), "required_amount": str(value)},
            )

    transaction = CapitalTransaction(
        investor_id=investor_id,
        transaction_type=transaction_type,
        amount=value,
        description=description.strip(),
        reference_number=(reference_number or "").strip() or None,
        admin_user_id=actor.get("user_id"),
        status=TransactionStatus.COMPLETED.value,
    )
    session.add(transaction)
    await session.flush()

    await create_audit_log(
        session,
        actor_id=actor.get("user_id"),
        action="CAPITAL_TRANSACTION_CREATED",
        entity_type="capital_transaction",
        entity_id=transaction.id,
        after_state={"transaction_type": transaction_type, "amount": str(value)},
        actor_email=actor.get("email"),
    )
    logger.info(
        "capital_transaction_created",
        transaction_id=str(transaction.id),
        transaction_type=transaction_type,
        amount=str(value),
    )
    return transaction


async def list_transactions(
    session: AsyncSession,
    investor_id=None,
    transaction_type: Optional[str] = None,
    page: int = 1,
    limit: int = 50,
) -> tuple[list[tuple[CapitalTransaction, Investor]], int]:
    filters = []
    if investor_id is not None:
        filters.append(CapitalTransaction.investor_id == investor_id)
    if transaction_type:
        filters.append(CapitalTransaction.transaction_type == transaction_type)

    total = (
        await session.execute(select(func.count(CapitalTransaction.id)).where(*filters))
    ).scalar() or 0
    result = await session.execute(
        select(CapitalTransaction, Investor)
        .join(Investor, CapitalTransaction.investor_id == Investor.id)
        .where(*filters)
        .order_by(CapitalTransaction.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return [tuple(row) for row in result.all()], total


async def list_accounts(session: AsyncSession, investor_id=None) -> list[dict]:
    q = select(InvestorAccount, Investor).join(Investor, InvestorAccount.investor_id == Investor.id)
    if investor_id is not None:
        q = q.where(InvestorAccount.investor_id == investor_id)
    accounts = (await session.execute(q.order_by(InvestorAccount.created_at))).all()
    if not accounts:
        return []

    totals_result = await session.execute(
        select(CapitalTransaction.investor_id, *_balance_columns())
        .where(CapitalTransaction.investor_id.in_([a.investor_id for a, _ in accounts]))
        .group_by(CapitalTransaction.investor_id)
    )
    totals = {str(row.investor_id): dict(row._mapping) for row in totals_result.all()}

    return [
        {
            "account": account,
            "investor": investor,
            "balances": _balance_from(totals.get(str(account.investor_id), {})),
        }
        for account, investor in accounts
    ]


# ---------- BANK DETAILS ----------


async def get_bank_details(session: AsyncSession, investor_id) -> Optional[InvestorBankDetails]:
    result = await session.execute(
        select(InvestorBankDetails).where(InvestorBankDetails.investor_id == investor_id)
    )
    return result.scalar_one_or_none()


async def upsert_bank_details(
    session: AsyncSession,
    investor_id,
    actor: dict,
    account_holder_name: str,
    bank_name: str,
    account_number: str,
    ifsc_code: str,
    branch: Optional[str] = None,
) -> InvestorBankDetails:
    details = await get_bank_details(session, investor_id)
    created = details is None
    if created:
        details = InvestorBankDetails(investor_id=investor_id)
        session.add(details)

    details.account_holder_name = account_holder_name.strip()
    details.bank_name = bank_name.strip()
    details.account_number = account_number.strip()
    details.ifsc_code = ifsc_code.strip().upper()
    details.branch = (branch or "").strip() or None
    await session.flush()

    # Account numbers stay out of the audit trail.
    await create_audit_log(
        session,
        actor_id=actor.get("user_id"),
        action="BANK_DETAILS_CREATED" if created else "BANK_DETAILS_UPDATED",
        entity_type="investor_bank_details",
        entity_id=details.id,
        after_state={"bank_name": details.bank_name, "ifsc_code": details.ifsc_code},
        actor_email=actor.get("email"),
    )
    return details
