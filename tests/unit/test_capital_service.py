"""
Unit tests for finverno/services/capital_service.py

Tests: input validation that runs before any database work, and the
balance formula over completed transactions, and the account row lock
taken before a debit reads the balance.
"""

from datetime import date
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.dialects import postgresql

from finverno.errors import ValidationError
from finverno.services import capital_service
from finverno.services.capital_service import (
    _balance_from,
    create_transaction,
    ensure_account,
    review_submission,
    submit_payment,
)

ACTOR = {"user_id": "admin-1", "email": "admin@finverno.test"}


def _mock_session() -> AsyncMock:
    session = AsyncMock()
    session.flush = AsyncMock()
    session.add = MagicMock()
    return session


@pytest.mark.parametrize("amount", [0, -10, "abc", "NaN"])
async def test_submit_payment_rejects_bad_amount(amount):
    session = _mock_session()
    with pytest.raises(ValidationError):
        await submit_payment(session, "inv-1", amount, date(2026, 1, 5), ACTOR)
    session.add.assert_not_called()


async def test_submit_payment_requires_date():
    session = _mock_session()
    with pytest.raises(ValidationError):
        await submit_payment(session, "inv-1", 100, None, ACTOR)


async def test_review_rejects_unknown_action():
    session = _mock_session()
    with pytest.raises(ValidationError) as exc:
        await review_submission(session, "sub-1", "hold", ACTOR)
    assert exc.value.detail["error"]["details"] == {"allowed": ["approve", "reject"]}
    session.execute.assert_not_called()


async def test_create_transaction_rejects_unknown_type():
    session = _mock_session()
    with pytest.raises(ValidationError):
        await create_transaction(session, "inv-1", "gift", 100, "x", ACTOR)
    session.execute.assert_not_called()


async def test_create_transaction_requires_description():
    session = _mock_session()
    with pytest.raises(ValidationError):
        await create_transaction(session, "inv-1", "inflow", 100, "  ", ACTOR)


def test_balance_formula():
    balances = _balance_from(
        {
            "inflow": Decimal("50000"),
            "outflow": Decimal("5000"),
            "allocation": Decimal("20000"),
            "return": Decimal("1500"),
        }
    )
    assert balances["balance"] == Decimal("26500")


def test_balance_formula_with_no_rows():
    balances = _balance_from({"inflow": None, "outflow": None, "allocation": None, "return": None})
    assert balances["balance"] == Decimal("0")


def _sql(stmt) -> str:
    return str(stmt.compile(dialect=postgresql.dialect()))


def _result(value) -> MagicMock:
    result = MagicMock()
    result.scalar_one_or_none.return_value = value
    return result


async def test_ensure_account_locks_only_when_asked():
    session = _mock_session()
    session.execute.return_value = _result(MagicMock())

    await ensure_account(session, "inv-1")
    assert "FOR UPDATE" not in _sql(session.execute.call_args.args[0])

    await ensure_account(session, "inv-1", lock=True)
    assert "FOR UPDATE" in _sql(session.execute.call_args.args[0])
    session.add.assert_not_called()


@pytest.mark.parametrize("transaction_type", ["outflow", "allocation"])
async def test_debit_locks_account_before_balance_check(monkeypatch, transaction_type):
    session = _mock_session()
    session.execute.side_effect = [_result("inv-1"), _result(MagicMock())]
    seen = []

    async def fake_balance(s, investor_id):
        # The account row must already be locked when the balance is read.
        seen.append([_sql(c.args[0]) for c in session.execute.call_args_list])
        return {"balance": Decimal("100")}

    monkeypatch.setattr(capital_service, "account_balance", fake_balance)

    with pytest.raises(ValidationError) as exc:
        await create_transaction(session, "inv-1", transaction_type, 500, "Site advance", ACTOR)

    assert exc.value.detail["error"]["details"]["available_balance"] == "100"
    assert len(seen) == 1
    account_sql = seen[0][1]
    assert "investor_accounts" in account_sql
    assert "FOR UPDATE" in account_sql
    session.add.assert_not_called()
