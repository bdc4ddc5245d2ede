from fastapi import Depends
from sqlalchemy import select, or_
from sqlalchemy.ext.asyncio import AsyncSession

from finverno.database import get_db
from finverno.errors import AuthorizationError, NotFoundError
from finverno.middleware.auth import get_current_user
from finverno.models.contractor import Contractor
from finverno.models.investor import Investor


def require_roles(*allowed_roles: str):
    """
    FastAPI dependency factory for role-based access control.

    Usage:
        @router.get("/admin/delivery")
        async def list_deliveries(
            current_user: dict = Depends(get_current_user),
            _auth: None = Depends(require_roles("admin")),
        ):
    """
    async def check_role(current_user: dict = Depends(get_current_user)):
        if current_user["role"] not in allowed_roles:
            raise AuthorizationError(
                f"Role '{current_user['role']}' cannot perform this action. "
                f"Required: {allowed_roles}"
            )
        return None

    return check_role


async def get_current_contractor(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> Contractor:
    """Resolve the contractor row behind a contractor token."""
    if current_user["role"] != "contractor":
        raise AuthorizationError("Contractor access required")
    result = await db.execute(
        select(Contractor).where(Contractor.identity_user_id == current_user["user_id"])
    )
    contractor = result.scalar_one_or_none()
    if not contractor:
        raise NotFoundError("Contractor not found")
    return contractor


async def get_current_investor(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> Investor:
    """Resolve the investor by identity id, falling back to the token email."""
    if current_user["role"] != "investor":
        raise AuthorizationError("Investor access required")
    match = [Investor.identity_user_id == current_user["user_id"]]
    if current_user.get("email"):
        match.append(Investor.email == current_user["email"])
    result = await db.execute(
        select(Investor)
        .where(or_(*match))
        .order_by(Investor.identity_user_id.is_(None))
        .limit(1)
    )
    investor = result.scalar_one_or_none()
    if not investor:
        raise NotFoundError("Investor not found")
    return investor
