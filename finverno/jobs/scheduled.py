# finverno/jobs/scheduled.py
"""
Scheduled jobs triggered by an external cron hitting API endpoints.

Jobs:
  - check-deemed-delivery: hourly; invoices dispatched requests whose
    dispute window has closed.
"""

import secrets

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import async_sessionmaker
import structlog

from finverno.config import settings
from finverno.database import get_session_factory
from finverno.errors import AuthenticationError, DependencyError
from finverno.schemas.delivery import SweepResponse
from finverno.services.delivery_service import run_deemed_delivery_sweep

logger = structlog.get_logger()
router = APIRouter()


async def _require_cron_auth(request: Request):
    """Validate `Authorization: Bearer <CRON_SECRET>`."""
    secret = settings.CRON_SECRET
    if not secret:
        if settings.DEBUG:
            return
        raise DependencyError("CRON_SECRET is not configured", code="CRON_NOT_CONFIGURED")
    header = request.headers.get("Authorization", "")
    scheme, _, provided = header.partition(" ")
    if scheme.lower() != "bearer" or not secrets.compare_digest(provided.strip().encode(), secret.encode()):
        logger.warning("cron_auth_failed", path=request.url.path)
        raise AuthenticationError("Unauthorized", code="CRON_UNAUTHORIZED")


@router.get("/check-deemed-delivery", response_model=SweepResponse)
async def check_deemed_delivery(
    session_factory: async_sessionmaker = Depends(get_session_factory),
    _auth: None = Depends(_require_cron_auth),
):
    logger.info("deemed_delivery_sweep_started")
    return await run_deemed_delivery_sweep(session_factory)
