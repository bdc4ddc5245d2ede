"""
BOQ takeoff verification.

Contractors save a takeoff per (project, file) and submit it for review;
admins mark it verified, disputed or revision_required, singly or in bulk.
"""

from decimal import Decimal, InvalidOperation
from typing import Iterable, Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from finverno.config import settings
from finverno.database import utcnow
from finverno.errors import AppError, NotFoundError, StateError, ValidationError
from finverno.models.contractor import Contractor
from finverno.models.enums import VerificationStatus
from finverno.models.project import Project
from finverno.models.takeoff import BoqTakeoff
from finverno.services.audit_service import create_audit_log
from finverno.services.state_machine import REVIEW_OUTCOMES, transition
from finverno.services.storage import R2Client

logger = structlog.get_logger()

VS = VerificationStatus
ENTITY = "boq_takeoff"
SUMMARY_STATES = (VS.PENDING, VS.VERIFIED, VS.DISPUTED, VS.REVISION_REQUIRED)


def _status(takeoff: BoqTakeoff) -> str:
    return takeoff.verification_status or VS.NONE.value


def _optional_decimal(value, field: str, non_negative: bool = True) -> Optional[Decimal]:
    if value is None:
        return None
    try:
        number = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError(f"{field} must be a number")
    if not number.is_finite():
        raise ValidationError(f"{field} must be a finite number")
    if non_negative and number < 0:
        raise ValidationError(f"{field} must not be negative")
    return number


async def _find(session: AsyncSession, project_id, contractor_id, file_name: str) -> Optional[BoqTakeoff]:
    result = await session.execute(
        select(BoqTakeoff).where(
            BoqTakeoff.project_id == project_id,
            BoqTakeoff.contractor_id == contractor_id,
            BoqTakeoff.file_name == file_name,
        )
    )
    return result.scalar_one_or_none()


async def save_takeoff(
    session: AsyncSession,
    contractor_id,
    project_id,
    file_name: str,
    takeoff_data: list,
    actor: dict,
    file_url: Optional[str] = None,
) -> BoqTakeoff:
    """Create or replace the takeoff lines for one project file."""
    if not file_name or not file_name.strip():
        raise ValidationError("file_name is required")
    if takeoff_data is None:
        raise ValidationError("takeoff_data is required")

    project = await session.execute(
        select(Project.id).where(Project.id == project_id, Project.contractor_id == contractor_id)
    )
    if project.scalar_one_or_none() is None:
        raise NotFoundError("Project not found")

    takeoff = await _find(session, project_id, contractor_id, file_name)
    if takeoff is None:
        takeoff = BoqTakeoff(
            project_id=project_id,
            contractor_id=contractor_id,
            file_name=file_name,
            verification_status=VS.NONE.value,
        )
        session.add(takeoff)
        action = "TAKEOFF_CREATED"
    else:
        if _status(takeoff) == VS.VERIFIED.value:
            raise StateError(
                "Cannot edit takeoff: current status is 'verified'",
                current_state=VS.VERIFIED.value,
            )
        action = "TAKEOFF_UPDATED"

    takeoff.takeoff_data = list(takeoff_data)
    takeoff.total_items = len(takeoff.takeoff_data)
    if file_url is not None:
        takeoff.file_url = file_url
    await session.flush()

    await create_audit_log(
        session,
        actor_id=actor.get("user_id"),
        action=action,
        entity_type=ENTITY,
        entity_id=takeoff.id,
        after_state={"file_name": file_name, "total_items": takeoff.total_items},
        actor_email=actor.get("email"),
    )
    return takeoff


async def submit_for_verification(
    session: AsyncSession, contractor_id, project_id, file_name: str, actor: dict
) -> BoqTakeoff:
    """Only an existing saved takeoff can be submitted; none is created here."""
    takeoff = await _find(session, project_id, contractor_id, file_name)
    if takeoff is None:
        raise NotFoundError(
            "No BOQ takeoff found for this project and file. Please save your takeoff first."
        )

    before = {"verification_status": _status(takeoff)}
    takeoff.verification_status = transition(
        VS, takeoff.verification_status, VS.PENDING, action="submit takeoff for verification"
    ).value
    takeoff.submitted_for_verification_at = utcnow()
    await session.flush()

    await create_audit_log(
        session,
        actor_id=actor.get("user_id"),
        action="TAKEOFF_SUBMITTED",
        entity_type=ENTITY,
        entity_id=takeoff.id,
        before_state=before,
        after_state={"verification_status": takeoff.verification_status},
        actor_email=actor.get("email"),
    )
    logger.info("takeoff_submitted", takeoff_id=str(takeoff.id), file_name=file_name)
    return takeoff


def summarize(statuses: Iterable[Optional[str]], include_none: bool = False) -> dict:
    summary = {state.value: 0 for state in SUMMARY_STATES}
    if include_none:
        summary = {VS.NONE.value: 0, **summary}
    total = 0
    for status in statuses:
        status = status or VS.NONE.value
        total += 1
        if status in summary:
            summary[status] += 1
    if include_none:
        summary["total"] = total
    return summary


async def verification_summary(session: AsyncSession) -> dict:
    """Counts by review state across all takeoffs, recomputed on every call."""
    result = await session.execute(
        select(BoqTakeoff.verification_status, func.count(BoqTakeoff.id))
        .where(BoqTakeoff.verification_status.in_([s.value for s in SUMMARY_STATES]))
        .group_by(BoqTakeoff.verification_status)
    )
    summary = {state.value: 0 for state in SUMMARY_STATES}
    for status, count in result.all():
        summary[status] = count
    return summary


async def contractor_status(
    session: AsyncSession, contractor_id, project_id, file_name: Optional[str] = None
) -> dict:
    q = select(BoqTakeoff).where(
        BoqTakeoff.project_id == project_id, BoqTakeoff.contractor_id == contractor_id
    )
    if file_name:
        q = q.where(BoqTakeoff.file_name == file_name)
    result = await session.execute(q.order_by(BoqTakeoff.created_at.desc()))
    takeoffs = list(result.scalars().all())

    if file_name:
        if not takeoffs:
            raise NotFoundError("No BOQ takeoff found for this project and file")
        return {"takeoff": takeoffs[0], "overall_status": _status(takeoffs[0])}

    return {
        "takeoffs": takeoffs,
        "summary": summarize((t.verification_status for t in takeoffs), include_none=True),
    }


async def review_takeoff(
    session: AsyncSession,
    takeoff_id,
    verification_status: str,
    actor: dict,
    admin_verified_quantity=None,
    estimated_rate=None,
    admin_notes: Optional[str] = None,
) -> BoqTakeoff:
    """
    Record an admin review outcome.

    All checks run before the row is touched, so a failed review leaves it
    unchanged and bulk review can carry on with the next id.
    """
    try:
        outcome = VS(verification_status)
    except ValueError:
        outcome = None
    if outcome not in REVIEW_OUTCOMES:
        raise ValidationError(
            "verification_status must be one of: verified, disputed, revision_required"
        )
    quantity = _optional_decimal(admin_verified_quantity, "admin_verified_quantity")
    rate = _optional_decimal(estimated_rate, "estimated_rate")

    result = await session.execute(
        select(BoqTakeoff).where(BoqTakeoff.id == takeoff_id).with_for_update()
    )
    takeoff = result.scalar_one_or_none()
    if takeoff is None:
        raise NotFoundError("Takeoff not found")

    before = {"verification_status": _status(takeoff)}
    takeoff.verification_status = transition(
        VS, takeoff.verification_status, outcome, action=f"mark takeoff {outcome.value}"
    ).value
    if quantity is not None:
        takeoff.admin_verified_quantity = quantity
    if rate is not None:
        takeoff.estimated_rate = rate
    if admin_notes is not None:
        takeoff.admin_notes = admin_notes
    takeoff.verified_by = actor.get("user_id")
    takeoff.verified_at = utcnow()
    await session.flush()

    await create_audit_log(
        session,
        actor_id=actor.get("user_id"),
        action=f"TAKEOFF_{outcome.value.upper()}",
        entity_type=ENTITY,
        entity_id=takeoff.id,
        before_state=before,
        after_state={"verification_status": takeoff.verification_status},
        actor_email=actor.get("email"),
    )
    logger.info("takeoff_reviewed", takeoff_id=str(takeoff.id), status=takeoff.verification_status)
    return takeoff


async def review_bulk(
    session: AsyncSession,
    takeoff_ids: Iterable,
    verification_status: str,
    actor: dict,
    admin_notes: Optional[str] = None,
    admin_verified_quantity=None,
    estimated_rate=None,
) -> dict:
    """Apply one review outcome to many takeoffs; each id succeeds or fails on its own."""
    results = []
    for takeoff_id in takeoff_ids:
        try:
            takeoff = await review_takeoff(
                session,
                takeoff_id,
                verification_status,
                actor,
                admin_verified_quantity=admin_verified_quantity,
                estimated_rate=estimated_rate,
                admin_notes=admin_notes,
            )
        except AppError as e:
            logger.warning("takeoff_bulk_review_item_failed", takeoff_id=str(takeoff_id), error=e.message)
            results.append({"id": str(takeoff_id), "status": "error", "code": e.code, "error": e.message})
            continue
        results.append(
            {
                "id": str(takeoff.id),
                "status": "success",
                "file_name": takeoff.file_name,
                "verification_status": takeoff.verification_status,
            }
        )

    updated = sum(1 for r in results if r["status"] == "success")
    return {
        "updated": updated,
        "failed": len(results) - updated,
        "results": results,
    }


async def list_for_review(
    session: AsyncSession,
    storage: R2Client,
    status: str = VS.PENDING.value,
    limit: int = 50,
    offset: int = 0,
) -> dict:
    """Admin listing with a presigned file URL per row, fetched concurrently."""
    filters = [BoqTakeoff.verification_status == status]
    total = (
        await session.execute(select(func.count(BoqTakeoff.id)).where(*filters))
    ).scalar() or 0
    result = await session.execute(
        select(
            BoqTakeoff,
            Project.project_name,
            Contractor.company_name,
            Contractor.contact_person,
            Contractor.email,
        )
        .join(Project, BoqTakeoff.project_id == Project.id)
        .join(Contractor, BoqTakeoff.contractor_id == Contractor.id)
        .where(*filters)
        .order_by(BoqTakeoff.created_at.asc())
        .offset(offset)
        .limit(limit)
    )
    rows = result.all()
    urls = await storage.signed_urls(settings.TAKEOFF_BUCKET, [row[0].file_url for row in rows])

    takeoffs = []
    for (takeoff, project_name, company_name, contact_person, email), url in zip(rows, urls):
        takeoffs.append(
            {
                "takeoff": takeoff,
                "project_name": project_name,
                "contractor": {
                    "company_name": company_name,
                    "contact_person": contact_person,
                    "email": email,
                },
                "file_download_url": url,
            }
        )

    return {
        "takeoffs": takeoffs,
        "summary": await verification_summary(session),
        "total": total,
        "limit": limit,
        "offset": offset,
    }
