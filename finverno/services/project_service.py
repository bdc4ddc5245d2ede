from decimal import Decimal, InvalidOperation
from typing import Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from finverno.errors import NotFoundError, StateError, ValidationError
from finverno.models.contractor import Contractor
from finverno.models.enums import FundingStatus, ProjectStatus
from finverno.models.project import Material, Project, ProjectMaterial
from finverno.services.audit_service import create_audit_log

logger = structlog.get_logger()

CONVERTIBLE_STATES = {ProjectStatus.DRAFT.value, ProjectStatus.TENDERING.value}
ADMIN_CONTRACTORS_KEY = "admin:contractors"
ADMIN_PROJECTS_KEY = "admin:projects"


def _decimal(value, field: str, positive: bool = False) -> Optional[Decimal]:
    if value is None:
        return None
    try:
        number = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError(f"{field} must be a number")
    if not number.is_finite() or number < 0 or (positive and number == 0):
        raise ValidationError(f"{field} must be {'greater than 0' if positive else 'non-negative'}")
    return number


async def get_project(session: AsyncSession, project_id, contractor_id=None) -> Project:
    q = select(Project).where(Project.id == project_id)
    if contractor_id is not None:
        q = q.where(Project.contractor_id == contractor_id)
    result = await session.execute(q)
    project = result.scalar_one_or_none()
    if not project:
        raise NotFoundError("Project not found")
    return project


async def create_project(
    session: AsyncSession,
    contractor_id,
    project_name: str,
    actor: dict,
    client_name: Optional[str] = None,
    estimated_value=None,
) -> Project:
    if not project_name or not project_name.strip():
        raise ValidationError("project_name is required")
    project = Project(
        contractor_id=contractor_id,
        project_name=project_name.strip(),
        client_name=client_name,
        estimated_value=_decimal(estimated_value, "estimated_value"),
        status=ProjectStatus.DRAFT.value,
        funding_status=FundingStatus.PENDING.value,
    )
    session.add(project)
    await session.flush()
    await create_audit_log(
        session,
        actor_id=actor.get("user_id"),
        action="PROJECT_CREATED",
        entity_type="project",
        entity_id=project.id,
        after_state={"status": project.status, "project_name": project.project_name},
        actor_email=actor.get("email"),
    )
    logger.info("project_created", project_id=str(project.id))
    return project


async def list_projects(session: AsyncSession, contractor_id) -> list[Project]:
    result = await session.execute(
        select(Project)
        .where(Project.contractor_id == contractor_id)
        .order_by(Project.created_at.desc())
    )
    return list(result.scalars().all())


async def convert_project(
    session: AsyncSession,
    project_id,
    contractor_id,
    estimated_value,
    actor: dict,
    po_number: Optional[str] = None,
    funding_required=None,
) -> Project:
    """Move a draft or tendering project to awarded with its contract value."""
    project = await get_project(session, project_id, contractor_id)
    if project.status not in CONVERTIBLE_STATES:
        raise StateError(
            f"Cannot convert project: current status is '{project.status}'",
            current_state=project.status,
        )

    value = _decimal(estimated_value, "estimated_value", positive=True)
    if value is None:
        raise ValidationError("estimated_value is required")
    funding = _decimal(funding_required, "funding_required")
    if funding is not None and funding > value:
        raise ValidationError(
            "funding_required cannot exceed estimated_value",
            details={"estimated_value": str(value), "funding_required": str(funding)},
        )

    before = {"status": project.status}
    project.status = ProjectStatus.AWARDED.value
    project.estimated_value = value
    project.funding_required = funding
    project.po_number = (po_number or "").strip() or None
    await session.flush()

    await create_audit_log(
        session,
        actor_id=actor.get("user_id"),
        action="PROJECT_CONVERTED",
        entity_type="project",
        entity_id=project.id,
        before_state=before,
        after_state={"status": project.status, "estimated_value": str(value)},
        actor_email=actor.get("email"),
    )
    logger.info("project_converted", project_id=str(project.id), estimated_value=str(value))
    return project


async def add_material(
    session: AsyncSession,
    project_id,
    contractor_id,
    actor: dict,
    required_qty,
    available_qty=0,
    material_id=None,
    name: Optional[str] = None,
    unit: Optional[str] = None,
    source_type: Optional[str] = None,
    source_file_name: Optional[str] = None,
    notes: Optional[str] = None,
) -> ProjectMaterial:
    project = await get_project(session, project_id, contractor_id)

    catalog = None
    if material_id is not None:
        result = await session.execute(select(Material).where(Material.id == material_id))
        catalog = result.scalar_one_or_none()
        if catalog is None:
            raise ValidationError("Material not found in catalog")
    if catalog is None and not (name and name.strip()):
        raise ValidationError("Either material_id or name is required")

    material = ProjectMaterial(
        project_id=project.id,
        contractor_id=project.contractor_id,
        material_id=catalog.id if catalog else None,
        name=(name or "").strip() or (catalog.name if catalog else None),
        unit=unit or (catalog.unit if catalog else None),
        required_qty=_decimal(required_qty, "required_qty") or Decimal("0"),
        available_qty=_decimal(available_qty, "available_qty") or Decimal("0"),
        source_type=source_type,
        source_file_name=source_file_name,
        notes=notes,
    )
    session.add(material)
    await session.flush()
    await create_audit_log(
        session,
        actor_id=actor.get("user_id"),
        action="PROJECT_MATERIAL_ADDED",
        entity_type="project_material",
        entity_id=material.id,
        after_state={"required_qty": str(material.required_qty), "available_qty": str(material.available_qty)},
        actor_email=actor.get("email"),
    )
    return material


# ---------- ADMIN LISTINGS (cached as JSON) ----------


async def load_admin_contractors(session: AsyncSession) -> list[dict]:
    project_counts = (
        select(Project.contractor_id, func.count(Project.id).label("project_count"))
        .group_by(Project.contractor_id)
        .subquery()
    )
    result = await session.execute(
        select(Contractor, func.coalesce(project_counts.c.project_count, 0))
        .outerjoin(project_counts, project_counts.c.contractor_id == Contractor.id)
        .order_by(Contractor.created_at.desc())
    )
    return [
        {
            "id": str(c.id),
            "company_name": c.company_name,
            "contact_person": c.contact_person,
            "email": c.email,
            "gstin": c.gstin,
            "verification_status": c.verification_status,
            "status": c.status,
            "project_count": count,
            "created_at": c.created_at.isoformat() if c.created_at else None,
        }
        for c, count in result.all()
    ]


async def load_admin_projects(session: AsyncSession) -> list[dict]:
    result = await session.execute(
        select(Project, Contractor.company_name)
        .join(Contractor, Project.contractor_id == Contractor.id)
        .order_by(Project.created_at.desc())
    )
    return [
        {
            "id": str(p.id),
            "project_name": p.project_name,
            "client_name": p.client_name,
            "contractor_id": str(p.contractor_id),
            "company_name": company_name,
            "status": p.status,
            "estimated_value": str(p.estimated_value) if p.estimated_value is not None else None,
            "funding_required": str(p.funding_required) if p.funding_required is not None else None,
            "funding_status": p.funding_status,
            "created_at": p.created_at.isoformat() if p.created_at else None,
        }
        for p, company_name in result.all()
    ]
