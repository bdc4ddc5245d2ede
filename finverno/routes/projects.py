import uuid

import structlog
from fastapi import APIRouter, BackgroundTasks, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from finverno.database import get_db
from finverno.middleware.auth import get_current_user
from finverno.middleware.authorization import get_current_contractor
from finverno.models.contractor import Contractor
from finverno.schemas.project import (
    ProjectConvert,
    ProjectCreate,
    ProjectMaterialCreate,
    ProjectMaterialResponse,
    ProjectResponse,
)
from finverno.services import project_service
from finverno.services.availability_service import get_material_availability, get_project_availability
from finverno.services.cache import TTLCache, get_cache

logger = structlog.get_logger()
router = APIRouter()


async def _invalidate_listings(cache: TTLCache, *keys: str) -> None:
    """Runs after the response, so after get_db has committed."""
    for key in keys:
        try:
            await cache.invalidate(key)
        except Exception as e:
            logger.warning("cache_invalidate_failed", key=key, error=str(e))


def _material(material, availability) -> ProjectMaterialResponse:
    return ProjectMaterialResponse(
        id=material.id,
        project_id=material.project_id,
        material_id=material.material_id,
        name=material.name,
        unit=material.unit,
        required_qty=availability.required_qty,
        available_qty=availability.available_qty,
        requested_qty=availability.requested_qty,
        ordered_qty=availability.ordered_qty,
        max_requestable=availability.max_requestable,
        source_type=material.source_type,
        source_file_name=material.source_file_name,
        notes=material.notes,
    )


@router.get("", response_model=list[ProjectResponse])
async def list_projects(
    contractor: Contractor = Depends(get_current_contractor),
    db: AsyncSession = Depends(get_db),
):
    return await project_service.list_projects(db, contractor.id)


@router.post("", response_model=ProjectResponse, status_code=status.HTTP_201_CREATED)
async def create_project(
    body: ProjectCreate,
    background_tasks: BackgroundTasks,
    current_user: dict = Depends(get_current_user),
    contractor: Contractor = Depends(get_current_contractor),
    cache: TTLCache = Depends(get_cache),
    db: AsyncSession = Depends(get_db),
):
    project = await project_service.create_project(
        db,
        contractor.id,
        body.project_name,
        current_user,
        client_name=body.client_name,
        estimated_value=body.estimated_value,
    )
    background_tasks.add_task(
        _invalidate_listings,
        cache,
        project_service.ADMIN_PROJECTS_KEY,
        project_service.ADMIN_CONTRACTORS_KEY,
    )
    return project


@router.put("/{project_id}/convert", response_model=ProjectResponse)
async def convert_project(
    project_id: uuid.UUID,
    body: ProjectConvert,
    background_tasks: BackgroundTasks,
    current_user: dict = Depends(get_current_user),
    contractor: Contractor = Depends(get_current_contractor),
    cache: TTLCache = Depends(get_cache),
    db: AsyncSession = Depends(get_db),
):
    project = await project_service.convert_project(
        db,
        project_id,
        contractor.id,
        body.estimated_value,
        current_user,
        po_number=body.po_number,
        funding_required=body.funding_required,
    )
    background_tasks.add_task(_invalidate_listings, cache, project_service.ADMIN_PROJECTS_KEY)
    return project


@router.get("/{project_id}/materials", response_model=list[ProjectMaterialResponse])
async def list_project_materials(
    project_id: uuid.UUID,
    contractor: Contractor = Depends(get_current_contractor),
    db: AsyncSession = Depends(get_db),
):
    """Materials with requested, ordered and still-requestable quantities."""
    await project_service.get_project(db, project_id, contractor.id)
    rows = await get_project_availability(db, project_id)
    return [_material(material, availability) for material, availability in rows]


@router.post(
    "/{project_id}/materials",
    response_model=ProjectMaterialResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_project_material(
    project_id: uuid.UUID,
    body: ProjectMaterialCreate,
    current_user: dict = Depends(get_current_user),
    contractor: Contractor = Depends(get_current_contractor),
    db: AsyncSession = Depends(get_db),
):
    material = await project_service.add_material(
        db, project_id, contractor.id, current_user, **body.model_dump()
    )
    return _material(material, await get_material_availability(db, material))
