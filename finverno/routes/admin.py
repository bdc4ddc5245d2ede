from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from finverno.config import settings
from finverno.database import get_db
from finverno.middleware.authorization import require_roles
from finverno.services import project_service
from finverno.services.cache import TTLCache, get_cache

router = APIRouter(dependencies=[Depends(require_roles("admin"))])


@router.get("/contractors")
async def list_contractors(
    cache: TTLCache = Depends(get_cache),
    db: AsyncSession = Depends(get_db),
):
    data = await cache.get_or_refresh(
        project_service.ADMIN_CONTRACTORS_KEY,
        settings.CACHE_TTL_SECONDS,
        lambda: project_service.load_admin_contractors(db),
    )
    return {"data": data}


@router.get("/projects")
async def list_projects(
    cache: TTLCache = Depends(get_cache),
    db: AsyncSession = Depends(get_db),
):
    data = await cache.get_or_refresh(
        project_service.ADMIN_PROJECTS_KEY,
        settings.CACHE_TTL_SECONDS,
        lambda: project_service.load_admin_projects(db),
    )
    return {"data": data}
