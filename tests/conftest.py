import os

# Settings are read at import time; configure before importing finverno.
os.environ.setdefault("JWT_SECRET", "test-secret-key-for-finverno")
os.environ.setdefault("JWT_ALGORITHM", "HS256")
os.environ.setdefault("CRON_SECRET", "test-cron-secret")
os.environ.setdefault("CACHE_BACKEND", "memory")

import uuid
from decimal import Decimal
from typing import Optional

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from finverno.database import Base, get_db, get_session_factory
from finverno.main import app
from finverno.models.contractor import Contractor
from finverno.models.investor import Investor
from finverno.models.project import Project, ProjectMaterial
from finverno.services.auth_service import create_access_token
from finverno.services.cache import InMemoryTTLCache, get_cache
from finverno.services.storage import get_storage

ADMIN_ID = "admin-0001"
CONTRACTOR_IDENTITY = "contractor-0001"
OTHER_CONTRACTOR_IDENTITY = "contractor-0002"
INVESTOR_IDENTITY = "investor-0001"


class FakeStorage:
    """Deterministic presigned URLs; R2 is never contacted in tests."""

    async def signed_url(self, bucket: str, key: Optional[str]) -> Optional[str]:
        if not key:
            return None
        return f"https://signed.test/{bucket}/{key}"

    async def signed_urls(self, bucket: str, keys: list) -> list:
        return [await self.signed_url(bucket, key) for key in keys]


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------

@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as s:
        yield s


@pytest.fixture
def cache():
    return InMemoryTTLCache()


@pytest.fixture
async def client(session_factory, cache):
    async def _get_db():
        async with session_factory() as s:
            try:
                yield s
                await s.commit()
            except Exception:
                await s.rollback()
                raise

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_cache] = lambda: cache
    app.dependency_overrides[get_storage] = FakeStorage
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------

def auth(user_id: str, role: str, email: Optional[str] = None) -> dict:
    token = create_access_token(user_id=user_id, role=role, email=email)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_headers():
    return auth(ADMIN_ID, "admin", "admin@finverno.test")


@pytest.fixture
def contractor_headers():
    return auth(CONTRACTOR_IDENTITY, "contractor", "builder@acme.test")


@pytest.fixture
def other_contractor_headers():
    return auth(OTHER_CONTRACTOR_IDENTITY, "contractor", "other@build.test")


@pytest.fixture
def investor_headers():
    return auth(INVESTOR_IDENTITY, "investor", "investor@fund.test")


ADMIN_ACTOR = {"user_id": ADMIN_ID, "role": "admin", "email": "admin@finverno.test"}
CONTRACTOR_ACTOR = {"user_id": CONTRACTOR_IDENTITY, "role": "contractor", "email": "builder@acme.test"}


# ---------------------------------------------------------------------------
# Seed data
# ---------------------------------------------------------------------------

@pytest.fixture
async def seed(session_factory):
    """Two contractors, one investor, a project and one material (required 100)."""
    async with session_factory() as s:
        contractor = Contractor(
            identity_user_id=CONTRACTOR_IDENTITY,
            company_name="Acme Builders",
            contact_person="Ravi",
            email="builder@acme.test",
        )
        other = Contractor(
            identity_user_id=OTHER_CONTRACTOR_IDENTITY,
            company_name="Other Build Co",
            email="other@build.test",
        )
        investor = Investor(
            identity_user_id=INVESTOR_IDENTITY,
            name="Fund One",
            email="investor@fund.test",
        )
        s.add_all([contractor, other, investor])
        await s.flush()

        project = Project(
            id=uuid.uuid4(),
            contractor_id=contractor.id,
            project_name="Tower A",
            status="awarded",
        )
        s.add(project)
        await s.flush()

        material = ProjectMaterial(
            project_id=project.id,
            contractor_id=contractor.id,
            name="Cement (50kg bag)",
            unit="bag",
            required_qty=Decimal("100"),
            available_qty=Decimal("0"),
        )
        s.add(material)
        await s.commit()

    return {
        "contractor": contractor,
        "other_contractor": other,
        "investor": investor,
        "project": project,
        "material": material,
    }


@pytest.fixture
def admin_actor():
    return dict(ADMIN_ACTOR)


@pytest.fixture
def contractor_actor():
    return dict(CONTRACTOR_ACTOR)


@pytest.fixture
def make_request(session_factory, seed):
    """
    Build a purchase request through the services and stop at `until`:
    draft, submitted, approved, funded or dispatched.
    """
    from finverno.services import delivery_service
    from finverno.services import purchase_request_service as pr_service

    stages = ["draft", "submitted", "approved", "funded", "dispatched"]

    async def _make(
        until: str = "funded",
        qty: str = "10",
        unit_rate: str = "250",
        tax_percent: str = "18",
        dispatched_at=None,
        dispute_window_hours=None,
    ):
        stop = stages.index(until)
        async with session_factory() as s:
            pr, items = await pr_service.create_draft(
                s,
                contractor_id=seed["contractor"].id,
                project_id=seed["project"].id,
                lines=[{
                    "project_material_id": seed["material"].id,
                    "requested_qty": qty,
                    "unit_rate": unit_rate,
                    "tax_percent": tax_percent,
                }],
                actor=CONTRACTOR_ACTOR,
            )
            if stop >= 1:
                await pr_service.submit(s, pr.id, seed["contractor"].id, CONTRACTOR_ACTOR)
            if stop >= 2:
                await pr_service.review(
                    s, pr.id, [{"item_id": items[0].id, "status": "approved"}], ADMIN_ACTOR
                )
            if stop >= 3:
                await pr_service.fund(s, pr.id, ADMIN_ACTOR)
            if stop >= 4:
                await delivery_service.dispatch(
                    s, pr.id, ADMIN_ACTOR, dispute_window_hours, now=dispatched_at
                )
            await s.commit()
            return pr.id

    return _make
