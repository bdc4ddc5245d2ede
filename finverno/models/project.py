import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    String,
    Numeric,
    DateTime,
    Text,
    ForeignKey,
    CheckConstraint,
    Index,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from finverno.database import Base, utcnow


class Project(Base):
    __tablename__ = "projects"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4
    )
    contractor_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("contractors.id"), nullable=False
    )
    project_name: Mapped[str] = mapped_column(String(255), nullable=False)
    client_name: Mapped[Optional[str]] = mapped_column(String(255))
    status: Mapped[str] = mapped_column(String(30), default="draft")
    estimated_value: Mapped[Optional[Decimal]] = mapped_column(Numeric(16, 2))
    funding_required: Mapped[Optional[Decimal]] = mapped_column(Numeric(16, 2))
    funding_status: Mapped[str] = mapped_column(String(30), default="pending")
    po_number: Mapped[Optional[str]] = mapped_column(String(100))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        CheckConstraint(
            "funding_required IS NULL OR estimated_value IS NULL "
            "OR funding_required <= estimated_value",
            name="chk_project_funding_le_value",
        ),
        Index("idx_projects_contractor", "contractor_id"),
        Index("idx_projects_status", "status"),
    )


class Material(Base):
    """Catalog entry shared by project materials."""

    __tablename__ = "materials"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    unit: Mapped[str] = mapped_column(String(30), default="nos")
    category: Mapped[Optional[str]] = mapped_column(String(100))
    hsn_code: Mapped[Optional[str]] = mapped_column(String(20))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class ProjectMaterial(Base):
    __tablename__ = "project_materials"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4
    )
    project_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("projects.id"), nullable=False
    )
    material_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("materials.id")
    )
    contractor_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("contractors.id"), nullable=False
    )
    name: Mapped[Optional[str]] = mapped_column(String(255))
    unit: Mapped[Optional[str]] = mapped_column(String(30))
    required_qty: Mapped[Decimal] = mapped_column(Numeric(14, 3), default=0)
    available_qty: Mapped[Decimal] = mapped_column(Numeric(14, 3), default=0)
    source_type: Mapped[Optional[str]] = mapped_column(String(50))
    source_file_name: Mapped[Optional[str]] = mapped_column(String(255))
    notes: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        CheckConstraint("required_qty >= 0", name="chk_pm_required_qty"),
        CheckConstraint("available_qty >= 0", name="chk_pm_available_qty"),
        Index("idx_project_materials_project", "project_id"),
    )
