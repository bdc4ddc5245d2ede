import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    String,
    Integer,
    Numeric,
    DateTime,
    Text,
    ForeignKey,
    UniqueConstraint,
    Index,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from finverno.database import Base, JSONType, utcnow


class BoqTakeoff(Base):
    __tablename__ = "boq_takeoffs"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4
    )
    project_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("projects.id"), nullable=False
    )
    contractor_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("contractors.id"), nullable=False
    )
    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    file_url: Mapped[Optional[str]] = mapped_column(Text)
    takeoff_data: Mapped[Optional[list]] = mapped_column(JSONType)
    total_items: Mapped[int] = mapped_column(Integer, default=0)
    verification_status: Mapped[str] = mapped_column(String(30), default="none")
    admin_verified_quantity: Mapped[Optional[Decimal]] = mapped_column(Numeric(14, 3))
    estimated_rate: Mapped[Optional[Decimal]] = mapped_column(Numeric(14, 2))
    admin_notes: Mapped[Optional[str]] = mapped_column(Text)
    verified_by: Mapped[Optional[str]] = mapped_column(String(255))
    verified_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    submitted_for_verification_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        UniqueConstraint(
            "project_id", "contractor_id", "file_name", name="uq_takeoff_file"
        ),
        Index("idx_takeoffs_status", "verification_status"),
        Index("idx_takeoffs_contractor", "contractor_id"),
    )
