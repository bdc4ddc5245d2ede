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
    CheckConstraint,
    Index,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from finverno.database import Base, utcnow


class PurchaseRequest(Base):
    __tablename__ = "purchase_requests"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4
    )
    project_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("projects.id"), nullable=False
    )
    contractor_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("contractors.id"), nullable=False
    )
    status: Mapped[str] = mapped_column(String(30), default="draft")
    remarks: Mapped[Optional[str]] = mapped_column(Text)
    approved_by: Mapped[Optional[str]] = mapped_column(String(255))
    approval_notes: Mapped[Optional[str]] = mapped_column(Text)
    po_number: Mapped[Optional[str]] = mapped_column(String(50))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow
    )
    submitted_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    funded_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    # Delivery & dispute
    delivery_status: Mapped[str] = mapped_column(String(30), default="not_dispatched")
    dispatched_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    dispute_window_hours: Mapped[Optional[int]] = mapped_column(Integer)
    dispute_deadline: Mapped[Optional[datetime]] = mapped_column(DateTime)
    dispute_raised_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    dispute_raised_by: Mapped[Optional[str]] = mapped_column(String(255))
    dispute_reason: Mapped[Optional[str]] = mapped_column(Text)
    delivered_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    invoice_generated_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    # Set by the deemed-delivery sweep while it owns the row.
    invoice_claimed_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    __table_args__ = (
        CheckConstraint(
            "status IN ('draft','submitted','approved','funded','po_generated',"
            "'completed','rejected','cancelled')",
            name="chk_pr_status",
        ),
        CheckConstraint(
            "delivery_status IN ('not_dispatched','dispatched','disputed','delivered')",
            name="chk_pr_delivery_status",
        ),
        Index("idx_pr_project", "project_id"),
        Index("idx_pr_contractor", "contractor_id"),
        Index("idx_pr_status", "status"),
        Index("idx_pr_delivery", "delivery_status", "dispute_deadline"),
    )


class PurchaseRequestItem(Base):
    __tablename__ = "purchase_request_items"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4
    )
    purchase_request_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("purchase_requests.id", ondelete="CASCADE"),
        nullable=False,
    )
    project_material_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("project_materials.id"), nullable=False
    )
    item_description: Mapped[Optional[str]] = mapped_column(Text)
    hsn_code: Mapped[Optional[str]] = mapped_column(String(20))
    requested_qty: Mapped[Decimal] = mapped_column(Numeric(14, 3), nullable=False)
    approved_qty: Mapped[Optional[Decimal]] = mapped_column(Numeric(14, 3))
    unit_rate: Mapped[Optional[Decimal]] = mapped_column(Numeric(14, 2))
    tax_percent: Mapped[Decimal] = mapped_column(Numeric(5, 2), default=0)
    status: Mapped[str] = mapped_column(String(30), default="pending")
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        CheckConstraint("requested_qty > 0", name="chk_pr_item_requested_qty"),
        CheckConstraint(
            "approved_qty IS NULL OR (approved_qty >= 0 AND approved_qty <= requested_qty)",
            name="chk_pr_item_approved_qty",
        ),
        Index("idx_pr_items_pr", "purchase_request_id"),
        Index("idx_pr_items_material", "project_material_id"),
    )
