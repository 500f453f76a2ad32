"""SQLAlchemy async database models for Pricebook.

Catalog tables (cost codes, line items, pricing modes), per-organization
price overrides, and the durable pricing job record.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class CostCodeModel(Base):
    """Cost code used to classify line items into pricing categories."""

    __tablename__ = "cost_codes"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    organization_id: Mapped[str | None] = mapped_column(Text, index=True)
    code: Mapped[str | None] = mapped_column(Text)
    name: Mapped[str | None] = mapped_column(Text)


class LineItemModel(Base):
    """Catalog line item. A null organization_id marks a shared/system item."""

    __tablename__ = "line_items"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    organization_id: Mapped[str | None] = mapped_column(Text, index=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    base_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    cost_code_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("cost_codes.id"), index=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )


class PricingModeModel(Base):
    """Named multiplier table keyed by pricing category.

    ``adjustments`` maps category name to multiplier; the reserved key
    ``"all"`` is the fallback for categories without an entry.
    """

    __tablename__ = "pricing_modes"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    organization_id: Mapped[str | None] = mapped_column(Text, index=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    icon: Mapped[str | None] = mapped_column(Text)
    adjustments: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)
    is_preset: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    usage_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    # Estimate outcomes recorded against the mode, for win rate
    total_estimates: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    successful_estimates: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )


class LineItemOverrideModel(Base):
    """Organization-specific custom price superseding a line item's base price."""

    __tablename__ = "line_item_overrides"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    organization_id: Mapped[str] = mapped_column(Text, nullable=False)
    line_item_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("line_items.id"), nullable=False
    )
    custom_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    applied_mode_id: Mapped[UUID | None] = mapped_column(Uuid(as_uuid=True))
    mode_multiplier: Mapped[Decimal | None] = mapped_column(Numeric(8, 4))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    __table_args__ = (
        # Upsert conflict target: at most one override per (org, item)
        UniqueConstraint(
            "organization_id", "line_item_id", name="uq_override_org_line_item"
        ),
    )


class PricingJobModel(Base):
    """Durable record of an asynchronous bulk pricing operation."""

    __tablename__ = "pricing_jobs"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    organization_id: Mapped[str] = mapped_column(Text, nullable=False)
    operation_type: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(Text, nullable=False, default="pending")

    total_items: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    processed_items: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    failed_items: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    job_data: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)
    result_summary: Mapped[dict | None] = mapped_column(JSON)
    error_message: Mapped[str | None] = mapped_column(Text)

    created_by: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'processing', 'completed', 'failed', 'cancelled')",
            name="check_pricing_job_status",
        ),
        CheckConstraint(
            "operation_type IN ('apply_pricing_mode', 'undo_pricing', 'bulk_update')",
            name="check_pricing_job_operation",
        ),
        CheckConstraint(
            "total_items >= 0 AND processed_items >= 0 AND failed_items >= 0",
            name="check_pricing_job_counts",
        ),
        Index("idx_pricing_jobs_org_status", "organization_id", "status", "created_at"),
    )
