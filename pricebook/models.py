"""Pricebook Pydantic models for type-safe data validation.

Read models and payloads for pricing jobs, their progress events and
pricing-mode previews.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field, field_validator


class JobStatus(str, Enum):
    """Pricing job lifecycle states."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"  # Defined, never entered by this subsystem


TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED})
ACTIVE_STATUSES = frozenset({JobStatus.PENDING, JobStatus.PROCESSING})


class OperationType(str, Enum):
    """Kinds of bulk pricing operations a job can describe."""

    APPLY_PRICING_MODE = "apply_pricing_mode"
    UNDO_PRICING = "undo_pricing"
    BULK_UPDATE = "bulk_update"


class PreviousPrice(BaseModel):
    """Price an item had before a mode was applied (kept for a future undo)."""

    line_item_id: UUID
    price: Decimal


class JobData(BaseModel):
    """Operation payload stored on the job row."""

    mode_id: UUID
    mode_name: str
    line_item_ids: list[UUID] | None = None
    previous_prices: list[PreviousPrice] | None = None
    apply_to_all: bool = False

    class Config:
        json_schema_extra = {
            "example": {
                "mode_id": "550e8400-e29b-41d4-a716-446655440000",
                "mode_name": "Competitive",
                "line_item_ids": None,
                "apply_to_all": True,
            }
        }


class FailedItem(BaseModel):
    """One item that could not be written, with the batch error."""

    line_item_id: UUID
    name: str
    error: str


class ResultSummary(BaseModel):
    """Outcome recorded when a job reaches a terminal state."""

    success_count: int = 0
    failed_count: int = 0
    failed_items: list[FailedItem] | None = None

    def to_json(self) -> dict[str, Any]:
        """JSON-ready dict; ``failed_items`` is omitted when there are none."""
        return self.model_dump(mode="json", exclude_none=True)


class JobProgress(BaseModel):
    """Incremental progress written after each batch."""

    current: int = Field(ge=0)
    total: int | None = Field(default=None, ge=0)
    failed_count: int | None = Field(default=None, ge=0)


class PricingJob(BaseModel):
    """Read model of a pricing job row."""

    id: UUID
    organization_id: str
    operation_type: OperationType
    status: JobStatus
    total_items: int
    processed_items: int
    failed_items: int
    job_data: dict[str, Any]
    result_summary: ResultSummary | None = None
    error_message: str | None = None
    created_by: str | None = None
    created_at: datetime
    started_at: datetime | None = None
    completed_at: datetime | None = None
    updated_at: datetime

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def progress_percent(self) -> float:
        if self.total_items == 0:
            return 100.0 if self.is_terminal else 0.0
        done = self.processed_items + self.failed_items
        return round(done / self.total_items * 100, 1)

    @classmethod
    def from_model(cls, model) -> PricingJob:
        """Build from a ``PricingJobModel`` row."""
        return cls(
            id=model.id,
            organization_id=model.organization_id,
            operation_type=model.operation_type,
            status=model.status,
            total_items=model.total_items,
            processed_items=model.processed_items,
            failed_items=model.failed_items,
            job_data=model.job_data or {},
            result_summary=model.result_summary,
            error_message=model.error_message,
            created_by=model.created_by,
            created_at=model.created_at,
            started_at=model.started_at,
            completed_at=model.completed_at,
            updated_at=model.updated_at,
        )


class JobEventType(str, Enum):
    """What kind of store mutation produced a job event."""

    CREATED = "created"
    PROCESSING = "processing"
    PROGRESS = "progress"
    COMPLETED = "completed"
    FAILED = "failed"


class JobEvent(BaseModel):
    """Message pushed to progress subscribers after each job mutation."""

    job_id: UUID
    event: JobEventType
    job: PricingJob


class PriceChange(BaseModel):
    """Preview of one item's price under a pricing mode."""

    line_item_id: UUID
    name: str
    category: str
    old_price: Decimal
    new_price: Decimal
    multiplier: Decimal
    change_amount: Decimal
    change_percentage: float | None = None  # None when old price is zero

    @field_validator("new_price", "old_price")
    @classmethod
    def validate_price(cls, v: Decimal) -> Decimal:
        if v < 0:
            raise ValueError("price must be non-negative")
        return v
