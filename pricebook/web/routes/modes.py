"""Pricing mode routes.

Routes:
- GET    /pricing-modes                       - Active modes visible to an organization
- POST   /pricing-modes                       - Create a custom mode
- GET    /pricing-modes/presets               - Active preset modes
- DELETE /pricing-modes/{mode_id}             - Delete one of the organization's custom modes
- POST   /pricing-modes/{mode_id}/outcomes    - Record a won or lost estimate
- GET    /pricing-modes/{mode_id}/preview     - Price changes a mode would make
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.exc import SQLAlchemyError

from pricebook.db.connection import Database
from pricebook.db.models import PricingModeModel
from pricebook.pricing.modes import (
    create_pricing_mode,
    delete_pricing_mode,
    get_pricing_mode,
    list_presets,
    list_pricing_modes,
    preview_application,
    record_estimate_outcome,
    validate_adjustments,
    win_rate,
)
from pricebook.web.dependencies import get_database, get_org_id

router = APIRouter(prefix="/pricing-modes", tags=["pricing-modes"])


class CreateModeRequest(BaseModel):
    """Body for creating a custom pricing mode."""

    org: str | None = None
    name: str = Field(min_length=1)
    description: str | None = None
    icon: str | None = None
    adjustments: dict[str, Any] = Field(default_factory=dict)
    is_active: bool = True

    @field_validator("adjustments")
    @classmethod
    def check_adjustments(cls, v: dict[str, Any]) -> dict[str, float]:
        return validate_adjustments(v)


class EstimateOutcomeRequest(BaseModel):
    was_successful: bool


def _mode_payload(mode: PricingModeModel) -> dict:
    return {
        "id": str(mode.id),
        "name": mode.name,
        "description": mode.description,
        "icon": mode.icon,
        "adjustments": mode.adjustments,
        "is_preset": mode.is_preset,
        "is_active": mode.is_active,
        "usage_count": mode.usage_count,
        "total_estimates": mode.total_estimates,
        "successful_estimates": mode.successful_estimates,
        "win_rate": win_rate(mode),
    }


@router.get("")
async def pricing_modes(
    request: Request,
    org: str | None = None,
    database: Database = Depends(get_database),
):
    org_id = get_org_id(request, org)
    try:
        async with database.session() as session:
            modes = await list_pricing_modes(session, org_id)
    except SQLAlchemyError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return {"modes": [_mode_payload(mode) for mode in modes]}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_mode(
    body: CreateModeRequest,
    request: Request,
    database: Database = Depends(get_database),
):
    """Create a custom mode for the organization; presets cannot be created here."""
    org_id = get_org_id(request, body.org)
    try:
        async with database.session() as session:
            mode = await create_pricing_mode(
                session,
                org_id,
                body.name,
                body.adjustments,
                description=body.description,
                icon=body.icon,
                is_active=body.is_active,
            )
    except SQLAlchemyError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return _mode_payload(mode)


@router.get("/presets")
async def preset_modes(database: Database = Depends(get_database)):
    try:
        async with database.session() as session:
            modes = await list_presets(session)
    except SQLAlchemyError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return {"modes": [_mode_payload(mode) for mode in modes]}


@router.delete("/{mode_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_mode(
    mode_id: UUID,
    request: Request,
    org: str | None = None,
    database: Database = Depends(get_database),
):
    """Delete a custom mode. Presets and other organizations' modes are 404."""
    org_id = get_org_id(request, org)
    try:
        async with database.session() as session:
            deleted = await delete_pricing_mode(session, org_id, mode_id)
    except SQLAlchemyError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    if not deleted:
        raise HTTPException(status_code=404, detail=f"Custom pricing mode not found: {mode_id}")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{mode_id}/outcomes")
async def estimate_outcome(
    mode_id: UUID,
    body: EstimateOutcomeRequest,
    database: Database = Depends(get_database),
):
    try:
        async with database.session() as session:
            if not await record_estimate_outcome(session, mode_id, body.was_successful):
                raise HTTPException(status_code=404, detail=f"Pricing mode not found: {mode_id}")
            mode = await get_pricing_mode(session, mode_id)
            await session.refresh(mode)
    except SQLAlchemyError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return _mode_payload(mode)


@router.get("/{mode_id}/preview")
async def preview_mode(
    mode_id: UUID,
    request: Request,
    org: str | None = None,
    line_item_ids: list[UUID] | None = Query(default=None),
    database: Database = Depends(get_database),
):
    """Preview a mode's effect without writing any overrides.

    Unchanged items are left out; ``total_change`` is the sum of
    ``change_amount`` over the listed items.
    """
    org_id = get_org_id(request, org)
    config = request.app.state.config

    try:
        async with database.session() as session:
            mode = await get_pricing_mode(session, mode_id)
            if mode is None:
                raise HTTPException(status_code=404, detail=f"Pricing mode not found: {mode_id}")
            changes = await preview_application(
                session,
                org_id,
                mode,
                line_item_ids,
                reset_mode_name=config.jobs.reset_mode_name,
                precision=config.jobs.price_precision,
            )
    except SQLAlchemyError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc

    return {
        "mode": _mode_payload(mode),
        "changes": [change.model_dump(mode="json") for change in changes],
        "total_change": str(sum((c.change_amount for c in changes), Decimal("0"))),
    }
