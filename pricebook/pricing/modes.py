"""Pricing mode resolution, multiplier lookup and change previews."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Mapping, Sequence
from uuid import UUID

import structlog
from sqlalchemy import delete, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from pricebook.db.models import PricingModeModel
from pricebook.models import PriceChange
from pricebook.pricing.categories import PricingCategory, classify_cost_code
from pricebook.pricing.overrides import fetch_overrides, fetch_target_items

logger = structlog.get_logger()

DEFAULT_RESET_MODE_NAME = "Reset to Baseline"
DEFAULT_PRICE_PRECISION = Decimal("0.01")

# Scale of line_item_overrides.mode_multiplier; prices are computed from the
# stored value so an override always reproduces its own custom_price
MULTIPLIER_PRECISION = Decimal("0.0001")

# Preview skips items whose price would move by less than this
PREVIEW_MIN_CHANGE = Decimal("0.01")


async def get_pricing_mode(
    session: AsyncSession, mode_id: UUID
) -> PricingModeModel | None:
    return await session.get(PricingModeModel, mode_id)


async def list_pricing_modes(
    session: AsyncSession, organization_id: str
) -> list[PricingModeModel]:
    """Active modes owned by the organization plus presets.

    Presets are listed first, then by how often a mode has been applied.
    """
    stmt = (
        select(PricingModeModel)
        .where(
            or_(
                PricingModeModel.organization_id == organization_id,
                PricingModeModel.is_preset.is_(True),
            ),
            PricingModeModel.is_active.is_(True),
        )
        .order_by(
            PricingModeModel.is_preset.desc(),
            PricingModeModel.usage_count.desc(),
            PricingModeModel.name,
        )
    )
    result = await session.execute(stmt)
    return list(result.scalars())


async def list_presets(session: AsyncSession) -> list[PricingModeModel]:
    """Active preset modes, by name."""
    stmt = (
        select(PricingModeModel)
        .where(PricingModeModel.is_preset.is_(True), PricingModeModel.is_active.is_(True))
        .order_by(PricingModeModel.name)
    )
    result = await session.execute(stmt)
    return list(result.scalars())


def win_rate(mode: PricingModeModel) -> int | None:
    """Share of recorded estimates that were won, as a whole percent."""
    if not mode.total_estimates:
        return None
    rate = Decimal(mode.successful_estimates * 100) / mode.total_estimates
    return int(rate.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def validate_adjustments(adjustments: Mapping[str, Any]) -> dict[str, float]:
    """Check category keys and multipliers of a custom mode.

    Raises:
        ValueError: On an unknown category or a negative or non-numeric multiplier
    """
    categories = {category.value for category in PricingCategory}
    cleaned: dict[str, float] = {}
    for key, value in adjustments.items():
        if key not in categories:
            raise ValueError(f"Unknown pricing category: {key!r}")
        if value is None:
            continue
        if isinstance(value, bool) or not isinstance(value, (int, float, Decimal)):
            raise ValueError(f"Multiplier for {key!r} must be a number")
        if value < 0:
            raise ValueError(f"Multiplier for {key!r} must be non-negative")
        cleaned[key] = float(value)
    return cleaned


def is_reset_mode(
    mode: PricingModeModel, reset_mode_name: str = DEFAULT_RESET_MODE_NAME
) -> bool:
    """True for the sentinel mode that deletes overrides instead of pricing."""
    return mode.name == reset_mode_name


def resolve_multiplier(
    adjustments: Mapping[str, Any] | None, category: PricingCategory | str
) -> Decimal:
    """Multiplier for a category: its own entry, else ``"all"``, else 1.

    Rounded half-up to ``MULTIPLIER_PRECISION``.
    """
    adjustments = adjustments or {}
    key = category.value if isinstance(category, PricingCategory) else category

    value = adjustments.get(key)
    if value is None:
        value = adjustments.get(PricingCategory.ALL.value)
    if value is None:
        return Decimal("1")
    return Decimal(str(value)).quantize(MULTIPLIER_PRECISION, rounding=ROUND_HALF_UP)


def compute_price(
    base_price: Decimal,
    multiplier: Decimal,
    precision: Decimal = DEFAULT_PRICE_PRECISION,
) -> Decimal:
    """Base price scaled by the multiplier, rounded half-up to ``precision``."""
    return (Decimal(base_price) * multiplier).quantize(precision, rounding=ROUND_HALF_UP)


def _change_percentage(old_price: Decimal, new_price: Decimal) -> float | None:
    if old_price == 0:
        return None
    return round(float((new_price - old_price) / old_price * 100), 2)


async def preview_application(
    session: AsyncSession,
    organization_id: str,
    mode: PricingModeModel,
    line_item_ids: Sequence[UUID] | None = None,
    reset_mode_name: str = DEFAULT_RESET_MODE_NAME,
    precision: Decimal = DEFAULT_PRICE_PRECISION,
) -> list[PriceChange]:
    """Compute the price changes a mode would make, without writing anything.

    For the reset mode, one change per existing override in scope (back to the
    base price). For other modes, items whose price would not move are left out.
    """
    items = await fetch_target_items(session, organization_id, line_item_ids)
    overrides = await fetch_overrides(session, organization_id, line_item_ids)
    changes: list[PriceChange] = []

    if is_reset_mode(mode, reset_mode_name):
        for item in items:
            if item.id not in overrides:
                continue
            current = overrides[item.id]
            changes.append(
                PriceChange(
                    line_item_id=item.id,
                    name=item.name,
                    category=classify_cost_code(item.cost_code).value,
                    old_price=current,
                    new_price=item.base_price,
                    multiplier=Decimal("1"),
                    change_amount=item.base_price - current,
                    change_percentage=_change_percentage(current, item.base_price),
                )
            )
        logger.info(
            "preview_reset_to_baseline",
            organization_id=organization_id,
            overrides=len(changes),
        )
        return changes

    for item in items:
        category = classify_cost_code(item.cost_code)
        multiplier = resolve_multiplier(mode.adjustments, category)
        new_price = compute_price(item.base_price, multiplier, precision)
        current = overrides.get(item.id, item.base_price)

        if abs(new_price - current) < PREVIEW_MIN_CHANGE:
            continue

        changes.append(
            PriceChange(
                line_item_id=item.id,
                name=item.name,
                category=category.value,
                old_price=current,
                new_price=new_price,
                multiplier=multiplier,
                change_amount=new_price - current,
                change_percentage=_change_percentage(current, new_price),
            )
        )

    return changes


async def record_mode_usage(session: AsyncSession, mode_id: UUID) -> None:
    """Increment a mode's usage counter in the database, not in Python."""
    await session.execute(
        update(PricingModeModel)
        .where(PricingModeModel.id == mode_id)
        .values(
            usage_count=PricingModeModel.usage_count + 1,
            updated_at=datetime.now(timezone.utc),
        )
    )


async def create_pricing_mode(
    session: AsyncSession,
    organization_id: str,
    name: str,
    adjustments: Mapping[str, Any],
    description: str | None = None,
    icon: str | None = None,
    is_active: bool = True,
) -> PricingModeModel:
    """Create a custom mode owned by the organization. Never a preset."""
    mode = PricingModeModel(
        organization_id=organization_id,
        name=name,
        description=description,
        icon=icon,
        adjustments=validate_adjustments(adjustments),
        is_preset=False,
        is_active=is_active,
    )
    session.add(mode)
    await session.flush()
    logger.info(
        "pricing_mode_created",
        mode_id=str(mode.id),
        organization_id=organization_id,
        name=name,
    )
    return mode


async def delete_pricing_mode(
    session: AsyncSession, organization_id: str, mode_id: UUID
) -> bool:
    """Delete one of the organization's custom modes.

    Returns:
        False when no such mode exists, it belongs to another organization,
        or it is a preset
    """
    result = await session.execute(
        delete(PricingModeModel)
        .where(
            PricingModeModel.id == mode_id,
            PricingModeModel.organization_id == organization_id,
            PricingModeModel.is_preset.is_(False),
        )
        .execution_options(synchronize_session=False)
    )
    deleted = result.rowcount > 0
    if deleted:
        logger.info("pricing_mode_deleted", mode_id=str(mode_id), organization_id=organization_id)
    return deleted


async def record_estimate_outcome(
    session: AsyncSession, mode_id: UUID, was_successful: bool
) -> bool:
    """Count one estimate priced with the mode, and whether it was won.

    Returns:
        False when the mode does not exist
    """
    values: dict[str, Any] = {
        "total_estimates": PricingModeModel.total_estimates + 1,
        "updated_at": datetime.now(timezone.utc),
    }
    if was_successful:
        values["successful_estimates"] = PricingModeModel.successful_estimates + 1

    result = await session.execute(
        update(PricingModeModel)
        .where(PricingModeModel.id == mode_id)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount > 0
