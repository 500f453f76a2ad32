"""Catalog queries and override writes used by pricing jobs and previews."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Sequence
from uuid import UUID, uuid4

from sqlalchemy import Select, delete, func, or_, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from pricebook.db.models import CostCodeModel, LineItemModel, LineItemOverrideModel


@dataclass(frozen=True)
class TargetItem:
    """A catalog item resolved for pricing, with its cost code flattened."""

    id: UUID
    name: str
    base_price: Decimal
    cost_code: str | None


def _visible_items_filter(
    stmt: Select, organization_id: str, line_item_ids: Sequence[UUID] | None
) -> Select:
    # Organization-owned items plus shared/system items
    stmt = stmt.where(
        or_(
            LineItemModel.organization_id == organization_id,
            LineItemModel.organization_id.is_(None),
        )
    )
    if line_item_ids:
        stmt = stmt.where(LineItemModel.id.in_(list(line_item_ids)))
    return stmt


async def fetch_target_items(
    session: AsyncSession,
    organization_id: str,
    line_item_ids: Sequence[UUID] | None = None,
) -> list[TargetItem]:
    """Return the items a job or preview applies to, in stable id order."""
    stmt = (
        select(
            LineItemModel.id,
            LineItemModel.name,
            LineItemModel.base_price,
            CostCodeModel.code,
        )
        .outerjoin(CostCodeModel, CostCodeModel.id == LineItemModel.cost_code_id)
        .order_by(LineItemModel.id)
    )
    stmt = _visible_items_filter(stmt, organization_id, line_item_ids)

    result = await session.execute(stmt)
    return [
        TargetItem(id=row.id, name=row.name, base_price=row.base_price, cost_code=row.code)
        for row in result.all()
    ]


async def count_target_items(
    session: AsyncSession,
    organization_id: str,
    line_item_ids: Sequence[UUID] | None = None,
) -> int:
    stmt = _visible_items_filter(
        select(func.count()).select_from(LineItemModel), organization_id, line_item_ids
    )
    return (await session.execute(stmt)).scalar_one()


async def fetch_overrides(
    session: AsyncSession,
    organization_id: str,
    line_item_ids: Sequence[UUID] | None = None,
) -> dict[UUID, Decimal]:
    """Current custom prices for an organization, keyed by line item id."""
    stmt = select(LineItemOverrideModel.line_item_id, LineItemOverrideModel.custom_price).where(
        LineItemOverrideModel.organization_id == organization_id
    )
    if line_item_ids:
        stmt = stmt.where(LineItemOverrideModel.line_item_id.in_(list(line_item_ids)))

    result = await session.execute(stmt)
    return {row.line_item_id: row.custom_price for row in result.all()}


def _dialect_insert(session: AsyncSession):
    dialect = session.bind.dialect.name
    if dialect == "postgresql":
        return pg_insert
    if dialect == "sqlite":
        return sqlite_insert
    raise NotImplementedError(f"Override upsert not supported on dialect {dialect!r}")


async def upsert_overrides(
    session: AsyncSession,
    organization_id: str,
    mode_id: UUID,
    prices: Sequence[tuple[UUID, Decimal, Decimal]],
) -> int:
    """Insert or overwrite overrides in one statement.

    Args:
        prices: ``(line_item_id, custom_price, multiplier)`` tuples

    Returns:
        Number of rows written

    The conflict target is ``(organization_id, line_item_id)``, so re-applying
    a mode overwrites the previous custom price instead of stacking on it.
    """
    if not prices:
        return 0

    now = datetime.now(timezone.utc)
    rows = [
        {
            "id": uuid4(),
            "organization_id": organization_id,
            "line_item_id": line_item_id,
            "custom_price": custom_price,
            "applied_mode_id": mode_id,
            "mode_multiplier": multiplier,
            "updated_at": now,
        }
        for line_item_id, custom_price, multiplier in prices
    ]

    insert = _dialect_insert(session)
    stmt = insert(LineItemOverrideModel).values(rows)
    stmt = stmt.on_conflict_do_update(
        index_elements=["organization_id", "line_item_id"],
        set_={
            "custom_price": stmt.excluded.custom_price,
            "applied_mode_id": stmt.excluded.applied_mode_id,
            "mode_multiplier": stmt.excluded.mode_multiplier,
            "updated_at": stmt.excluded.updated_at,
        },
    )
    await session.execute(stmt)
    return len(rows)


async def delete_overrides(
    session: AsyncSession,
    organization_id: str,
    line_item_ids: Sequence[UUID] | None = None,
) -> int:
    """Delete an organization's overrides, optionally only for some items.

    Returns:
        Number of override rows removed
    """
    stmt = delete(LineItemOverrideModel).where(
        LineItemOverrideModel.organization_id == organization_id
    )
    if line_item_ids:
        stmt = stmt.where(LineItemOverrideModel.line_item_id.in_(list(line_item_ids)))

    result = await session.execute(stmt)
    return result.rowcount or 0
