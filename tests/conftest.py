"""Pytest configuration and fixtures for Pricebook tests.

Provides a throwaway SQLite database per test plus small catalog builders.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

import pytest
import pytest_asyncio

from pricebook.config import reset_config
from pricebook.core.notifier import ProgressNotifier
from pricebook.db.connection import Database
from pricebook.db.models import (
    CostCodeModel,
    LineItemModel,
    LineItemOverrideModel,
    PricingModeModel,
)
from pricebook.jobs.store import JobStore
from pricebook.models import JobData, OperationType


@pytest.fixture(autouse=True)
def setup_test_env(monkeypatch):
    """Set up test environment variables."""
    monkeypatch.setenv("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
    monkeypatch.setenv("DEFAULT_ORG_ID", "test-org")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")
    reset_config()
    yield
    reset_config()


@pytest.fixture
def test_org_id() -> str:
    """Test organization ID."""
    return "test-org"


@pytest.fixture
def database_url(tmp_path) -> str:
    """File-backed SQLite so separate connections see the same data."""
    return f"sqlite+aiosqlite:///{tmp_path / 'pricebook.db'}"


@pytest_asyncio.fixture()
async def database(database_url: str) -> Database:
    db = Database.from_url(database_url)
    await db.init_db()
    try:
        yield db
    finally:
        await db.close()


@pytest.fixture
def notifier() -> ProgressNotifier:
    return ProgressNotifier()


@pytest.fixture
def store(database: Database, notifier: ProgressNotifier) -> JobStore:
    return JobStore(database, notifier)


async def add_cost_code(database: Database, code: str | None) -> UUID:
    async with database.session() as session:
        cost_code = CostCodeModel(code=code, name=f"Cost code {code}")
        session.add(cost_code)
        await session.flush()
        return cost_code.id


async def add_line_items(
    database: Database,
    organization_id: str | None,
    count: int,
    base_price: Decimal = Decimal("100.00"),
    cost_code: str | None = "150",
    name_prefix: str = "Item",
) -> list[UUID]:
    """Insert ``count`` line items sharing one cost code; returns ids sorted."""
    cost_code_id = await add_cost_code(database, cost_code) if cost_code else None
    async with database.session() as session:
        items = [
            LineItemModel(
                organization_id=organization_id,
                name=f"{name_prefix} {i}",
                base_price=base_price,
                cost_code_id=cost_code_id,
            )
            for i in range(count)
        ]
        session.add_all(items)
        await session.flush()
        return sorted(item.id for item in items)


async def add_pricing_mode(
    database: Database,
    name: str = "Competitive",
    adjustments: dict | None = None,
    organization_id: str | None = "test-org",
    is_preset: bool = False,
    is_active: bool = True,
) -> UUID:
    async with database.session() as session:
        mode = PricingModeModel(
            organization_id=organization_id,
            name=name,
            adjustments=adjustments if adjustments is not None else {"all": 1.1},
            is_preset=is_preset,
            is_active=is_active,
        )
        session.add(mode)
        await session.flush()
        return mode.id


async def add_override(
    database: Database,
    organization_id: str,
    line_item_id: UUID,
    custom_price: Decimal,
) -> None:
    async with database.session() as session:
        session.add(
            LineItemOverrideModel(
                organization_id=organization_id,
                line_item_id=line_item_id,
                custom_price=custom_price,
            )
        )


async def create_apply_job(
    store: JobStore,
    organization_id: str,
    mode_id: UUID,
    mode_name: str,
    total_items: int,
    line_item_ids: list[UUID] | None = None,
) -> UUID:
    job_data = JobData(
        mode_id=mode_id,
        mode_name=mode_name,
        line_item_ids=line_item_ids,
        apply_to_all=not line_item_ids,
    )
    return await store.create_job(
        OperationType.APPLY_PRICING_MODE, organization_id, total_items, job_data
    )
