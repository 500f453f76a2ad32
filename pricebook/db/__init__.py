"""Database layer for Pricebook with async SQLAlchemy."""

from pricebook.db.connection import Database
from pricebook.db.models import (
    Base,
    CostCodeModel,
    LineItemModel,
    LineItemOverrideModel,
    PricingJobModel,
    PricingModeModel,
)

__all__ = [
    "Base",
    "CostCodeModel",
    "LineItemModel",
    "LineItemOverrideModel",
    "PricingJobModel",
    "PricingModeModel",
    "Database",
]
