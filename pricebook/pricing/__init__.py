"""Pricing categories, pricing modes and override persistence."""

from pricebook.pricing.categories import PricingCategory, classify_cost_code
from pricebook.pricing.modes import (
    create_pricing_mode,
    delete_pricing_mode,
    get_pricing_mode,
    is_reset_mode,
    list_presets,
    list_pricing_modes,
    preview_application,
    record_estimate_outcome,
    record_mode_usage,
    resolve_multiplier,
    win_rate,
)

__all__ = [
    "PricingCategory",
    "classify_cost_code",
    "create_pricing_mode",
    "delete_pricing_mode",
    "get_pricing_mode",
    "is_reset_mode",
    "list_presets",
    "list_pricing_modes",
    "preview_application",
    "record_estimate_outcome",
    "record_mode_usage",
    "resolve_multiplier",
    "win_rate",
]
