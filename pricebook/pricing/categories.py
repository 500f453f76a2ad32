"""Cost-code to pricing-category classification."""

from __future__ import annotations

import re
from enum import Enum


class PricingCategory(str, Enum):
    """Pricing categories a mode can adjust. ``ALL`` is the fallback key."""

    LABOR = "labor"
    MATERIALS = "materials"
    INSTALLATION = "installation"
    SERVICES = "services"
    EQUIPMENT = "equipment"
    SUBCONTRACTOR = "subcontractor"
    ALL = "all"


# Inclusive numeric ranges, checked in order
COST_CODE_RANGES: tuple[tuple[int, int, PricingCategory], ...] = (
    (100, 199, PricingCategory.LABOR),
    (500, 599, PricingCategory.MATERIALS),
    (200, 299, PricingCategory.INSTALLATION),
    (300, 399, PricingCategory.SERVICES),
    (600, 699, PricingCategory.SERVICES),
    (400, 499, PricingCategory.EQUIPMENT),
    (700, 799, PricingCategory.SUBCONTRACTOR),
)

_NON_DIGITS = re.compile(r"[^0-9]")


def classify_cost_code(code: str | None) -> PricingCategory:
    """Map a cost code such as ``"150"`` or ``"CC-550"`` to a pricing category.

    Non-digit characters are stripped before parsing, so ``"CC-150"`` reads
    as 150. Missing, unparseable or out-of-range codes map to ``ALL``.
    """
    if not code:
        return PricingCategory.ALL

    digits = _NON_DIGITS.sub("", code)
    if not digits:
        return PricingCategory.ALL

    number = int(digits)
    for low, high, category in COST_CODE_RANGES:
        if low <= number <= high:
            return category

    return PricingCategory.ALL
