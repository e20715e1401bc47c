from __future__ import annotations

import logging
import math
from datetime import datetime, timezone
from typing import Dict, Optional, Tuple

from .plan_generator import (
    AIEnhancedData,
    FixedWeightExact,
    HousePlan,
    tier_for_budget,
    validate_budget,
)
from .random_utils import epoch_millis


logger = logging.getLogger(__name__)


# Construction price level relative to Kenya
COUNTRY_PRICE_INDEX: Dict[str, float] = {
    "Kenya": 1.0,
    "Uganda": 0.9,
    "Tanzania": 0.95,
    "Rwanda": 1.05,
    "Ethiopia": 0.85,
    "Nigeria": 0.8,
    "Ghana": 0.85,
}

COUNTY_PRICE_INDEX: Dict[str, float] = {
    "Nairobi": 1.25,
    "Mombasa": 1.15,
    "Kiambu": 1.10,
    "Nakuru": 1.00,
    "Kisumu": 1.00,
    "Uasin Gishu": 0.95,
    "Machakos": 0.95,
    "Kajiado": 0.95,
    "Kilifi": 0.95,
    "Nyeri": 0.9,
}

# tier name -> (bedrooms, floor area m²)
TEMPLATE_LAYOUTS: Dict[str, Tuple[int, int]] = {
    "Starter": (2, 50),
    "Family": (3, 100),
    "Executive": (4, 150),
    "Luxury": (5, 250),
}

TEMPLATE_NOTES: Tuple[str, ...] = (
    "AI template used due to upstream error",
    "Consider getting multiple contractor quotes",
    "Ensure compliance with local building codes",
)


def _match(location: str, names) -> Optional[str]:
    lowered = (location or "").lower()
    return next((name for name in names if name.lower() in lowered), None)


def price_index(location: str) -> float:
    """Country index times county index; unknown places price like Kenya."""
    country = _match(location, COUNTRY_PRICE_INDEX) or "Kenya"
    county = _match(location, COUNTY_PRICE_INDEX)
    index = COUNTRY_PRICE_INDEX[country]
    if county:
        index *= COUNTY_PRICE_INDEX[county]
    return index


def build_fallback_plan(
    budget: int,
    location: str = "Kenya",
    preferences: str = "",
    reason: str = "",
    now: Optional[datetime] = None,
) -> HousePlan:
    """Template plan whose cost breakdown sums exactly to `budget`.

    Pricier locations shrink the house (bedrooms, size) but the budget split
    itself always uses the raw budget.
    """
    budget = validate_budget(budget)
    if now is None:
        now = datetime.now(timezone.utc)

    effective = max(1, math.floor(budget / price_index(location)))
    bedrooms, size = TEMPLATE_LAYOUTS[tier_for_budget(effective).name]

    if reason:
        logger.warning("Using template plan for KES %s in %s: %s", budget, location, reason)
    if preferences:
        logger.debug("Template plan ignores preferences: %s", preferences)

    return HousePlan(
        id=f"ai-plan-{budget}-{epoch_millis(now)}",
        budget=budget,
        house_type=f"{bedrooms}-Bedroom AI-Generated House",
        style="Modern Kenyan",
        size=size,
        plot_size=size * 4,
        bedrooms=bedrooms,
        roofing="Mabati (iron sheets)",
        interior_finish="Ceramic tiles",
        cost_breakdown=FixedWeightExact().partition(budget),
        timeline=f"{max(4, math.ceil(size / 25))} months",
        notes=TEMPLATE_NOTES,
        ai_prompts=(
            f"Modern {bedrooms}-bedroom house in {location}, realistic architecture, natural lighting",
            f"Exterior view of affordable home in {location}, practical layout, durable materials",
            "Interior of comfortable house with natural materials, bright daylight",
        ),
        location=location,
        ai_enhanced=AIEnhancedData(
            recommendations="Template-based recommendations tailored from your budget and location.",
            cost_optimization="Use local materials, optimize spans to reduce steel, standardize window/door sizes.",
            materials="Stabilized soil blocks or concrete blocks, mabati roofing, UPVC windows, ceramic tiles",
            timeline=f"Allow {max(4, math.ceil(size / 25))} months plus a buffer for the rainy seasons.",
        ),
        fallback_reason=reason or None,
        source="fallback",
    )
