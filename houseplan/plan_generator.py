from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field, fields, replace
from datetime import datetime, timezone
from numbers import Integral
from typing import Any, Dict, Mapping, Optional, Protocol, Sequence, Tuple

from .errors import InvalidBudget
from .random_utils import SeededRandom, epoch_millis


logger = logging.getLogger(__name__)


COST_CATEGORIES: Tuple[str, ...] = (
    "land",
    "foundation",
    "walls",
    "roofing",
    "windows",
    "interior",
    "plumbing",
    "electrical",
    "labour",
    "permits",
    "furniture",
    "landscaping",
)

ARCHITECTURAL_STYLES: Sequence[str] = (
    "Modern",
    "Swahili-inspired",
    "Colonial",
    "Minimalist",
    "Contemporary Kenyan",
    "Rustic",
    "Mediterranean",
)

ROOFING_TYPES: Sequence[str] = (
    "Clay tile",
    "Mabati (iron sheets)",
    "Flat concrete",
    "Stone-coated steel",
    "Makuti thatch",
)

INTERIOR_FINISHES: Sequence[str] = (
    "Ceramic tiles",
    "Hardwood floors",
    "Laminate flooring",
    "Polished concrete",
    "Natural stone",
    "Vinyl planks",
)

LANDSCAPE_IDEAS: Sequence[str] = (
    "tropical garden with palm trees",
    "drought-resistant indigenous plants",
    "vegetable garden with tomatoes and sukuma wiki",
    "flowering bougainvillea hedge",
    "jacaranda tree shade",
    "gravel paths with native grasses",
)

TIMES_OF_DAY: Sequence[str] = ("golden hour sunlight", "bright daylight", "soft morning light")
VIEW_ANGLES: Sequence[str] = ("front elevation view", "3/4 angle view", "perspective view")
EXTRA_FEATURES: Sequence[str] = (
    "with large windows",
    "with covered patio",
    "with modern entrance",
    "with circular driveway",
    "with garden pathway",
    "with outdoor seating area",
)

LOW_BUDGET_TIPS: Sequence[str] = (
    "💰 Consider starting with a simple design and upgrading later.",
    "🏗️ Self-construction can save 20-30% on labour costs.",
    "📍 Choose a location further from the city center to reduce land costs.",
)

GENERAL_TIPS: Sequence[str] = (
    "📋 Always get 3+ quotes from different contractors.",
    "🔍 Ensure all contractors are licensed with the National Construction Authority (NCA).",
    "🏛️ Budget an extra 10-15% for unexpected costs.",
    "⏰ Construction costs increase 5-10% annually - start soon!",
    "🌧️ Plan construction to avoid heavy rain seasons (March-May, Oct-Dec).",
)

LOW_BUDGET_THRESHOLD = 2_000_000


@dataclass(frozen=True)
class Tier:
    name: str
    min_budget: int
    bedroom_choices: Tuple[int, ...]
    base_size: Tuple[int, int]
    noun: str


TIERS: Tuple[Tier, ...] = (
    Tier("Starter", 0, (1, 2), (30, 60), "Bungalow"),
    Tier("Family", 1_000_000, (2, 3), (60, 120), "House"),
    Tier("Executive", 3_000_000, (3, 4), (120, 200), "Villa"),
    Tier("Luxury", 8_000_000, (4, 5, 6), (200, 350), "Mansion"),
)


def tier_for_budget(budget: int) -> Tier:
    """Highest tier whose lower bound the budget reaches."""
    chosen = TIERS[0]
    for tier in TIERS:
        if budget >= tier.min_budget:
            chosen = tier
    return chosen


@dataclass(frozen=True)
class CostBreakdown:
    """Twelve-category partition of a budget, whole KES per category."""

    land: int = 0
    foundation: int = 0
    walls: int = 0
    roofing: int = 0
    windows: int = 0
    interior: int = 0
    plumbing: int = 0
    electrical: int = 0
    labour: int = 0
    permits: int = 0
    furniture: int = 0
    landscaping: int = 0

    @property
    def total(self) -> int:
        return sum(self.as_dict().values())

    def as_dict(self) -> Dict[str, int]:
        return {name: getattr(self, name) for name in COST_CATEGORIES}

    @staticmethod
    def from_mapping(values: Mapping[str, Any]) -> "CostBreakdown":
        missing = [name for name in COST_CATEGORIES if name not in values]
        if missing:
            raise ValueError(f"cost breakdown is missing categories: {', '.join(missing)}")
        return CostBreakdown(**{name: int(round(float(values[name]))) for name in COST_CATEGORIES})


@dataclass(frozen=True)
class AIEnhancedData:
    recommendations: str
    cost_optimization: str
    materials: str
    timeline: str
    ai_prompts: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "recommendations": self.recommendations,
            "costOptimization": self.cost_optimization,
            "materials": self.materials,
            "timeline": self.timeline,
            "aiPrompts": list(self.ai_prompts),
        }

    @staticmethod
    def from_dict(data: Mapping[str, Any]) -> "AIEnhancedData":
        return AIEnhancedData(
            recommendations=str(data.get("recommendations", "")),
            cost_optimization=str(data.get("costOptimization", "")),
            materials=str(data.get("materials", "")),
            timeline=str(data.get("timeline", "")),
            ai_prompts=tuple(str(p) for p in data.get("aiPrompts") or ()),
        )


# snake_case attribute -> key used in the stored JSON shape
_JSON_KEYS = {
    "house_type": "houseType",
    "plot_size": "plotSize",
    "interior_finish": "interiorFinish",
    "cost_breakdown": "costBreakdown",
    "ai_prompts": "aiPrompts",
    "ai_enhanced": "aiEnhanced",
    "fallback_reason": "_fallbackReason",
}


@dataclass(frozen=True)
class HousePlan:
    id: str
    budget: int
    house_type: str
    style: str
    size: int
    plot_size: int
    bedrooms: int
    roofing: str
    interior_finish: str
    cost_breakdown: CostBreakdown
    timeline: str
    notes: Tuple[str, ...] = ()
    ai_prompts: Tuple[str, ...] = ()
    location: Optional[str] = None
    ai_enhanced: Optional[AIEnhancedData] = None
    fallback_reason: Optional[str] = None
    source: str = field(default="generator", compare=False)

    @property
    def total_cost(self) -> int:
        return self.cost_breakdown.total

    @property
    def remaining(self) -> int:
        return self.budget - self.total_cost

    def with_enhancement(self, enhanced: AIEnhancedData) -> "HousePlan":
        return replace(self, ai_enhanced=enhanced)

    def with_location(self, location: str) -> "HousePlan":
        return replace(self, location=location)

    def to_dict(self) -> Dict[str, Any]:
        """JSON-ready dict in the camelCase shape the UI and storage use."""
        out: Dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if value is None:
                continue
            if isinstance(value, CostBreakdown):
                value = value.as_dict()
            elif isinstance(value, AIEnhancedData):
                value = value.to_dict()
            elif isinstance(value, tuple):
                value = list(value)
            out[_JSON_KEYS.get(f.name, f.name)] = value
        return out

    @staticmethod
    def from_dict(data: Mapping[str, Any]) -> "HousePlan":
        def get(name: str, default: Any = None) -> Any:
            return data.get(_JSON_KEYS.get(name, name), default)

        enhanced = get("ai_enhanced")
        return HousePlan(
            id=str(get("id", "")),
            budget=int(get("budget")),
            house_type=str(get("house_type", "")),
            style=str(get("style", "")),
            size=int(get("size", 0)),
            plot_size=int(get("plot_size", 0)),
            bedrooms=int(get("bedrooms", 0)),
            roofing=str(get("roofing", "")),
            interior_finish=str(get("interior_finish", "")),
            cost_breakdown=CostBreakdown.from_mapping(get("cost_breakdown") or {}),
            timeline=str(get("timeline", "")),
            notes=tuple(str(n) for n in get("notes") or ()),
            ai_prompts=tuple(str(p) for p in get("ai_prompts") or ()),
            location=get("location"),
            ai_enhanced=AIEnhancedData.from_dict(enhanced) if enhanced else None,
            fallback_reason=get("fallback_reason"),
            source=str(get("source", "generator")),
        )


class CostPartitioner(Protocol):
    """Splits a budget into the twelve cost categories."""

    def partition(self, budget: int, size: int, rng: SeededRandom) -> CostBreakdown:
        ...


# (category, lowest percent, highest percent) of the post-land budget
RANDOMIZED_BANDS: Tuple[Tuple[str, int, int], ...] = (
    ("foundation", 12, 18),
    ("walls", 25, 35),
    ("roofing", 15, 25),
    ("windows", 8, 12),
    ("interior", 15, 25),
    ("plumbing", 8, 15),
    ("electrical", 6, 12),
    ("labour", 20, 30),
    ("permits", 2, 5),
)


@dataclass(frozen=True)
class RandomizedRatio:
    """Ratios drawn per category within realistic 2024-2025 Kenyan bands.

    The sum does not reconstruct the budget: the nine bands add up to at
    least 111% of the post-land amount, so furniture and landscaping are
    clamped to zero and the breakdown overshoots. Use FixedWeightExact when
    the total has to match.
    """

    construction_rate: Tuple[int, int] = (25_000, 45_000)
    land_rate: Tuple[int, int] = (500, 15_000)
    land_share: float = 0.30
    land_cap: int = 2_000_000
    furniture_split: Tuple[int, int] = (60, 80)

    def partition(self, budget: int, size: int, rng: SeededRandom) -> CostBreakdown:
        construction_per_sqm = rng.range(*self.construction_rate)
        logger.debug("Construction estimate: %s m² x KES %s", size, construction_per_sqm)

        land_per_sqm = rng.range(*self.land_rate)
        land_budget = min(budget * self.land_share, self.land_cap)
        land = math.floor(land_budget / land_per_sqm) * land_per_sqm

        remaining = budget - land
        amounts: Dict[str, int] = {"land": land}
        for name, lo, hi in RANDOMIZED_BANDS:
            amounts[name] = remaining * rng.range(lo, hi) // 100

        left_over = remaining - sum(amounts[name] for name, _, _ in RANDOMIZED_BANDS)
        furniture = left_over * rng.range(*self.furniture_split) // 100
        landscaping = left_over - furniture
        amounts["furniture"] = max(furniture, 0)
        amounts["landscaping"] = max(landscaping, 0)
        return CostBreakdown(**amounts)


TEMPLATE_WEIGHTS: Dict[str, float] = {
    "land": 0.20,
    "foundation": 0.10,
    "walls": 0.18,
    "roofing": 0.12,
    "windows": 0.05,
    "interior": 0.10,
    "plumbing": 0.06,
    "electrical": 0.06,
    "labour": 0.08,
    "permits": 0.02,
    "furniture": 0.02,
    "landscaping": 0.01,
}

_BASIS = 10_000


@dataclass(frozen=True)
class FixedWeightExact:
    """Fixed weights, floored per category, remainder to the last category.

    The breakdown always totals the budget exactly.
    """

    weights: Mapping[str, float] = field(default_factory=lambda: dict(TEMPLATE_WEIGHTS))

    def __post_init__(self) -> None:
        if list(self.weights) != list(COST_CATEGORIES):
            raise ValueError("weights must list every cost category in order")
        if sum(self._basis_points().values()) != _BASIS:
            raise ValueError("weights must sum to 1.0")

    def _basis_points(self) -> Dict[str, int]:
        return {name: round(weight * _BASIS) for name, weight in self.weights.items()}

    def partition(self, budget: int, size: int = 0, rng: Optional[SeededRandom] = None) -> CostBreakdown:
        amounts: Dict[str, int] = {}
        allocated = 0
        for name, bp in self._basis_points().items():
            amounts[name] = budget * bp // _BASIS
            allocated += amounts[name]
        last = COST_CATEGORIES[-1]
        amounts[last] += max(0, budget - allocated)
        return CostBreakdown(**amounts)


def validate_budget(budget: Any) -> int:
    if isinstance(budget, bool) or not isinstance(budget, Integral) or budget <= 0:
        raise InvalidBudget(budget)
    return int(budget)


def generate_house_plan(
    budget: int,
    now: Optional[datetime] = None,
    partitioner: Optional[CostPartitioner] = None,
) -> HousePlan:
    """Draw a house plan for `budget` KES.

    The same budget gives the same plan for the rest of the current hour;
    pass `now` to pin the hour bucket.
    """
    budget = validate_budget(budget)
    if now is None:
        now = datetime.now(timezone.utc)
    if partitioner is None:
        partitioner = RandomizedRatio()

    rng = SeededRandom.for_budget(budget, now)
    tier = tier_for_budget(budget)

    # Draw order is part of the contract: changing it changes every plan.
    bedrooms = rng.choice(tier.bedroom_choices)
    base_size = rng.range(*tier.base_size)
    style = rng.choice(ARCHITECTURAL_STYLES)
    roofing = rng.choice(ROOFING_TYPES)
    interior_finish = rng.choice(INTERIOR_FINISHES)

    house_type = f"{bedrooms}-Bedroom {style} {tier.noun}"

    size = base_size + rng.range(-10, 20)
    plot_size = max(size * 4, rng.range(400, 2000))

    costs = partitioner.partition(budget, size, rng)
    timeline = generate_timeline(size, rng)
    notes = generate_notes(budget, costs, rng)
    ai_prompts = generate_ai_prompts(house_type, style, roofing, interior_finish, rng)

    logger.info("Generated %s plan for KES %s: %s", tier.name, budget, house_type)
    return HousePlan(
        id=f"plan-{budget}-{epoch_millis(now)}",
        budget=budget,
        house_type=house_type,
        style=style,
        size=size,
        plot_size=plot_size,
        bedrooms=bedrooms,
        roofing=roofing,
        interior_finish=interior_finish,
        cost_breakdown=costs,
        timeline=timeline,
        notes=tuple(notes),
        ai_prompts=tuple(ai_prompts),
    )


def generate_timeline(size: int, rng: SeededRandom) -> str:
    base_months = max(3, size // 30)
    total = base_months + rng.range(-1, 3)
    return f"{max(total - 2, 3)}–{total + 3} months"


def generate_notes(budget: int, costs: CostBreakdown, rng: SeededRandom) -> list[str]:
    notes: list[str] = []

    remaining = budget - costs.total
    if remaining > budget * 0.1:
        notes.append(
            f"💡 You have KES {remaining:,} remaining - consider upgrading finishes or adding a solar system."
        )

    if budget < LOW_BUDGET_THRESHOLD:
        notes.append(rng.choice(LOW_BUDGET_TIPS))

    notes.append(rng.choice(GENERAL_TIPS))
    return notes


def generate_ai_prompts(
    house_type: str,
    style: str,
    roofing: str,
    interior: str,
    rng: SeededRandom,
) -> list[str]:
    """One to three image-model prompts describing the house."""
    landscape = rng.choice(LANDSCAPE_IDEAS)
    time_of_day = rng.choice(TIMES_OF_DAY)
    view_angle = rng.choice(VIEW_ANGLES)
    extra = rng.choice(EXTRA_FEATURES)

    # interior keeps its casing; the second variation only swaps the camera angle
    base = (
        f"Ultra-realistic {house_type.lower()}, {style.lower()} architecture, "
        f"{roofing.lower()} roof, {interior} floors, {extra}, {landscape}, "
        f"{view_angle}, {time_of_day}, Kenyan residential setting, "
        "professional architectural photography, 8K high resolution"
    )
    variations = [
        base,
        base.replace(view_angle, "aerial view", 1),
        base.replace("8K high resolution", "wide angle lens, detailed textures, natural lighting", 1),
    ]
    return variations[: rng.range(1, 3)]
