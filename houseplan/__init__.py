"""Budget-driven house plans for Kenya."""

from .errors import HousePlanError, InvalidBudget, ProviderError
from .fallback import build_fallback_plan
from .plan_generator import (
    COST_CATEGORIES,
    AIEnhancedData,
    CostBreakdown,
    FixedWeightExact,
    HousePlan,
    RandomizedRatio,
    generate_house_plan,
)
from .random_utils import SeededRandom
