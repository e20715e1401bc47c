from __future__ import annotations


class HousePlanError(Exception):
    """Base class for every error raised by the planner."""


class InvalidBudget(HousePlanError, ValueError):
    def __init__(self, budget: object) -> None:
        super().__init__(f"budget must be a positive whole number of KES, got {budget!r}")
        self.budget = budget


class EmptyChoiceError(HousePlanError, ValueError):
    """Raised when a random choice is requested from an empty sequence."""


class ProviderError(HousePlanError):
    """An external AI provider failed or returned something unusable."""


class ProviderUnavailable(ProviderError):
    """Transient provider failure (network, rate limit, 5xx). Safe to retry."""


class SchemaMismatch(ProviderError):
    """Provider returned JSON that does not match the expected shape."""
