from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Sequence, TypeVar

from .errors import EmptyChoiceError


T = TypeVar("T")

_MODULUS = 2**32
_MULTIPLIER = 1664525
_INCREMENT = 1013904223
_HOUR_MS = 60 * 60 * 1000


@dataclass
class SeededRandom:
    """Budget-seeded LCG behind every house-plan draw.

    Numerical Recipes constants:
      seed = (seed * 1664525 + 1013904223) % 2**32
      next = seed / 2**32

    A given seed always replays the same plan. The stream is trivially
    predictable, so keep it away from tokens or ids that must be unguessable.
    """

    seed: int

    def __post_init__(self) -> None:
        self.seed = int(self.seed) % _MODULUS

    def next(self) -> float:
        self.seed = (self.seed * _MULTIPLIER + _INCREMENT) % _MODULUS
        return self.seed / _MODULUS

    def choice(self, items: Sequence[T]) -> T:
        if not items:
            raise EmptyChoiceError("cannot choose from an empty sequence")
        return items[int(self.next() * len(items))]

    def range(self, lo: int, hi: int) -> int:
        """Uniform integer in [lo, hi], both ends inclusive."""
        if hi < lo:
            raise ValueError(f"range upper bound {hi} is below lower bound {lo}")
        return int(self.next() * (hi - lo + 1)) + lo

    @staticmethod
    def for_budget(budget: int, now: Optional[datetime] = None) -> "SeededRandom":
        return SeededRandom(seed_for_budget(budget, now))


def hour_bucket(now: Optional[datetime] = None) -> int:
    """Whole hours since the Unix epoch."""
    if now is None:
        now = datetime.now(timezone.utc)
    return epoch_millis(now) // _HOUR_MS


def seed_for_budget(budget: int, now: Optional[datetime] = None) -> int:
    # Same budget -> same plan for the rest of the hour, then it drifts.
    return int(budget) + hour_bucket(now)


def epoch_millis(now: datetime) -> int:
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return int(now.timestamp() * 1000)
