from __future__ import annotations

from typing import Sequence, TypeVar

T = TypeVar("T")

# Linear congruential recurrence shared by every exploration and tie-break draw.
LCG_MULTIPLIER = 9301
LCG_INCREMENT = 49297
LCG_MODULUS = 233280
DEFAULT_SEED = 123


class RandomSource:
    """Deterministic pseudo-random generator used by the learning engine.

    A single instance is injected into ``QLearningEngine`` and must never be
    copied or forked: the announcement protocol relies on exactly one linear
    sequence of draws. Given the same seed and the same sequence of calls,
    any implementation of the recurrence produces identical values.
    """

    def __init__(self, seed: int = DEFAULT_SEED):
        self._seed = int(seed)
        self._initial_seed = int(seed)
        self._draws = 0

    @property
    def seed(self) -> int:
        """Seed the generator was last (re)initialized with."""
        return self._initial_seed

    @property
    def draws(self) -> int:
        return self._draws

    def reseed(self, seed: int) -> None:
        self._seed = int(seed)
        self._initial_seed = int(seed)
        self._draws = 0

    def uniform(self, low: float = 0.0, high: float = 1.0) -> float:
        """Advance the recurrence once and map it onto ``[low, high)``."""
        self._seed = (self._seed * LCG_MULTIPLIER + LCG_INCREMENT) % LCG_MODULUS
        self._draws += 1
        u = self._seed / LCG_MODULUS
        return low + u * (high - low)

    def choice(self, items: Sequence[T]) -> T:
        if not items:
            raise ValueError("choice() from an empty sequence")
        index = int(self.uniform(0, len(items)))
        return items[index]
