"""
Battle odds service: attack success probability and the outcome draw.

Pure computation. The draw takes an injectable random source so tests can
force either outcome; in production it is always made by the server.
"""
import random
from typing import Protocol

BASE_PROBABILITY = 0.5
LEVEL_DIFF_WEIGHT = 0.1
ZONE_LEVEL_PENALTY = 0.05
MIN_PROBABILITY = 0.1
MAX_PROBABILITY = 0.9


class RandomSource(Protocol):
    def random(self) -> float: ...


def success_probability(attacker_level: int, defender_level: int, zone_level: int) -> float:
    """
    Chance that an attack captures the zone.

        p = clamp(0.5 + 0.1 * (attacker - defender) - 0.05 * zone, 0.1, 0.9)

    A level advantage helps, a high-level zone hurts, and no matchup is ever
    certain either way.

    Example:
        success_probability(1, 5, 3) -> 0.1   (raw value -0.05)
    """
    raw = (
        BASE_PROBABILITY
        + LEVEL_DIFF_WEIGHT * (attacker_level - defender_level)
        - ZONE_LEVEL_PENALTY * zone_level
    )
    return max(MIN_PROBABILITY, min(MAX_PROBABILITY, raw))


def draw_outcome(probability: float, rng: RandomSource = None) -> bool:
    """Single Bernoulli trial: True with the given probability."""
    rng = rng or random
    return rng.random() < probability


class FixedRandom:
    """Random source that always returns the same value."""

    def __init__(self, value: float):
        self.value = value

    def random(self) -> float:
        return self.value


ALWAYS_SUCCEED = FixedRandom(0.0)
ALWAYS_FAIL = FixedRandom(0.999999)
