import random
from typing import Optional, Protocol, Sequence, Tuple

AD_CHANNEL = "ad"
ROULETTE_CHANNEL = "roulette"

# (upper bound of the roll, min points, max points); rolls fall in (0, 100]
AD_BUCKETS: Sequence[Tuple[float, int, int]] = (
    (2, 90, 100),
    (70, 101, 129),
    (98, 130, 200),
    (100, 201, 250),
)
ROULETTE_BUCKETS: Sequence[Tuple[float, int, int]] = (
    (70, 100, 130),
    (100, 131, 250),
)

BUCKETS_BY_CHANNEL = {
    AD_CHANNEL: AD_BUCKETS,
    ROULETTE_CHANNEL: ROULETTE_BUCKETS,
}


class DrawStrategy(Protocol):
    def roll(self) -> float:
        """Uniform draw in (0, 100]."""

    def pick(self, low: int, high: int) -> int:
        """Uniform integer in [low, high]."""


class RandomDraw:
    """Default strategy; pass a seed for reproducible sequences."""

    def __init__(self, seed: Optional[int] = None):
        self._rng = random.Random(seed)

    def roll(self) -> float:
        # random() is in [0, 1), so this lands in (0, 100]
        return 100.0 - self._rng.random() * 100.0

    def pick(self, low: int, high: int) -> int:
        return self._rng.randint(low, high)


def select_bucket(roll: float, buckets: Sequence[Tuple[float, int, int]]) -> Tuple[int, int]:
    for upper, low, high in buckets:
        if roll <= upper:
            return low, high
    _, low, high = buckets[-1]
    return low, high


def draw_reward(channel: str, draw: Optional[DrawStrategy] = None) -> int:
    """Draw the point amount for one reward on ``channel``."""
    if channel not in BUCKETS_BY_CHANNEL:
        raise ValueError(f"Unknown reward channel: {channel}")
    draw = draw or RandomDraw()
    low, high = select_bucket(draw.roll(), BUCKETS_BY_CHANNEL[channel])
    return draw.pick(low, high)
