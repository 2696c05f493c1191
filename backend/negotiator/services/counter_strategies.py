"""
First-counter computation strategies.

WHAT: Turn an opening offer into the seller's first counter-offer
WHY: Two pricing policies exist (randomized band and seller aggressiveness);
     one is picked per deployment and applied to every listing
HOW: Strategy objects sharing a counter() signature, built from Settings
"""

import random
from decimal import Decimal
from typing import Optional, Protocol

from ..core.config import Settings
from ..models.negotiation import Aggressiveness
from ..utils.logger import get_logger
from ..utils.money import round_money, to_money, WHOLE_UNIT

logger = get_logger(__name__)


class UniformSource(Protocol):
    """Anything with random.Random's uniform(); lets tests pin the draw."""

    def uniform(self, a: float, b: float) -> float:
        ...


class CounterStrategy(Protocol):
    """Computes the first counter for an offer strictly between minimum and asking."""

    name: str

    def counter(
        self,
        offer: Decimal,
        asking: Decimal,
        minimum: Decimal,
        aggressiveness: Aggressiveness,
    ) -> Decimal:
        ...


class RandomBandStrategy:
    """
    Recover a random 65-75% of the gap to asking.

    counter = round(offer + (asking - offer) * r), r ~ U[low, high], then
    clamped to at least offer + min_increment and at least minimum. The
    result is capped at asking so the increment clamp never prices above
    the listing.
    """

    name = "random_band"

    def __init__(
        self,
        rng: Optional[UniformSource] = None,
        low: float = 0.65,
        high: float = 0.75,
        min_increment: Decimal = Decimal("10"),
        unit: Decimal = WHOLE_UNIT,
    ):
        self.rng = rng or random.Random()
        self.low = low
        self.high = high
        self.min_increment = to_money(min_increment)
        self.unit = unit

    def counter(self, offer, asking, minimum, aggressiveness=Aggressiveness.BALANCED):
        r = to_money(self.rng.uniform(self.low, self.high))
        raw = round_money(offer + (asking - offer) * r, self.unit)
        counter = max(minimum, max(offer + self.min_increment, raw))
        return min(counter, asking)


class AggressivenessStrategy:
    """
    Recover a fixed share of the gap set by the seller's aggressiveness.

    The counter always stays strictly below asking and never below minimum.
    """

    name = "aggressiveness"

    COUNTER_PERCENTAGES = {
        Aggressiveness.PASSIVE: Decimal("0.3"),
        Aggressiveness.BALANCED: Decimal("0.5"),
        Aggressiveness.AGGRESSIVE: Decimal("0.7"),
        Aggressiveness.VERY_AGGRESSIVE: Decimal("0.8"),
    }

    def __init__(self, unit: Decimal = WHOLE_UNIT):
        self.unit = unit

    def counter(self, offer, asking, minimum, aggressiveness=Aggressiveness.BALANCED):
        pct = self.COUNTER_PERCENTAGES[Aggressiveness(aggressiveness)]
        counter = round_money(offer + (asking - offer) * pct, self.unit)
        if counter >= asking:
            counter = asking - self.unit
        return max(minimum, counter)


def build_counter_strategy(config: Settings, rng: Optional[UniformSource] = None) -> CounterStrategy:
    """
    Build the configured strategy.

    Args:
        config: Settings carrying COUNTER_STRATEGY and its parameters
        rng: Optional random source; defaults to random.Random(RANDOM_SEED)

    Raises:
        ValueError: If the strategy name is unknown
    """
    if config.COUNTER_STRATEGY == "random_band":
        if rng is None:
            rng = random.Random(config.RANDOM_SEED)
        strategy = RandomBandStrategy(
            rng=rng,
            low=config.COUNTER_BAND_LOW,
            high=config.COUNTER_BAND_HIGH,
            min_increment=config.COUNTER_MIN_INCREMENT,
            unit=config.ROUNDING_UNIT,
        )
    elif config.COUNTER_STRATEGY == "aggressiveness":
        strategy = AggressivenessStrategy(unit=config.ROUNDING_UNIT)
    else:
        raise ValueError(f"Unknown counter strategy: {config.COUNTER_STRATEGY}")

    logger.info(f"Counter strategy initialized: {strategy.name}")
    return strategy
