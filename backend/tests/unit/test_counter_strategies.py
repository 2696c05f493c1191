"""
Unit tests for first-counter strategies.

WHAT: Test randomized-band and aggressiveness-weighted counters
WHY: Each strategy has its own clamps that must hold on its own
HOW: Pinned draws, table-driven profiles, factory selection from Settings
"""

import random
from decimal import Decimal

import pytest

from negotiator.core.config import Settings
from negotiator.models.negotiation import Aggressiveness
from negotiator.services.counter_strategies import (
    AggressivenessStrategy,
    RandomBandStrategy,
    build_counter_strategy,
)
from tests.fixtures.doubles import FixedRandom


@pytest.mark.unit
class TestRandomBandStrategy:
    """Test the canonical 65-75% band."""

    def test_draws_from_configured_band(self):
        rng = FixedRandom(0.70)
        strategy = RandomBandStrategy(rng=rng, low=0.6, high=0.8)
        strategy.counter(Decimal("80"), Decimal("100"), Decimal("70"))
        assert rng.calls == [(0.6, 0.8)]

    @pytest.mark.parametrize("r,expected", [
        (0.65, Decimal("93")),
        (0.70, Decimal("94")),
        (0.75, Decimal("95")),
    ])
    def test_band_edges(self, r, expected):
        strategy = RandomBandStrategy(rng=FixedRandom(r))
        assert strategy.counter(Decimal("80"), Decimal("100"), Decimal("70")) == expected

    def test_rounds_half_up(self):
        """80 + 10 * 0.65 = 86.5 rounds to 87, not to the even 86."""
        strategy = RandomBandStrategy(rng=FixedRandom(0.65), min_increment=Decimal("0"))
        assert strategy.counter(Decimal("80"), Decimal("90"), Decimal("70")) == Decimal("87")

    def test_floor_clamp(self):
        strategy = RandomBandStrategy(rng=FixedRandom(0.0), min_increment=Decimal("0"))
        assert strategy.counter(Decimal("80"), Decimal("100"), Decimal("85")) == Decimal("85")

    def test_seeded_rng_is_reproducible(self):
        first = RandomBandStrategy(rng=random.Random(7))
        second = RandomBandStrategy(rng=random.Random(7))
        amounts = [Decimal(a) for a in (71, 75, 80, 88, 95)]
        assert [first.counter(a, Decimal("100"), Decimal("70")) for a in amounts] == \
            [second.counter(a, Decimal("100"), Decimal("70")) for a in amounts]

    def test_cents_rounding_unit(self):
        strategy = RandomBandStrategy(rng=FixedRandom(0.70), min_increment=Decimal("0"), unit=Decimal("0.01"))
        assert strategy.counter(Decimal("80.10"), Decimal("99.99"), Decimal("70")) == Decimal("94.02")


@pytest.mark.unit
class TestAggressivenessStrategy:
    """Test the profile-weighted variant."""

    @pytest.mark.parametrize("profile,expected", [
        (Aggressiveness.PASSIVE, Decimal("86")),
        (Aggressiveness.BALANCED, Decimal("90")),
        (Aggressiveness.AGGRESSIVE, Decimal("94")),
        (Aggressiveness.VERY_AGGRESSIVE, Decimal("96")),
    ])
    def test_profiles(self, profile, expected):
        strategy = AggressivenessStrategy()
        assert strategy.counter(Decimal("80"), Decimal("100"), Decimal("70"), profile) == expected

    def test_accepts_profile_string(self):
        strategy = AggressivenessStrategy()
        assert strategy.counter(Decimal("80"), Decimal("100"), Decimal("70"), "balanced") == Decimal("90")

    def test_strictly_below_asking(self):
        strategy = AggressivenessStrategy()
        counter = strategy.counter(Decimal("98"), Decimal("100"), Decimal("70"), Aggressiveness.VERY_AGGRESSIVE)
        assert counter == Decimal("99")

    def test_never_below_floor(self):
        strategy = AggressivenessStrategy()
        counter = strategy.counter(Decimal("80"), Decimal("100"), Decimal("92"), Aggressiveness.PASSIVE)
        assert counter == Decimal("92")


@pytest.mark.unit
class TestBuildCounterStrategy:
    """Test strategy selection from settings."""

    def test_default_is_random_band(self):
        config = Settings(_env_file=None)
        strategy = build_counter_strategy(config, rng=FixedRandom(0.7))
        assert isinstance(strategy, RandomBandStrategy)
        assert strategy.low == 0.65
        assert strategy.high == 0.75

    def test_aggressiveness_selected(self):
        config = Settings(_env_file=None, COUNTER_STRATEGY="aggressiveness")
        assert isinstance(build_counter_strategy(config), AggressivenessStrategy)

    def test_seed_from_settings(self):
        config = Settings(_env_file=None, RANDOM_SEED=3)
        first = build_counter_strategy(config)
        second = build_counter_strategy(config)
        assert first.counter(Decimal("75"), Decimal("100"), Decimal("70")) == \
            second.counter(Decimal("75"), Decimal("100"), Decimal("70"))

    def test_invalid_band_rejected(self):
        with pytest.raises(ValueError):
            Settings(_env_file=None, COUNTER_BAND_LOW=0.8, COUNTER_BAND_HIGH=0.7)
