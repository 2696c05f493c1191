"""
Negotiation policy engine.

WHAT: Decide accept / counter / decline for one buyer offer
WHY: Pricing decisions must be deterministic given the round history and
     must never go below the seller's floor
HOW: Fixed-order decision tree over the immutable Round sequence; the first
     counter comes from a pluggable CounterStrategy

Decision tree (first match wins):
    1. offer >= asking                      -> accept
    2. offer <  minimum                     -> decline, never counter
    3. round cap reached                    -> accept (final settlement)
    4. one prior counter                    -> accept if offer >= that counter,
                                               else split the difference (final)
    5. no prior counter                     -> strategy counter
"""

from decimal import Decimal
from typing import Sequence

from ..models.negotiation import Aggressiveness, Decision, Round, RoundDecision
from ..utils.logger import get_logger
from ..utils.money import is_valid_amount, round_money, to_money, WHOLE_UNIT
from .counter_strategies import CounterStrategy

logger = get_logger(__name__)


def count_counters(rounds: Sequence[Round]) -> int:
    """Number of countered rounds in the history."""
    return sum(1 for r in rounds if r.is_counter)


def previous_counter_amount(rounds: Sequence[Round]) -> Decimal | None:
    """Counter amount of the most recent countered round, if any."""
    for r in reversed(rounds):
        if r.is_counter:
            return r.counter_amount
    return None


def final_counter_issued(rounds: Sequence[Round]) -> bool:
    return any(r.is_counter and r.is_final for r in rounds)


class PolicyEngine:
    """
    Pure decision function over (offer, bounds, history, aggressiveness).

    Holds only configuration and the counter strategy; no I/O and no state
    between calls.
    """

    def __init__(
        self,
        strategy: CounterStrategy,
        max_counter_rounds: int = 3,
        split_ratio: float = 0.5,
        unit: Decimal = WHOLE_UNIT,
    ):
        self.strategy = strategy
        self.max_counter_rounds = max_counter_rounds
        self.split_ratio = to_money(split_ratio)
        self.unit = unit

    def decide(
        self,
        offer: Decimal,
        asking: Decimal,
        minimum: Decimal,
        prior_rounds: Sequence[Round] = (),
        aggressiveness: Aggressiveness = Aggressiveness.BALANCED,
    ) -> Decision:
        """
        Decide on one offer.

        Args:
            offer: Buyer's offer (finite, positive)
            asking: Listing asking price
            minimum: Seller's walk-away floor (<= asking)
            prior_rounds: Session history, in sequence order
            aggressiveness: Seller profile, used by the aggressiveness strategy

        Returns:
            Decision with outcome, optional counter amount and finality

        Raises:
            ValueError: If inputs violate the caller's preconditions
        """
        offer, asking, minimum = (to_money(v) for v in (offer, asking, minimum))
        self._check_inputs(offer, asking, minimum)

        if offer >= asking:
            return Decision(RoundDecision.ACCEPTED, reason="at_or_above_asking")

        if offer < minimum:
            return Decision(RoundDecision.DECLINED, reason="below_minimum")

        counters = count_counters(prior_rounds)

        # Past here offer >= minimum, so a capped session always settles
        if counters >= self.max_counter_rounds or final_counter_issued(prior_rounds):
            return Decision(RoundDecision.ACCEPTED, is_final=True, reason="round_cap_settlement")

        if counters >= 1:
            return self._repeat_counter(offer, minimum, previous_counter_amount(prior_rounds))

        counter = self.strategy.counter(offer, asking, minimum, aggressiveness)
        return self._counter_or_accept(offer, counter, is_final=False, reason="first_counter")

    def _repeat_counter(self, offer: Decimal, minimum: Decimal, previous: Decimal) -> Decision:
        if offer >= previous:
            return Decision(RoundDecision.ACCEPTED, reason="meets_previous_counter")

        counter = round_money(offer + (previous - offer) * self.split_ratio, self.unit)
        counter = max(minimum, counter)
        return self._counter_or_accept(offer, counter, is_final=True, reason="split_difference")

    @staticmethod
    def _counter_or_accept(offer: Decimal, counter: Decimal, is_final: bool, reason: str) -> Decision:
        # Gap smaller than one rounding unit: countering would not move the price
        if counter <= offer:
            return Decision(RoundDecision.ACCEPTED, is_final=is_final, reason="gap_below_rounding_unit")
        return Decision(RoundDecision.COUNTERED, counter_amount=counter, is_final=is_final, reason=reason)

    @staticmethod
    def _check_inputs(offer: Decimal, asking: Decimal, minimum: Decimal) -> None:
        for name, value in (("offer", offer), ("asking", asking), ("minimum", minimum)):
            if not is_valid_amount(value):
                raise ValueError(f"{name} must be a finite, non-negative amount, got {value}")
        if asking <= 0:
            raise ValueError("asking must be positive")
        if minimum > asking:
            raise ValueError("minimum must not exceed asking")
