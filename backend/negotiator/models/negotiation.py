"""
Negotiation domain models.

WHAT: Core data structures shared by the policy engine, store and orchestrator
WHY: Keep the pure decision logic independent of ORM rows and HTTP schemas
HOW: str Enums, frozen dataclasses for immutable records, Pydantic v2 for
     validated listing facts
"""

import enum
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from ..utils.money import to_money


class SessionStatus(str, enum.Enum):
    """Negotiation session status values."""
    ACTIVE = "active"
    OFFER_ACCEPTED = "offer_accepted"
    NEGOTIATING = "negotiating"
    DECLINED = "declined"
    EXPIRED = "expired"


class RoundDecision(str, enum.Enum):
    """Outcome of a single buyer-offer/engine-decision pair."""
    ACCEPTED = "accepted"
    COUNTERED = "countered"
    DECLINED = "declined"


class Aggressiveness(str, enum.Enum):
    """Seller profile controlling how much of the gap a counter recovers."""
    PASSIVE = "passive"
    BALANCED = "balanced"
    AGGRESSIVE = "aggressive"
    VERY_AGGRESSIVE = "very_aggressive"


# Session status reached after each kind of round
STATUS_FOR_DECISION = {
    RoundDecision.ACCEPTED: SessionStatus.OFFER_ACCEPTED,
    RoundDecision.COUNTERED: SessionStatus.NEGOTIATING,
    RoundDecision.DECLINED: SessionStatus.DECLINED,
}


class ListingPriceFacts(BaseModel):
    """Read-only price facts for one listing."""

    listing_id: str
    title: str = ""
    status: str = "active"
    asking_price: Decimal = Field(gt=0)
    minimum_price: Optional[Decimal] = Field(default=None, ge=0)
    aggressiveness: Aggressiveness = Aggressiveness.BALANCED
    negotiation_enabled: bool = True

    @model_validator(mode="after")
    def validate_minimum(self):
        """Ensure the walk-away floor does not exceed the asking price."""
        if self.minimum_price is not None and self.minimum_price > self.asking_price:
            raise ValueError(
                f"minimum_price ({self.minimum_price}) must not exceed asking_price ({self.asking_price})"
            )
        return self

    def effective_minimum(self, default_ratio: Decimal) -> Decimal:
        """Seller's floor, defaulting to a fraction of the asking price."""
        if self.minimum_price is not None:
            return self.minimum_price
        return self.asking_price * to_money(default_ratio)


@dataclass(frozen=True)
class Round:
    """One immutable entry of a session's audit trail."""
    sequence: int
    timestamp: datetime
    buyer_offer: Decimal
    decision: RoundDecision
    counter_amount: Optional[Decimal] = None
    is_final: bool = False
    counter_expires_at: Optional[datetime] = None

    @property
    def is_counter(self) -> bool:
        return self.decision == RoundDecision.COUNTERED


@dataclass(frozen=True)
class Decision:
    """Output of the policy engine for one offer."""
    outcome: RoundDecision
    counter_amount: Optional[Decimal] = None
    is_final: bool = False
    reason: str = ""


@dataclass(frozen=True)
class SessionSnapshot:
    """Detached view of a session and its rounds, in sequence order."""
    id: str
    listing_id: str
    counterparty_id: str
    status: SessionStatus
    current_offer: Optional[Decimal]
    created_at: datetime
    updated_at: datetime
    rounds: tuple[Round, ...] = field(default_factory=tuple)

    @property
    def next_sequence(self) -> int:
        return len(self.rounds) + 1

    @property
    def last_counter(self) -> Optional[Round]:
        for round_ in reversed(self.rounds):
            if round_.is_counter:
                return round_
        return None


@dataclass(frozen=True)
class NegotiationTurn:
    """What the orchestrator hands back to its caller for one message."""
    is_offer: bool
    session_id: Optional[str] = None
    decision: Optional[RoundDecision] = None
    offer_amount: Optional[Decimal] = None
    counter_amount: Optional[Decimal] = None
    expires_at: Optional[datetime] = None
    is_final: bool = False
    previous_counter_lapsed: bool = False
    session_status: Optional[SessionStatus] = None

    @property
    def offer_accepted(self) -> bool:
        return self.decision == RoundDecision.ACCEPTED

    @property
    def offer_countered(self) -> bool:
        return self.decision == RoundDecision.COUNTERED
