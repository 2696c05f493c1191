"""
ORM models for listing facts and negotiation persistence.

WHAT: SQLAlchemy models for listings, negotiation sessions and rounds
WHY: Persist per (listing, buyer) negotiation state across chat turns
HOW: Declarative models with CHECK constraints, a partial unique index for
     the one-live-session rule, a unique round sequence per session and an
     optimistic version column on sessions
"""

from datetime import datetime
from uuid import uuid4

from sqlalchemy import (
    Boolean, CheckConstraint, Column, DateTime, Enum as SQLEnum, ForeignKey,
    Index, Integer, Numeric, String, Text, UniqueConstraint, text,
)
from sqlalchemy.orm import relationship

from ..models.negotiation import Aggressiveness, RoundDecision, SessionStatus
from ..utils.clock import utcnow
from .database import Base


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class Listing(Base):
    """
    Listing table - the price facts the engine reads.

    WHAT: Asking price, optional floor and seller aggressiveness per item
    WHY: Stand-in for the marketplace catalog in development and tests
    HOW: Primary key on listing id with price CHECK constraints
    """
    __tablename__ = "listings"

    id = Column(String(64), primary_key=True, default=lambda: str(uuid4()))
    title = Column(String(200), nullable=False, default="")
    description = Column(Text, nullable=True)
    status = Column(String(30), nullable=False, default="active")
    price = Column(Numeric(12, 2), nullable=False)
    minimum_price = Column(Numeric(12, 2), nullable=True)
    aggressiveness = Column(
        SQLEnum(Aggressiveness, values_callable=_enum_values, native_enum=False),
        nullable=False,
        default=Aggressiveness.BALANCED,
    )
    negotiation_enabled = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        CheckConstraint("price > 0", name="check_listing_price_positive"),
        CheckConstraint("minimum_price IS NULL OR minimum_price >= 0", name="check_minimum_non_negative"),
        CheckConstraint("minimum_price IS NULL OR minimum_price <= price", name="check_minimum_not_above_price"),
    )

    def __repr__(self):
        return f"<Listing(id={self.id}, title={self.title}, price={self.price})>"


class NegotiationSession(Base):
    """
    NegotiationSession table - one conversation per (listing, buyer).

    WHAT: Current status and latest offer of a negotiation
    WHY: Carry negotiation state across chat turns
    HOW: Partial unique index allows only one non-expired session per pair;
         version_id_col makes concurrent updates fail instead of overwrite
    """
    __tablename__ = "negotiation_sessions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    listing_id = Column(String(64), nullable=False)
    counterparty_id = Column(String(320), nullable=False)
    status = Column(
        SQLEnum(SessionStatus, values_callable=_enum_values, native_enum=False),
        nullable=False,
        default=SessionStatus.ACTIVE,
    )
    current_offer = Column(Numeric(12, 2), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow)
    version = Column(Integer, nullable=False)

    rounds = relationship(
        "NegotiationRound",
        back_populates="session",
        cascade="all, delete-orphan",
        order_by="NegotiationRound.sequence",
    )

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index(
            "uq_live_session_per_pair",
            "listing_id",
            "counterparty_id",
            unique=True,
            sqlite_where=text("status != 'expired'"),
            postgresql_where=text("status != 'expired'"),
        ),
        Index("idx_session_status_updated", "status", "updated_at"),
    )

    def __repr__(self):
        return f"<NegotiationSession(id={self.id}, listing={self.listing_id}, status={self.status})>"


class NegotiationRound(Base):
    """
    NegotiationRound table - append-only audit trail of offers and decisions.

    WHAT: Buyer offer, engine decision and counter for each turn
    WHY: Sole source of truth for round-cap counting and previous counters
    HOW: UNIQUE (session_id, sequence) so two turns cannot both write round N
    """
    __tablename__ = "negotiation_rounds"

    id = Column(Integer, primary_key=True, autoincrement=True)
    session_id = Column(String(36), ForeignKey("negotiation_sessions.id", ondelete="CASCADE"), nullable=False)
    sequence = Column(Integer, nullable=False)
    timestamp = Column(DateTime, nullable=False, default=utcnow)
    buyer_offer = Column(Numeric(12, 2), nullable=False)
    decision = Column(
        SQLEnum(RoundDecision, values_callable=_enum_values, native_enum=False),
        nullable=False,
    )
    counter_amount = Column(Numeric(12, 2), nullable=True)
    is_final = Column(Boolean, nullable=False, default=False)
    counter_expires_at = Column(DateTime, nullable=True)

    session = relationship("NegotiationSession", back_populates="rounds")

    __table_args__ = (
        UniqueConstraint("session_id", "sequence", name="uq_round_sequence"),
        CheckConstraint("sequence >= 1", name="check_sequence_positive"),
        CheckConstraint("buyer_offer >= 0", name="check_offer_non_negative"),
        CheckConstraint(
            "(decision = 'countered' AND counter_amount IS NOT NULL) "
            "OR (decision != 'countered' AND counter_amount IS NULL)",
            name="check_counter_only_when_countered",
        ),
    )

    def __repr__(self):
        return f"<NegotiationRound(session={self.session_id}, seq={self.sequence}, decision={self.decision})>"
