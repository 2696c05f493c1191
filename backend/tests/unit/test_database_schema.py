"""
Unit tests for database schema validation.

WHAT: Test ORM models, constraints, and relationships
WHY: The schema is the last line of defence for the append-only audit trail
HOW: Insert valid/invalid rows into a tmp_path SQLite database
"""

from datetime import datetime
from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError

from negotiator.core.models import Listing, NegotiationRound, NegotiationSession
from negotiator.models.negotiation import Aggressiveness, RoundDecision, SessionStatus

T0 = datetime(2024, 5, 1, 12, 0, 0)


def _session(listing_id="item-1", counterparty_id="buyer@example.com", status=SessionStatus.ACTIVE):
    return NegotiationSession(
        listing_id=listing_id,
        counterparty_id=counterparty_id,
        status=status,
        created_at=T0,
        updated_at=T0,
    )


@pytest.mark.unit
class TestListingModel:
    """Test Listing constraints."""

    def test_enum_round_trip(self, database):
        with database.session() as db:
            db.add(Listing(id="item-1", title="Lamp", price=Decimal("100"), aggressiveness=Aggressiveness.AGGRESSIVE))

        with database.session() as db:
            listing = db.get(Listing, "item-1")
            assert listing.aggressiveness == Aggressiveness.AGGRESSIVE
            assert listing.minimum_price is None
            assert listing.negotiation_enabled is True

    def test_minimum_above_price_rejected(self, database):
        with pytest.raises(IntegrityError):
            with database.session() as db:
                db.add(Listing(id="item-2", price=Decimal("100"), minimum_price=Decimal("120")))

    def test_non_positive_price_rejected(self, database):
        with pytest.raises(IntegrityError):
            with database.session() as db:
                db.add(Listing(id="item-3", price=Decimal("0")))


@pytest.mark.unit
class TestNegotiationSessionModel:
    """Test the one-live-session-per-pair index and versioning."""

    def test_second_live_session_rejected(self, database):
        with database.session() as db:
            db.add(_session())

        with pytest.raises(IntegrityError):
            with database.session() as db:
                db.add(_session(status=SessionStatus.NEGOTIATING))

    def test_expired_sessions_do_not_block(self, database):
        with database.session() as db:
            db.add(_session(status=SessionStatus.EXPIRED))
            db.add(_session(status=SessionStatus.EXPIRED))
            db.add(_session())

        with database.session() as db:
            assert db.query(NegotiationSession).count() == 3

    def test_version_starts_at_one_and_increments(self, database):
        with database.session() as db:
            row = _session()
            db.add(row)
            db.flush()
            session_id = row.id
            assert row.version == 1

        with database.session() as db:
            row = db.get(NegotiationSession, session_id)
            row.status = SessionStatus.NEGOTIATING
            db.flush()
            assert row.version == 2


@pytest.mark.unit
class TestNegotiationRoundModel:
    """Test round constraints."""

    def _add_session(self, database):
        with database.session() as db:
            row = _session()
            db.add(row)
            db.flush()
            return row.id

    def test_duplicate_sequence_rejected(self, database):
        session_id = self._add_session(database)

        with database.session() as db:
            db.add(NegotiationRound(session_id=session_id, sequence=1, timestamp=T0,
                                    buyer_offer=Decimal("50"), decision=RoundDecision.DECLINED))

        with pytest.raises(IntegrityError):
            with database.session() as db:
                db.add(NegotiationRound(session_id=session_id, sequence=1, timestamp=T0,
                                        buyer_offer=Decimal("60"), decision=RoundDecision.DECLINED))

    def test_counter_requires_countered_decision(self, database):
        session_id = self._add_session(database)

        with pytest.raises(IntegrityError):
            with database.session() as db:
                db.add(NegotiationRound(session_id=session_id, sequence=1, timestamp=T0,
                                        buyer_offer=Decimal("80"), decision=RoundDecision.ACCEPTED,
                                        counter_amount=Decimal("94")))

    def test_countered_requires_amount(self, database):
        session_id = self._add_session(database)

        with pytest.raises(IntegrityError):
            with database.session() as db:
                db.add(NegotiationRound(session_id=session_id, sequence=1, timestamp=T0,
                                        buyer_offer=Decimal("80"), decision=RoundDecision.COUNTERED))

    def test_rounds_ordered_by_sequence(self, database):
        session_id = self._add_session(database)

        with database.session() as db:
            for sequence in (2, 1, 3):
                db.add(NegotiationRound(session_id=session_id, sequence=sequence, timestamp=T0,
                                        buyer_offer=Decimal("50"), decision=RoundDecision.DECLINED))

        with database.session() as db:
            row = db.get(NegotiationSession, session_id)
            assert [r.sequence for r in row.rounds] == [1, 2, 3]

    def test_cascade_delete(self, database):
        session_id = self._add_session(database)

        with database.session() as db:
            db.add(NegotiationRound(session_id=session_id, sequence=1, timestamp=T0,
                                    buyer_offer=Decimal("50"), decision=RoundDecision.DECLINED))

        with database.session() as db:
            db.delete(db.get(NegotiationSession, session_id))

        with database.session() as db:
            assert db.query(NegotiationRound).count() == 0
