"""
Negotiation state store.

WHAT: Load, create and atomically extend per (listing, buyer) sessions
WHY: Two quick messages from the same buyer must not both decide against
     the same round history
HOW: Each append runs in one transaction that checks the expected round
     sequence; the UNIQUE (session_id, sequence) constraint and the
     optimistic version column turn any lost race into
     ConcurrentAppendConflict with nothing written
"""

from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from .database import Database
from .models import NegotiationRound, NegotiationSession
from ..models.negotiation import Round, SessionSnapshot, SessionStatus
from ..utils.exceptions import ConcurrentAppendConflict, SessionExpired, SessionNotFound
from ..utils.logger import get_logger

logger = get_logger(__name__)


def _to_round(row: NegotiationRound) -> Round:
    return Round(
        sequence=row.sequence,
        timestamp=row.timestamp,
        buyer_offer=row.buyer_offer,
        decision=row.decision,
        counter_amount=row.counter_amount,
        is_final=row.is_final,
        counter_expires_at=row.counter_expires_at,
    )


def _to_snapshot(row: NegotiationSession) -> SessionSnapshot:
    return SessionSnapshot(
        id=row.id,
        listing_id=row.listing_id,
        counterparty_id=row.counterparty_id,
        status=row.status,
        current_offer=row.current_offer,
        created_at=row.created_at,
        updated_at=row.updated_at,
        rounds=tuple(_to_round(r) for r in row.rounds),
    )


class SessionStore:
    """
    Persistence for negotiation sessions and their rounds.

    WHAT: get_or_create / load / append_round / expire_stale
    WHY: The orchestrator is the only writer; everything else reads snapshots
    HOW: Short transactions through Database.session(), detached snapshots out
    """

    def __init__(self, db: Database, session_ttl: timedelta = timedelta(days=7)):
        self.db = db
        self.session_ttl = session_ttl

    def _is_stale(self, row: NegotiationSession, now: datetime) -> bool:
        return row.updated_at + self.session_ttl < now

    def _expire(self, row: NegotiationSession, now: datetime) -> None:
        logger.info(f"Session {row.id} idle since {row.updated_at.isoformat()}, marking expired")
        row.status = SessionStatus.EXPIRED
        row.updated_at = now

    def _live_row(self, db_session, listing_id: str, counterparty_id: str) -> Optional[NegotiationSession]:
        return (
            db_session.query(NegotiationSession)
            .filter(
                NegotiationSession.listing_id == listing_id,
                NegotiationSession.counterparty_id == counterparty_id,
                NegotiationSession.status != SessionStatus.EXPIRED,
            )
            .first()
        )

    def find_live(self, listing_id: str, counterparty_id: str, now: datetime) -> Optional[SessionSnapshot]:
        """
        Return the pair's non-expired session without writing anything.

        A session idle past its TTL is reported as None but left as stored;
        the next offer or the expiry sweep marks it expired.
        """
        with self.db.session() as db:
            row = self._live_row(db, listing_id, counterparty_id)
            if row is None or self._is_stale(row, now):
                return None
            return _to_snapshot(row)

    def get_or_create(self, listing_id: str, counterparty_id: str, now: datetime) -> SessionSnapshot:
        """
        Return the pair's live session, creating it if needed.

        Idempotent: repeated calls before any append return the same session.
        A resolved session (accepted/declined) is returned as is and reopened
        by the next append; an expired one is replaced by a fresh session.
        """
        try:
            return self._get_or_create_once(listing_id, counterparty_id, now)
        except IntegrityError:
            # Another turn created the session between our read and insert
            logger.info(f"Lost session creation race for ({listing_id}, {counterparty_id}), reloading")
            return self._get_or_create_once(listing_id, counterparty_id, now)

    def _get_or_create_once(self, listing_id: str, counterparty_id: str, now: datetime) -> SessionSnapshot:
        with self.db.session() as db:
            row = self._live_row(db, listing_id, counterparty_id)
            if row is not None and self._is_stale(row, now):
                self._expire(row, now)
                db.flush()
                row = None

            if row is None:
                row = NegotiationSession(
                    listing_id=listing_id,
                    counterparty_id=counterparty_id,
                    status=SessionStatus.ACTIVE,
                    created_at=now,
                    updated_at=now,
                )
                db.add(row)
                db.flush()
                logger.info(f"Created negotiation session {row.id} for listing {listing_id}")

            return _to_snapshot(row)

    def load(self, session_id: str, now: datetime) -> SessionSnapshot:
        """
        Load a session for a new turn.

        Raises:
            SessionNotFound: Unknown session id
            SessionExpired: Session already expired or idle past its TTL
        """
        expired = False
        with self.db.session() as db:
            row = db.get(NegotiationSession, session_id)
            if row is None:
                raise SessionNotFound(session_id)
            if row.status == SessionStatus.EXPIRED:
                expired = True
            elif self._is_stale(row, now):
                self._expire(row, now)
                expired = True
            else:
                snapshot = _to_snapshot(row)

        # Raised after the block so the expiry mark is committed
        if expired:
            raise SessionExpired(session_id)
        return snapshot

    def get(self, session_id: str) -> SessionSnapshot:
        """
        Read a session as stored, without applying the TTL.

        Raises:
            SessionNotFound: Unknown session id
        """
        with self.db.session() as db:
            row = db.get(NegotiationSession, session_id)
            if row is None:
                raise SessionNotFound(session_id)
            return _to_snapshot(row)

    def append_round(self, session_id: str, round_: Round, new_status: SessionStatus) -> SessionSnapshot:
        """
        Append one round and update the session status, all or nothing.

        Args:
            session_id: Target session
            round_: Round to write; its sequence must be stored rounds + 1
            new_status: Session status after this round

        Returns:
            Updated snapshot including the new round

        Raises:
            SessionNotFound: Unknown session id
            ConcurrentAppendConflict: Another turn appended first
        """
        try:
            with self.db.session() as db:
                row = db.get(NegotiationSession, session_id)
                if row is None:
                    raise SessionNotFound(session_id)

                if len(row.rounds) + 1 != round_.sequence:
                    raise ConcurrentAppendConflict(session_id, round_.sequence)

                row.rounds.append(
                    NegotiationRound(
                        sequence=round_.sequence,
                        timestamp=round_.timestamp,
                        buyer_offer=round_.buyer_offer,
                        decision=round_.decision,
                        counter_amount=round_.counter_amount,
                        is_final=round_.is_final,
                        counter_expires_at=round_.counter_expires_at,
                    )
                )
                row.status = new_status
                row.current_offer = round_.buyer_offer
                row.updated_at = round_.timestamp
                db.flush()
                snapshot = _to_snapshot(row)
        except (IntegrityError, StaleDataError) as e:
            logger.warning(f"Append conflict on session {session_id} at round {round_.sequence}: {e}")
            raise ConcurrentAppendConflict(session_id, round_.sequence) from e

        logger.debug(f"Appended round {round_.sequence} to session {session_id} ({new_status.value})")
        return snapshot

    def expire_stale(self, now: datetime) -> int:
        """
        Mark every session idle past its TTL as expired.

        Returns:
            Number of sessions expired
        """
        cutoff = now - self.session_ttl
        with self.db.session() as db:
            result = db.execute(
                update(NegotiationSession)
                .where(
                    NegotiationSession.status != SessionStatus.EXPIRED,
                    NegotiationSession.updated_at < cutoff,
                )
                .values(
                    status=SessionStatus.EXPIRED,
                    updated_at=now,
                    version=NegotiationSession.version + 1,
                )
                .execution_options(synchronize_session=False)
            )
            count = result.rowcount or 0

        if count:
            logger.info(f"Expired {count} stale negotiation sessions")
        return count
