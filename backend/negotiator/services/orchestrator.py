"""
Negotiation session orchestrator.

WHAT: Run one buyer chat message through extraction, policy and persistence
WHY: Single writer for session state; the policy engine stays pure
HOW: extract -> load listing -> load/create session -> decide -> atomic
     append, retrying decide+append once on a concurrent append
"""

from datetime import timedelta
from decimal import Decimal
from typing import Optional

from ..core.listing_catalog import ListingCatalog
from ..core.session_store import SessionStore
from ..models.negotiation import (
    ListingPriceFacts,
    NegotiationTurn,
    Round,
    RoundDecision,
    SessionSnapshot,
    STATUS_FOR_DECISION,
)
from ..utils.clock import Clock, utcnow
from ..utils.exceptions import (
    ConcurrentAppendConflict,
    InvalidOfferInput,
    ListingNotFound,
    ListingUnavailable,
    SessionExpired,
    SessionNotFound,
)
from ..utils.logger import get_logger
from ..utils.money import to_money
from ..utils.offers import extract_offer, validate_offer_amount
from .policy_engine import PolicyEngine

logger = get_logger(__name__)


class NegotiationOrchestrator:
    """
    Coordinates one negotiation turn per inbound message.

    Collaborators are passed in; the orchestrator owns none of their
    lifecycles.
    """

    def __init__(
        self,
        store: SessionStore,
        catalog: ListingCatalog,
        engine: PolicyEngine,
        counter_validity: timedelta = timedelta(minutes=10),
        default_minimum_ratio: Decimal = Decimal("0.7"),
        clock: Clock = utcnow,
        max_attempts: int = 2,
    ):
        self.store = store
        self.catalog = catalog
        self.engine = engine
        self.counter_validity = counter_validity
        self.default_minimum_ratio = to_money(default_minimum_ratio)
        self.clock = clock
        self.max_attempts = max_attempts

    def load_listing(self, listing_id: str) -> ListingPriceFacts:
        """
        Fetch price facts for a listing that can be discussed.

        Raises:
            ListingNotFound: No such listing
            ListingUnavailable: Listing is sold, reserved or otherwise inactive
        """
        listing = self.catalog.get_price_facts(listing_id)
        if listing is None:
            raise ListingNotFound(listing_id)
        if listing.status != "active":
            raise ListingUnavailable(listing_id, listing.status)
        return listing

    def handle_message(
        self,
        listing_id: str,
        counterparty_id: str,
        raw_message: str,
        session_id: Optional[str] = None,
    ) -> NegotiationTurn:
        """
        Process one buyer message.

        Args:
            listing_id: Listing being discussed
            counterparty_id: Buyer identity (e.g. email)
            raw_message: Free-text chat message
            session_id: Conversation id the client believes it is in, if any

        Returns:
            NegotiationTurn describing the decision (or a non-offer turn)

        Raises:
            ListingNotFound, ListingUnavailable: Nothing is written
            ConcurrentAppendConflict: Still conflicting after one retry
        """
        listing = self.load_listing(listing_id)
        amount = self._parse_offer(raw_message)

        if amount is None:
            live = self.store.find_live(listing_id, counterparty_id, self.clock())
            return NegotiationTurn(
                is_offer=False,
                session_id=live.id if live else None,
                session_status=live.status if live else None,
            )

        if not listing.negotiation_enabled:
            raise ListingUnavailable(listing_id, "negotiation_disabled")

        attempt = 1
        while True:
            now = self.clock()
            session = self._resolve_session(listing_id, counterparty_id, session_id, now)
            try:
                return self._decide_and_append(listing, session, amount, now)
            except ConcurrentAppendConflict:
                if attempt >= self.max_attempts:
                    logger.error(f"Session {session.id} still conflicting after {attempt} attempts")
                    raise
                logger.warning(f"Concurrent turn on session {session.id}, retrying against fresh history")
                # The refreshed history lives in the store, not the stale snapshot
                session_id = session.id
                attempt += 1

    def _parse_offer(self, raw_message: str) -> Optional[Decimal]:
        extracted = extract_offer(raw_message)
        if not extracted.is_offer:
            return None
        try:
            return validate_offer_amount(extracted.amount)
        except InvalidOfferInput as e:
            logger.info(f"Ignoring unusable offer amount: {e.message}")
            return None

    def _resolve_session(
        self,
        listing_id: str,
        counterparty_id: str,
        session_id: Optional[str],
        now,
    ) -> SessionSnapshot:
        if session_id:
            try:
                session = self.store.load(session_id, now)
            except SessionExpired:
                logger.info(f"Session {session_id} expired, starting a fresh negotiation")
            except SessionNotFound:
                logger.info(f"Unknown session {session_id}, falling back to pair lookup")
            else:
                if session.listing_id == listing_id and session.counterparty_id == counterparty_id:
                    return session
                logger.warning(f"Session {session_id} belongs to another listing or buyer, ignoring it")

        return self.store.get_or_create(listing_id, counterparty_id, now)

    def _decide_and_append(
        self,
        listing: ListingPriceFacts,
        session: SessionSnapshot,
        amount: Decimal,
        now,
    ) -> NegotiationTurn:
        minimum = listing.effective_minimum(self.default_minimum_ratio)
        decision = self.engine.decide(
            amount,
            listing.asking_price,
            minimum,
            session.rounds,
            listing.aggressiveness,
        )

        last_counter = session.last_counter
        lapsed = bool(
            last_counter
            and last_counter.counter_expires_at
            and last_counter.counter_expires_at < now
        )

        expires_at = now + self.counter_validity if decision.outcome == RoundDecision.COUNTERED else None
        round_ = Round(
            sequence=session.next_sequence,
            timestamp=now,
            buyer_offer=amount,
            decision=decision.outcome,
            counter_amount=decision.counter_amount,
            is_final=decision.is_final,
            counter_expires_at=expires_at,
        )
        updated = self.store.append_round(session.id, round_, STATUS_FOR_DECISION[decision.outcome])

        logger.info(
            f"Session {session.id} round {round_.sequence}: offer={amount} "
            f"decision={decision.outcome.value} counter={decision.counter_amount} "
            f"final={decision.is_final} reason={decision.reason}"
        )

        return NegotiationTurn(
            is_offer=True,
            session_id=updated.id,
            decision=decision.outcome,
            offer_amount=amount,
            counter_amount=decision.counter_amount,
            expires_at=expires_at,
            is_final=decision.is_final,
            previous_counter_lapsed=lapsed,
            session_status=updated.status,
        )
