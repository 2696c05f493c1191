"""
Negotiation endpoints.

WHAT: Buyer message handling, session lookup and the expiry sweep
WHY: Chat widget and cron job entry points into the negotiation engine
HOW: FastAPI router; the synchronous orchestrator runs in the threadpool,
     the reply phraser is awaited
"""

import secrets
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, status
from fastapi.concurrency import run_in_threadpool

from ....core.config import Settings
from ....core.session_store import SessionStore
from ....models.api_schemas import (
    ExpireStaleResponse,
    NegotiationMessageRequest,
    NegotiationMessageResponse,
    NegotiationSessionResponse,
    RoundView,
)
from ....models.negotiation import SessionSnapshot
from ....services.orchestrator import NegotiationOrchestrator
from ....services.reply_phraser import ReplyPhraser
from ....utils.logger import get_logger
from ..dependencies import get_orchestrator, get_phraser, get_settings, get_store

logger = get_logger(__name__)

router = APIRouter(prefix="/negotiation")


def _as_float(value: Optional[Decimal]) -> Optional[float]:
    return float(value) if value is not None else None


def _session_view(snapshot: SessionSnapshot) -> NegotiationSessionResponse:
    return NegotiationSessionResponse(
        conversation_id=snapshot.id,
        item_id=snapshot.listing_id,
        buyer_email=snapshot.counterparty_id,
        status=snapshot.status.value,
        current_offer=_as_float(snapshot.current_offer),
        created_at=snapshot.created_at,
        updated_at=snapshot.updated_at,
        rounds=[
            RoundView(
                sequence=r.sequence,
                timestamp=r.timestamp,
                buyer_offer=float(r.buyer_offer),
                decision=r.decision.value,
                counter_amount=_as_float(r.counter_amount),
                is_final=r.is_final,
                counter_expires_at=r.counter_expires_at,
            )
            for r in snapshot.rounds
        ],
    )


@router.post("/message", response_model=NegotiationMessageResponse)
async def negotiation_message(
    request: NegotiationMessageRequest,
    orchestrator: NegotiationOrchestrator = Depends(get_orchestrator),
    phraser: ReplyPhraser = Depends(get_phraser),
):
    """
    Handle one buyer chat message about a listing.

    WHAT: Extract an offer, decide, persist, and phrase the reply
    WHY: Main entry point of the chat widget
    HOW: Orchestrator in the threadpool, then the phraser

    Returns:
        NegotiationMessageResponse with the decision and reply text

    Raises:
        404 LISTING_NOT_FOUND, 409 LISTING_UNAVAILABLE,
        503 CONCURRENT_APPEND_CONFLICT (via exception handlers)
    """
    listing = await run_in_threadpool(orchestrator.load_listing, request.item_id)
    turn = await run_in_threadpool(
        orchestrator.handle_message,
        request.item_id,
        request.buyer_email,
        request.message,
        request.conversation_id,
    )

    reply = await phraser.phrase(turn, listing, request.message)

    return NegotiationMessageResponse(
        conversation_id=turn.session_id,
        response=reply,
        is_offer=turn.is_offer,
        offer_accepted=turn.offer_accepted,
        offer_countered=turn.offer_countered,
        offer_amount=_as_float(turn.offer_amount),
        counter_offer_amount=_as_float(turn.counter_amount),
        is_final=turn.is_final,
        expires_at=turn.expires_at,
        session_status=turn.session_status.value if turn.session_status else None,
    )


@router.get("/{conversation_id}", response_model=NegotiationSessionResponse)
async def get_negotiation(
    conversation_id: str,
    store: SessionStore = Depends(get_store),
):
    """
    Get a negotiation session and its rounds.

    Raises:
        404 SESSION_NOT_FOUND
    """
    snapshot = await run_in_threadpool(store.get, conversation_id)
    return _session_view(snapshot)


@router.post("/expire-stale", response_model=ExpireStaleResponse)
async def expire_stale_sessions(
    authorization: Optional[str] = Header(default=None),
    config: Settings = Depends(get_settings),
    store: SessionStore = Depends(get_store),
    orchestrator: NegotiationOrchestrator = Depends(get_orchestrator),
):
    """
    Mark sessions idle past their TTL as expired.

    WHAT: Periodic sweep, meant to be called by a scheduler
    WHY: Lazy expiry only touches sessions that receive traffic
    HOW: Bearer CRON_SECRET check when a secret is configured
    """
    if config.CRON_SECRET:
        expected = f"Bearer {config.CRON_SECRET}"
        if not authorization or not secrets.compare_digest(authorization, expected):
            logger.warning("Rejected expire-stale call with missing or wrong secret")
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")

    now = orchestrator.clock()
    count = await run_in_threadpool(store.expire_stale, now)
    return ExpireStaleResponse(expired_count=count, timestamp=now)
