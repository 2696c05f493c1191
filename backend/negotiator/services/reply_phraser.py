"""
Reply phrasing for negotiation turns.

WHAT: Turn a NegotiationTurn into the seller's chat reply
WHY: The decision is made by the policy engine; a model only words it
HOW: Build a directive (never containing the floor price), ask the provider,
     fall back to fixed templates on provider errors or if the generated text
     mentions the floor price
"""

from decimal import Decimal
from typing import Optional

from ..llm.provider import LLMProvider
from ..llm.types import (
    ChatMessage,
    ProviderDisabledError,
    ProviderResponseError,
    ProviderTimeoutError,
    ProviderUnavailableError,
)
from ..models.negotiation import ListingPriceFacts, NegotiationTurn, RoundDecision
from ..utils.logger import get_logger
from ..utils.money import CENT, format_money, round_money
from ..utils.offers import AMOUNT_PATTERN

logger = get_logger(__name__)

PROVIDER_ERRORS = (
    ProviderTimeoutError,
    ProviderUnavailableError,
    ProviderResponseError,
    ProviderDisabledError,
)

SYSTEM_PROMPT = """You are a friendly seller on a second-hand marketplace, replying to a buyer in chat.

Rules:
- Follow the directive exactly; the price decision has already been made
- Only mention the prices the directive gives you
- Never invent discounts, deadlines or other prices
- Be concise (under 60 words), warm and natural
- Do NOT reveal any internal reasoning and NEVER output <think> tags
- Respond ONLY with the chat message"""


def _lapsed_note(turn: NegotiationTurn) -> str:
    if not turn.previous_counter_lapsed:
        return ""
    return " Mention briefly that the earlier counter-offer window had passed, but you are still happy to talk."


def build_directive(turn: NegotiationTurn, listing: ListingPriceFacts, minutes: int = 10) -> str:
    """
    Describe what the reply must say.

    Only the asking price, the buyer's offer and the counter appear; the
    seller's floor is never passed to the text generator.
    """
    title = listing.title or "the item"
    asking = format_money(listing.asking_price)

    if not turn.is_offer:
        return (
            f"The buyer sent a message about {title} (asking price {asking}) without making an offer. "
            f"Answer helpfully and invite them to name a price if they are interested."
        )

    offer = format_money(turn.offer_amount)

    if turn.decision == RoundDecision.ACCEPTED:
        return (
            f"Accept the buyer's offer of {offer} for {title}. "
            f"Thank them and confirm the deal at {offer}." + _lapsed_note(turn)
        )

    if turn.decision == RoundDecision.COUNTERED:
        counter = format_money(turn.counter_amount)
        directive = (
            f"Politely decline the buyer's offer of {offer} for {title} and counter at exactly {counter}. "
            f"Say the counter-offer is valid for the next {minutes} minutes."
        )
        if turn.is_final:
            directive += f" Make clear that {counter} is your final offer."
        return directive + _lapsed_note(turn)

    return (
        f"Politely decline the buyer's offer of {offer} for {title}; it is too low. "
        f"Do not suggest any counter price. Encourage them to make a better offer."
    )


def render_messages(directive: str, buyer_message: str) -> list[ChatMessage]:
    """Wrap a directive and the buyer's message as chat messages."""
    user_prompt = f"""Buyer's message:
{buyer_message}

Directive:
{directive}

Write your reply to the buyer."""

    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": user_prompt},
    ]


def template_reply(turn: NegotiationTurn, listing: ListingPriceFacts, minutes: int = 10) -> str:
    """Deterministic reply used when no provider is configured or it fails."""
    title = listing.title or "this item"

    if not turn.is_offer:
        return (
            f"Thanks for your interest in {title}! The asking price is "
            f"{format_money(listing.asking_price)}. If you'd like to make an offer, just let me know your price."
        )

    offer = format_money(turn.offer_amount)
    prefix = "My earlier counter-offer has expired, but I'm still happy to deal. " if turn.previous_counter_lapsed else ""

    if turn.decision == RoundDecision.ACCEPTED:
        return f"{prefix}Deal! I accept your offer of {offer} for {title}."

    if turn.decision == RoundDecision.COUNTERED:
        counter = format_money(turn.counter_amount)
        if turn.is_final:
            return (
                f"{prefix}I can't do {offer}, but I can meet you at {counter}. "
                f"That's my final offer, valid for the next {minutes} minutes."
            )
        return (
            f"{prefix}Thanks for the offer of {offer}. I can't go that low, but I could do {counter}. "
            f"This counter-offer is valid for the next {minutes} minutes."
        )

    return f"Thanks for the offer of {offer}, but that's too low for {title}. Feel free to make a better offer!"


def mentions_amount(text: str, amount: Decimal) -> bool:
    """
    True when any number in ``text`` equals ``amount`` to the cent.

    Derived floors such as 99.99 * 0.7 = 69.993 are compared as they would
    be written, 69.99.
    """
    target = round_money(amount, CENT)
    for match in AMOUNT_PATTERN.finditer(text):
        whole, fraction = match.group(1), match.group(2) or ""
        if Decimal(whole.replace(",", "") + fraction) == target:
            return True
    return False


class ReplyPhraser:
    """
    Produces reply text for a turn.

    Args:
        provider: Text-generation provider, or None for templates only
        default_minimum_ratio: Used to derive the floor when a listing has none,
            so generated text can be screened for it
    """

    def __init__(
        self,
        provider: Optional[LLMProvider] = None,
        default_minimum_ratio: Decimal = Decimal("0.7"),
        *,
        temperature: float = 0.7,
        max_tokens: int = 200,
        counter_validity_minutes: int = 10,
    ):
        self.provider = provider
        self.default_minimum_ratio = default_minimum_ratio
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.counter_validity_minutes = counter_validity_minutes

    def _discloses_minimum(self, text: str, turn: NegotiationTurn, listing: ListingPriceFacts) -> bool:
        minimum = listing.effective_minimum(self.default_minimum_ratio)
        # The floor may coincide with a price the buyer is allowed to see
        disclosed = {
            round_money(amount, CENT)
            for amount in (listing.asking_price, turn.offer_amount, turn.counter_amount)
            if amount is not None
        }
        if round_money(minimum, CENT) in disclosed:
            return False
        return mentions_amount(text, minimum)

    async def phrase(self, turn: NegotiationTurn, listing: ListingPriceFacts, buyer_message: str) -> str:
        """
        Produce the reply for one turn.

        Args:
            turn: Orchestrator result
            listing: Listing price facts for the turn
            buyer_message: The buyer's raw message

        Returns:
            Reply text; never fails because of the provider
        """
        if self.provider is None:
            return template_reply(turn, listing, self.counter_validity_minutes)

        messages = render_messages(build_directive(turn, listing, self.counter_validity_minutes), buyer_message)
        try:
            result = await self.provider.generate(
                messages,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )
        except PROVIDER_ERRORS as e:
            logger.warning(f"Reply generation failed, using template: {e}")
            return template_reply(turn, listing, self.counter_validity_minutes)

        text = result.text.strip()
        if not text:
            logger.warning("Provider returned an empty reply, using template")
            return template_reply(turn, listing, self.counter_validity_minutes)

        if self._discloses_minimum(text, turn, listing):
            logger.warning(f"Generated reply for listing {listing.listing_id} mentioned the floor price, using template")
            return template_reply(turn, listing, self.counter_validity_minutes)

        return text
