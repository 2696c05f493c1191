"""
Offer extraction from buyer chat messages.

WHAT: Detect a monetary offer and purchase intent in free text
WHY: The policy engine only runs on messages that actually make an offer
HOW: Regex for the first amount plus a fixed intent-keyword vocabulary

Both a number and an intent keyword are required. This is a heuristic:
"is $50 the final price?" is not an offer, but neither is "50 works for me",
and "I had to pay $20 for shipping" is.
"""

import re
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from .exceptions import InvalidOfferInput
from .logger import get_logger
from .money import is_valid_amount, to_money

logger = get_logger(__name__)

# Optional $, thousands separators, up to two decimal places. A number that
# starts after a dot (".50") or carries more than two decimals ("12.345") is
# not an amount; a sentence-ending dot ("$80.") is fine.
AMOUNT_PATTERN = re.compile(r"\$?\s?(?<![\d.])(\d{1,3}(?:,\d{3})+|\d+)(\.\d{1,2})?(?!\d|\.\d)")

OFFER_KEYWORDS = (
    "offer",
    "pay",
    "give",
    "how about",
    "would you take",
    "willing to pay",
    "can i pay",
    "could i pay",
    "accept",
    "buy for",
    "purchase for",
    "will you take",
    "i'll give",
    "my offer is",
    "what about",
    "can you do",
    "would you accept",
    "i can do",
    "my budget is",
    "tops",
)


@dataclass(frozen=True)
class ExtractedOffer:
    """Result of scanning one message."""
    is_offer: bool
    amount: Optional[Decimal] = None


NOT_AN_OFFER = ExtractedOffer(is_offer=False)


def find_amount(text: str) -> Optional[Decimal]:
    """
    Return the first monetary amount in ``text``.

    Only the first match is used, even when the message names several
    numbers ("I'd pay $80, not $100").
    """
    match = AMOUNT_PATTERN.search(text)
    if not match:
        return None
    whole, fraction = match.group(1), match.group(2) or ""
    return to_money(whole.replace(",", "") + fraction)


def has_offer_intent(text: str) -> bool:
    """True when any intent keyword appears (substring, case-insensitive)."""
    lowered = text.lower()
    return any(keyword in lowered for keyword in OFFER_KEYWORDS)


def extract_offer(message: str) -> ExtractedOffer:
    """
    Parse a buyer message for an offer.

    Args:
        message: Raw chat message

    Returns:
        ExtractedOffer with is_offer and the first amount found
    """
    if not message:
        return NOT_AN_OFFER

    amount = find_amount(message)
    if amount is None or not has_offer_intent(message):
        logger.debug("No offer detected in message")
        return NOT_AN_OFFER

    return ExtractedOffer(is_offer=True, amount=amount)


def validate_offer_amount(amount: Optional[Decimal]) -> Decimal:
    """
    Check that an extracted amount can be fed to the policy engine.

    Raises:
        InvalidOfferInput: For missing, non-finite, zero or negative amounts
    """
    if amount is None or not is_valid_amount(amount) or amount == 0:
        raise InvalidOfferInput(amount)
    return amount
