"""
Listing catalog access.

WHAT: Read-only lookup of listing price facts by item id
WHY: The engine consumes asking/minimum prices but never owns listings
HOW: ListingCatalog protocol with a SQLAlchemy-backed implementation
"""

from typing import Optional, Protocol

from .database import Database
from .models import Listing
from ..models.negotiation import ListingPriceFacts
from ..utils.logger import get_logger

logger = get_logger(__name__)


class ListingCatalog(Protocol):
    """Source of listing price facts."""

    def get_price_facts(self, listing_id: str) -> Optional[ListingPriceFacts]:
        """Return facts for a listing, or None if it does not exist."""
        ...


class SqlListingCatalog:
    """Catalog backed by the ``listings`` table."""

    def __init__(self, db: Database):
        self.db = db

    def get_price_facts(self, listing_id: str) -> Optional[ListingPriceFacts]:
        with self.db.session() as session:
            row = session.get(Listing, listing_id)
            if row is None:
                logger.debug(f"Listing {listing_id} not in catalog")
                return None
            return ListingPriceFacts(
                listing_id=row.id,
                title=row.title,
                status=row.status,
                asking_price=row.price,
                minimum_price=row.minimum_price,
                aggressiveness=row.aggressiveness,
                negotiation_enabled=row.negotiation_enabled,
            )
