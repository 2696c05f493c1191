"""
Pydantic API schemas for negotiation endpoints.

WHAT: Request and response models for FastAPI
WHY: Type-safe validation and serialization matching the chat widget contract
HOW: Pydantic v2 models with validators and constraints
"""

from typing import Optional, List
from pydantic import BaseModel, Field, field_validator
from datetime import datetime


# ========== Negotiation Message ==========

class NegotiationMessageRequest(BaseModel):
    """Buyer chat message about a listing."""
    item_id: str = Field(..., min_length=1, max_length=64, description="Listing ID")
    message: str = Field(..., min_length=1, max_length=2000, description="Buyer's chat message")
    conversation_id: Optional[str] = Field(default=None, max_length=36, description="Existing conversation, if any")
    buyer_email: str = Field(
        ...,
        min_length=3,
        max_length=320,
        pattern=r"^[^@\s]+@[^@\s]+$",
        description="Buyer identity"
    )

    @field_validator("buyer_email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        """Emails identify the counterparty case-insensitively."""
        return v.strip().lower()

    @field_validator("message")
    @classmethod
    def message_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("message must not be blank")
        return v


class NegotiationMessageResponse(BaseModel):
    """Decision and reply for one buyer message."""
    success: bool = True
    conversation_id: Optional[str] = None
    response: str
    is_offer: bool
    offer_accepted: bool = False
    offer_countered: bool = False
    offer_amount: Optional[float] = None
    counter_offer_amount: Optional[float] = None
    is_final: bool = False
    expires_at: Optional[datetime] = None
    session_status: Optional[str] = None


# ========== Session View ==========

class RoundView(BaseModel):
    """One round as shown to clients."""
    sequence: int
    timestamp: datetime
    buyer_offer: float
    decision: str
    counter_amount: Optional[float] = None
    is_final: bool = False
    counter_expires_at: Optional[datetime] = None


class NegotiationSessionResponse(BaseModel):
    """Session state and history (the seller's floor is never included)."""
    conversation_id: str
    item_id: str
    buyer_email: str
    status: str
    current_offer: Optional[float] = None
    created_at: datetime
    updated_at: datetime
    rounds: List[RoundView] = Field(default_factory=list)


# ========== Maintenance ==========

class ExpireStaleResponse(BaseModel):
    """Result of the expiry sweep."""
    success: bool = True
    expired_count: int
    timestamp: datetime
