"""
Custom business exceptions for the negotiation engine.

WHAT: Domain-specific exceptions that map to HTTP status codes
WHY: Consistent error handling across the engine and API endpoints
HOW: Custom exception classes with error codes and messages
"""

from typing import Optional, List, Dict, Any


class BusinessException(Exception):
    """Base class for business logic exceptions."""

    def __init__(self, message: str, code: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details


class ListingNotFound(BusinessException):
    """Raised when price facts for a listing are unavailable."""

    def __init__(self, listing_id: str):
        super().__init__(
            message=f"Listing not found: {listing_id}",
            code="LISTING_NOT_FOUND",
            details={"listing_id": listing_id}
        )


class ListingUnavailable(BusinessException):
    """Raised when a listing is not in a negotiable state (sold, paused, ...)."""

    def __init__(self, listing_id: str, status: str):
        super().__init__(
            message=f"Listing {listing_id} is not available for negotiation (status: {status})",
            code="LISTING_UNAVAILABLE",
            details={"listing_id": listing_id, "status": status}
        )


class SessionNotFound(BusinessException):
    """Raised when a negotiation session is not found."""

    def __init__(self, session_id: str):
        super().__init__(
            message=f"Negotiation session not found: {session_id}",
            code="SESSION_NOT_FOUND",
            details={"session_id": session_id}
        )


class SessionExpired(BusinessException):
    """Raised when a session has been idle past its TTL."""

    def __init__(self, session_id: str):
        super().__init__(
            message=f"Negotiation session expired: {session_id}",
            code="SESSION_EXPIRED",
            details={"session_id": session_id}
        )


class InvalidOfferInput(BusinessException):
    """Raised when an extracted amount is not a usable offer."""

    def __init__(self, amount: Any):
        super().__init__(
            message=f"Invalid offer amount: {amount!r}",
            code="INVALID_OFFER_INPUT",
            details={"amount": str(amount)}
        )


class ConcurrentAppendConflict(BusinessException):
    """Raised when another turn appended to the same session first."""

    def __init__(self, session_id: str, expected_sequence: int):
        super().__init__(
            message=f"Concurrent update on session {session_id} (expected round {expected_sequence})",
            code="CONCURRENT_APPEND_CONFLICT",
            details={"session_id": session_id, "expected_sequence": expected_sequence}
        )


class ValidationException(BusinessException):
    """Raised for validation errors."""

    def __init__(self, message: str, field_errors: Optional[List[Dict[str, str]]] = None):
        super().__init__(
            message=message,
            code="VALIDATION_ERROR",
            details={"field_errors": field_errors} if field_errors else None
        )
