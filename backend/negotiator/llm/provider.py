"""
Text-generation provider protocol.

WHAT: Interface the reply phraser calls to turn a directive into prose
WHY: Swap providers (or a test double) without touching negotiation code
HOW: Protocol with async ping, generate and close
"""

from typing import Protocol

from .types import ChatMessage, LLMResult, ProviderStatus


class LLMProvider(Protocol):
    """Protocol defining the interface all providers must implement."""

    async def ping(self) -> ProviderStatus:
        """Check provider health and availability."""
        ...

    async def generate(
        self,
        messages: list[ChatMessage],
        *,
        temperature: float,
        max_tokens: int,
        stop: list[str] | None = None,
        model: str | None = None
    ) -> LLMResult:
        """Generate a complete response."""
        ...

    async def close(self) -> None:
        """Release network resources."""
        ...
