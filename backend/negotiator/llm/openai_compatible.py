"""
OpenAI-compatible chat completions provider.

WHAT: Reply generation through any /chat/completions endpoint
WHY: Works with hosted APIs and local servers (LM Studio, Ollama, vLLM) alike
HOW: HTTPX async client with bearer auth and retries with exponential backoff
"""

import asyncio
import json
import re

import httpx

from .types import (
    ChatMessage,
    LLMResult,
    ProviderStatus,
    ProviderTimeoutError,
    ProviderUnavailableError,
    ProviderResponseError,
)
from ..utils.logger import get_logger

logger = get_logger(__name__)


class OpenAICompatibleProvider:
    """Chat completions provider with retry logic."""

    def __init__(
        self,
        base_url: str,
        default_model: str,
        api_key: str = "",
        timeout: float = 30.0,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        client: httpx.AsyncClient | None = None,
    ):
        """
        Initialize provider with an httpx client.

        Args:
            base_url: API root, e.g. https://api.openai.com/v1
            default_model: Model used when a call does not name one
            api_key: Bearer token; omitted from headers when empty
            timeout: Read timeout in seconds
            max_retries: Attempts for timeouts, connection errors and 5xx
            retry_delay: Base delay for exponential backoff
            client: Pre-built client (tests)
        """
        self.base_url = base_url.rstrip("/")
        self.default_model = default_model
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.retry_delay = retry_delay

        headers = {}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"

        self.client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(5.0, read=self.timeout),
            limits=httpx.Limits(
                max_keepalive_connections=10,
                max_connections=20
            ),
            headers=headers,
        )

    @staticmethod
    def _strip_thinking_blocks(text: str) -> str:
        """Remove <think>...</think> blocks some reasoning models emit."""
        text = re.sub(r'<think(?:ing)?>.*?</think(?:ing)?>\s*', '', text, flags=re.DOTALL | re.IGNORECASE)
        return text.strip()

    async def ping(self) -> ProviderStatus:
        """
        Check provider availability.

        Returns:
            ProviderStatus with availability and model list
        """
        try:
            response = await self.client.get(f"{self.base_url}/models", timeout=5.0)
            response.raise_for_status()
            data = response.json()

            models = [m.get("id") for m in data.get("data", [])]

            return ProviderStatus(
                available=True,
                base_url=self.base_url,
                models=models if models else None
            )
        except httpx.TimeoutException:
            logger.warning("Provider ping timed out")
            return ProviderStatus(available=False, base_url=self.base_url, error="Connection timeout")
        except httpx.ConnectError:
            logger.warning("Provider not reachable")
            return ProviderStatus(available=False, base_url=self.base_url, error="Connection refused")
        except Exception as e:
            logger.error(f"Provider ping failed: {e}")
            return ProviderStatus(available=False, base_url=self.base_url, error=str(e))

    async def generate(
        self,
        messages: list[ChatMessage],
        *,
        temperature: float,
        max_tokens: int,
        stop: list[str] | None = None,
        model: str | None = None
    ) -> LLMResult:
        """
        Generate a complete response.

        Args:
            messages: Conversation history
            temperature: Sampling temperature
            max_tokens: Maximum tokens to generate
            stop: Optional stop sequences
            model: Optional model name (uses default_model if not provided)

        Returns:
            LLMResult with text, usage, and model

        Raises:
            ProviderTimeoutError: Request timed out
            ProviderUnavailableError: Provider not reachable
            ProviderResponseError: Invalid or error response
        """
        model_to_use = model or self.default_model

        payload = {
            "model": model_to_use,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
            "stream": False,
        }
        if stop:
            payload["stop"] = stop

        # Retry logic with exponential backoff
        for attempt in range(self.max_retries):
            try:
                response = await self.client.post(
                    f"{self.base_url}/chat/completions",
                    json=payload
                )
                response.raise_for_status()
                data = response.json()

                raw_text = data["choices"][0]["message"]["content"]
                usage = data.get("usage", {})
                response_model = data.get("model", model_to_use)

                logger.info(f"Provider generate success (model: {response_model}, tokens: {usage.get('total_tokens', 'unknown')})")

                return LLMResult(
                    text=self._strip_thinking_blocks(raw_text or ""),
                    usage=usage,
                    model=response_model
                )

            except httpx.TimeoutException as e:
                logger.warning(f"Provider timeout (attempt {attempt + 1}/{self.max_retries})")
                if attempt == self.max_retries - 1:
                    raise ProviderTimeoutError(f"Request timed out after {self.max_retries} attempts") from e
                await asyncio.sleep(self.retry_delay * (2 ** attempt))

            except httpx.ConnectError as e:
                logger.error(f"Provider connection refused (attempt {attempt + 1}/{self.max_retries})")
                if attempt == self.max_retries - 1:
                    raise ProviderUnavailableError("Provider is not reachable") from e
                await asyncio.sleep(self.retry_delay * (2 ** attempt))

            except httpx.RequestError as e:
                # Dropped connections, protocol errors and other transport failures
                logger.error(f"Provider transport error: {e!r} (attempt {attempt + 1}/{self.max_retries})")
                if attempt == self.max_retries - 1:
                    raise ProviderUnavailableError(f"Transport error: {type(e).__name__}") from e
                await asyncio.sleep(self.retry_delay * (2 ** attempt))

            except httpx.HTTPStatusError as e:
                if e.response.status_code >= 500:
                    logger.error(f"Provider server error {e.response.status_code} (attempt {attempt + 1}/{self.max_retries})")
                    if attempt == self.max_retries - 1:
                        raise ProviderResponseError(f"Server error: {e.response.status_code}") from e
                    await asyncio.sleep(self.retry_delay * (2 ** attempt))
                else:
                    # Client errors don't retry
                    raise ProviderResponseError(f"HTTP {e.response.status_code}: {e.response.text}") from e

            except (KeyError, IndexError, TypeError, json.JSONDecodeError) as e:
                logger.error(f"Invalid response from provider: {e}")
                raise ProviderResponseError(f"Invalid response format: {e}") from e

    async def close(self):
        """Close the HTTP client."""
        await self.client.aclose()
