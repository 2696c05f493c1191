"""
Provider factory.

WHAT: Build the configured text-generation provider from settings
WHY: One place decides whether replies use a model or templates
HOW: Return None when disabled; the caller owns the instance and closes it
"""

from typing import Optional

from ..core.config import Settings
from ..utils.logger import get_logger
from .openai_compatible import OpenAICompatibleProvider
from .provider import LLMProvider
from .types import ProviderDisabledError

logger = get_logger(__name__)


def build_provider(config: Settings) -> Optional[LLMProvider]:
    """
    Create a provider from settings.

    Args:
        config: Application settings

    Returns:
        Provider instance, or None when LLM_ENABLED is false

    Raises:
        ProviderDisabledError: Enabled but LLM_BASE_URL is empty
    """
    if not config.LLM_ENABLED:
        logger.info("Text generation disabled, replies use templates")
        return None

    if not config.LLM_BASE_URL.strip():
        raise ProviderDisabledError("LLM_ENABLED is true but LLM_BASE_URL is not set")

    provider = OpenAICompatibleProvider(
        base_url=config.LLM_BASE_URL,
        default_model=config.LLM_DEFAULT_MODEL,
        api_key=config.LLM_API_KEY,
        timeout=config.LLM_TIMEOUT,
        max_retries=config.LLM_MAX_RETRIES,
        retry_delay=config.LLM_RETRY_DELAY,
    )
    logger.info(f"Text generation provider initialized (model: {config.LLM_DEFAULT_MODEL})")
    return provider
