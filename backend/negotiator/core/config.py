"""
Application configuration using pydantic-settings.

WHAT: Centralized config from environment variables
WHY: Type-safe, validated config with sensible defaults
HOW: Pydantic BaseSettings reads from .env and environment
"""

from decimal import Decimal
from pathlib import Path
from typing import Literal, Optional

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    # App metadata
    APP_NAME: str = "Listing Negotiator"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = False

    # Database
    DATABASE_URL: str = "sqlite:///./data/negotiator.db"

    # Text generation (OpenAI-compatible chat completions)
    LLM_ENABLED: bool = False
    LLM_BASE_URL: str = "http://localhost:1234/v1"
    LLM_API_KEY: str = ""
    LLM_DEFAULT_MODEL: str = "gpt-4o-mini"
    LLM_TIMEOUT: int = 30  # seconds
    LLM_MAX_RETRIES: int = 3
    LLM_RETRY_DELAY: float = 2  # seconds, base for exponential backoff
    LLM_TEMPERATURE: float = 0.7
    LLM_MAX_TOKENS: int = 200

    # Negotiation policy
    COUNTER_STRATEGY: Literal["random_band", "aggressiveness"] = "random_band"
    COUNTER_BAND_LOW: float = 0.65
    COUNTER_BAND_HIGH: float = 0.75
    COUNTER_MIN_INCREMENT: Decimal = Decimal("10")
    REPEAT_SPLIT_RATIO: float = 0.5
    MAX_COUNTER_ROUNDS: int = 3
    DEFAULT_MINIMUM_RATIO: Decimal = Decimal("0.7")
    ROUNDING_UNIT: Decimal = Decimal("1")
    RANDOM_SEED: Optional[int] = None

    # Expiry clocks
    COUNTER_VALIDITY_MINUTES: int = 10
    SESSION_TTL_DAYS: int = 7

    # Shared secret for the expiry sweep endpoint (empty disables the check)
    CRON_SECRET: str = ""

    # CORS - accepts comma-separated string or list
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:5173"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = "./data/logs/app.log"

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def parse_cors_origins(cls, v):
        """Parse CORS_ORIGINS from comma-separated string or list."""
        if isinstance(v, list):
            return ",".join(v)
        return v

    @model_validator(mode="after")
    def validate_counter_band(self):
        """Ensure the randomized counter band is a sane sub-interval of [0, 1]."""
        if not 0.0 <= self.COUNTER_BAND_LOW <= self.COUNTER_BAND_HIGH <= 1.0:
            raise ValueError(
                f"Counter band [{self.COUNTER_BAND_LOW}, {self.COUNTER_BAND_HIGH}] must lie within [0, 1]"
            )
        if self.ROUNDING_UNIT <= 0:
            raise ValueError("ROUNDING_UNIT must be positive")
        return self

    def get_cors_origins_list(self) -> list[str]:
        """Get CORS origins as a list."""
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    class Config:
        env_file = [
            str(Path(__file__).parent.parent.parent.parent / ".env"),  # project root
            str(Path(__file__).parent.parent.parent / ".env"),  # backend/.env (fallback)
        ]
        env_file_encoding = "utf-8"
        case_sensitive = True
        extra = "ignore"


# Default instance for the application entry point; components receive
# settings explicitly so tests can build their own.
settings = Settings()
