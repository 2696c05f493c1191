"""
FastAPI application entry point.

WHAT: Main application setup and wiring
WHY: Build every component once from Settings and hand them to the routes
HOW: create_app() factory with a lifespan that owns the database and
     provider; overrides let tests inject their own collaborators
"""

from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .core.config import Settings, settings as default_settings
from .core.database import Database
from .core.listing_catalog import SqlListingCatalog
from .core.session_store import SessionStore
from .llm.provider_factory import build_provider
from .middleware.error_handler import register_exception_handlers
from .api.v1.router import api_router
from .services.counter_strategies import UniformSource, build_counter_strategy
from .services.orchestrator import NegotiationOrchestrator
from .services.policy_engine import PolicyEngine
from .services.reply_phraser import ReplyPhraser
from .utils.clock import Clock, utcnow
from .utils.logger import setup_logging, get_logger

logger = get_logger(__name__)

# Distinguishes "build the provider from settings" from "no provider"
_FROM_SETTINGS = object()


def build_orchestrator(
    config: Settings,
    database: Database,
    rng: Optional[UniformSource] = None,
    clock: Clock = utcnow,
) -> NegotiationOrchestrator:
    """
    Wire catalog, store, strategy and policy engine into an orchestrator.

    Args:
        config: Application settings
        database: Initialized database
        rng: Random source for the randomized-band strategy
        clock: Source of "now" (naive UTC)
    """
    engine = PolicyEngine(
        strategy=build_counter_strategy(config, rng),
        max_counter_rounds=config.MAX_COUNTER_ROUNDS,
        split_ratio=config.REPEAT_SPLIT_RATIO,
        unit=config.ROUNDING_UNIT,
    )
    return NegotiationOrchestrator(
        store=SessionStore(database, session_ttl=timedelta(days=config.SESSION_TTL_DAYS)),
        catalog=SqlListingCatalog(database),
        engine=engine,
        counter_validity=timedelta(minutes=config.COUNTER_VALIDITY_MINUTES),
        default_minimum_ratio=config.DEFAULT_MINIMUM_RATIO,
        clock=clock,
    )


def create_app(
    config: Optional[Settings] = None,
    database: Optional[Database] = None,
    provider=_FROM_SETTINGS,
    rng: Optional[UniformSource] = None,
    clock: Clock = utcnow,
) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        config: Settings (defaults to the environment-loaded settings)
        database: Database to use instead of one built from DATABASE_URL
        provider: Text-generation provider, None for template replies only
        rng: Random source for counters (seeded from RANDOM_SEED by default)
        clock: Source of "now"

    Returns:
        Configured FastAPI app
    """
    config = config or default_settings
    setup_logging(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Application lifespan manager.

        WHAT: Startup and shutdown logic
        WHY: Initialize DB and provider, close connections cleanly
        HOW: Async context manager for FastAPI lifespan
        """
        # Startup
        logger.info(f"Starting {config.APP_NAME} v{config.APP_VERSION}")
        db = database or Database(config.DATABASE_URL, echo=config.DEBUG)
        db.init()

        llm_provider = build_provider(config) if provider is _FROM_SETTINGS else provider
        orchestrator = build_orchestrator(config, db, rng=rng, clock=clock)

        app.state.settings = config
        app.state.database = db
        app.state.provider = llm_provider
        app.state.store = orchestrator.store
        app.state.orchestrator = orchestrator
        app.state.phraser = ReplyPhraser(
            provider=llm_provider,
            default_minimum_ratio=config.DEFAULT_MINIMUM_RATIO,
            temperature=config.LLM_TEMPERATURE,
            max_tokens=config.LLM_MAX_TOKENS,
            counter_validity_minutes=config.COUNTER_VALIDITY_MINUTES,
        )
        logger.info("Application startup complete")

        yield

        # Shutdown
        logger.info("Shutting down application")
        if llm_provider is not None and provider is _FROM_SETTINGS:
            await llm_provider.close()
        if database is None:
            db.close()
        logger.info("Application shutdown complete")

    app = FastAPI(
        title=config.APP_NAME,
        version=config.APP_VERSION,
        lifespan=lifespan
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.get_cors_origins_list(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Register exception handlers
    register_exception_handlers(app)

    # Include API router
    app.include_router(api_router)

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "app": config.APP_NAME,
            "version": config.APP_VERSION,
            "status": "running"
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "negotiator.main:app",
        host="0.0.0.0",
        port=8000,
        reload=default_settings.DEBUG
    )
