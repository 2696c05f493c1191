"""
Request-scoped access to application components.

WHAT: FastAPI dependencies returning the components built at startup
WHY: Endpoints receive collaborators explicitly; tests build their own app
HOW: Read from request.app.state, populated by the application lifespan
"""

from fastapi import Request

from ...core.config import Settings
from ...core.database import Database
from ...core.session_store import SessionStore
from ...services.orchestrator import NegotiationOrchestrator
from ...services.reply_phraser import ReplyPhraser


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_database(request: Request) -> Database:
    return request.app.state.database


def get_store(request: Request) -> SessionStore:
    return request.app.state.store


def get_orchestrator(request: Request) -> NegotiationOrchestrator:
    return request.app.state.orchestrator


def get_phraser(request: Request) -> ReplyPhraser:
    return request.app.state.phraser


def get_provider(request: Request):
    """Configured text-generation provider, or None."""
    return request.app.state.provider
