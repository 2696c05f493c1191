"""
Integration tests for the negotiation API.

WHAT: Test the HTTP contract, error mapping and maintenance endpoints
WHY: The chat widget and cron job depend on exact field names and codes
HOW: FastAPI TestClient over an app built with test settings and database
"""

from datetime import timedelta

import httpx
import pytest
import respx
from fastapi.testclient import TestClient

from negotiator.llm.openai_compatible import OpenAICompatibleProvider
from negotiator.main import create_app
from negotiator.utils.exceptions import ConcurrentAppendConflict
from tests.fixtures.doubles import FixedRandom
from tests.fixtures.mock_llm import MockLLMProvider

BUYER = "buyer@example.com"


def message(text, item_id="item-1", conversation_id=None, buyer_email=BUYER):
    payload = {"item_id": item_id, "message": text, "buyer_email": buyer_email}
    if conversation_id:
        payload["conversation_id"] = conversation_id
    return payload


@pytest.fixture
def make_client(test_settings, database, clock, add_listing):
    """Build a TestClient; keyword overrides go to create_app."""
    add_listing()
    clients = []

    def _make(config=None, provider=None):
        app = create_app(
            config=config or test_settings,
            database=database,
            provider=provider,
            rng=FixedRandom(0.70),
            clock=clock,
        )
        client = TestClient(app)
        client.__enter__()
        clients.append(client)
        return client

    yield _make

    for client in clients:
        client.__exit__(None, None, None)


@pytest.fixture
def client(make_client):
    return make_client()


@pytest.mark.integration
class TestNegotiationMessage:
    """POST /api/v1/negotiation/message"""

    def test_counter_offer(self, client, clock):
        response = client.post("/api/v1/negotiation/message", json=message("Would you take $80?"))

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["is_offer"] is True
        assert data["offer_countered"] is True
        assert data["offer_accepted"] is False
        assert data["offer_amount"] == 80.0
        assert data["counter_offer_amount"] == 94.0
        assert data["is_final"] is False
        assert data["conversation_id"]
        assert data["expires_at"].startswith((clock.now + timedelta(minutes=10)).isoformat())
        assert "$94" in data["response"]
        assert "$70" not in data["response"]

    def test_full_conversation(self, client):
        first = client.post("/api/v1/negotiation/message", json=message("Would you take $80?")).json()
        conversation_id = first["conversation_id"]

        second = client.post(
            "/api/v1/negotiation/message", json=message("How about $90?", conversation_id=conversation_id)
        ).json()
        assert second["counter_offer_amount"] == 92.0
        assert second["is_final"] is True

        third = client.post(
            "/api/v1/negotiation/message", json=message("I can do $91", conversation_id=conversation_id)
        ).json()
        assert third["offer_accepted"] is True
        assert third["counter_offer_amount"] is None
        assert third["session_status"] == "offer_accepted"

    def test_decline_never_discloses_floor(self, client):
        data = client.post("/api/v1/negotiation/message", json=message("I can offer $50")).json()

        assert data["offer_accepted"] is False
        assert data["offer_countered"] is False
        assert data["counter_offer_amount"] is None
        assert "70" not in data["response"]

    def test_general_question(self, client):
        data = client.post("/api/v1/negotiation/message", json=message("Is this still available?")).json()

        assert data["is_offer"] is False
        assert data["conversation_id"] is None
        assert "$100" in data["response"]

    def test_email_is_case_insensitive(self, client):
        first = client.post("/api/v1/negotiation/message", json=message("Would you take $80?")).json()
        second = client.post(
            "/api/v1/negotiation/message",
            json=message("How about $90?", buyer_email="Buyer@Example.com"),
        ).json()
        assert second["conversation_id"] == first["conversation_id"]

    def test_provider_reply(self, make_client):
        provider = MockLLMProvider(responses=["Happy to meet you at $94!"])
        client = make_client(provider=provider)

        data = client.post("/api/v1/negotiation/message", json=message("Would you take $80?")).json()

        assert data["response"] == "Happy to meet you at $94!"
        assert provider.call_count == 1

    def test_provider_failure_uses_template(self, make_client):
        client = make_client(provider=MockLLMProvider(should_fail=True))

        response = client.post("/api/v1/negotiation/message", json=message("Would you take $80?"))

        assert response.status_code == 200
        assert "$94" in response.json()["response"]

    def test_dropped_provider_connection_uses_template(self, make_client, store, clock):
        provider = OpenAICompatibleProvider(
            base_url="http://llm.test/v1",
            default_model="test-model",
            max_retries=2,
            retry_delay=0,
        )
        client = make_client(provider=provider)

        with respx.mock(assert_all_called=False) as llm:
            route = llm.post("http://llm.test/v1/chat/completions").mock(
                side_effect=httpx.ReadError("connection reset")
            )
            response = client.post("/api/v1/negotiation/message", json=message("I'll pay $80"))

        assert response.status_code == 200
        data = response.json()
        assert data["counter_offer_amount"] == 94.0
        assert "$94" in data["response"]
        assert route.call_count == 2

        session = store.find_live("item-1", BUYER, clock.now)
        assert session.id == data["conversation_id"]
        assert len(session.rounds) == 1


@pytest.mark.integration
class TestErrorMapping:
    """Business exceptions map to status codes and the standard body."""

    def test_listing_not_found(self, client):
        response = client.post("/api/v1/negotiation/message", json=message("I'll pay $80", item_id="missing"))

        assert response.status_code == 404
        data = response.json()
        assert data["success"] is False
        assert data["error"] == "LISTING_NOT_FOUND"
        assert "timestamp" in data

    def test_listing_unavailable(self, client, add_listing):
        add_listing("sold-item", status="sold")
        response = client.post("/api/v1/negotiation/message", json=message("I'll pay $80", item_id="sold-item"))

        assert response.status_code == 409
        assert response.json()["error"] == "LISTING_UNAVAILABLE"

    def test_concurrent_conflict_is_transient(self, client, monkeypatch):
        def conflict(*args, **kwargs):
            raise ConcurrentAppendConflict("session-1", 2)

        monkeypatch.setattr(client.app.state.orchestrator, "handle_message", conflict)
        response = client.post("/api/v1/negotiation/message", json=message("I'll pay $80"))

        assert response.status_code == 503
        assert response.headers["Retry-After"] == "1"
        assert response.json()["error"] == "CONCURRENT_APPEND_CONFLICT"

    @pytest.mark.parametrize("payload", [
        {"item_id": "item-1", "message": "I'll pay $80"},
        {"item_id": "item-1", "message": "I'll pay $80", "buyer_email": "not-an-email"},
        {"item_id": "item-1", "message": "   ", "buyer_email": BUYER},
        {"item_id": "", "message": "I'll pay $80", "buyer_email": BUYER},
    ])
    def test_validation_errors(self, client, payload):
        response = client.post("/api/v1/negotiation/message", json=payload)

        assert response.status_code == 400
        data = response.json()
        assert data["error"] == "VALIDATION_ERROR"
        assert data["details"]


@pytest.mark.integration
class TestGetNegotiation:
    """GET /api/v1/negotiation/{conversation_id}"""

    def test_session_view(self, client):
        first = client.post("/api/v1/negotiation/message", json=message("Would you take $80?")).json()

        response = client.get(f"/api/v1/negotiation/{first['conversation_id']}")

        assert response.status_code == 200
        data = response.json()
        assert data["conversation_id"] == first["conversation_id"]
        assert data["item_id"] == "item-1"
        assert data["buyer_email"] == BUYER
        assert data["status"] == "negotiating"
        assert data["current_offer"] == 80.0
        assert len(data["rounds"]) == 1
        assert data["rounds"][0]["decision"] == "countered"
        assert data["rounds"][0]["counter_amount"] == 94.0
        assert "minimum" not in response.text

    def test_unknown_session(self, client):
        response = client.get("/api/v1/negotiation/missing")

        assert response.status_code == 404
        assert response.json()["error"] == "SESSION_NOT_FOUND"


@pytest.mark.integration
class TestExpireStale:
    """POST /api/v1/negotiation/expire-stale"""

    def test_sweep_without_secret(self, client, clock):
        client.post("/api/v1/negotiation/message", json=message("Would you take $80?"))
        clock.advance(days=8)

        response = client.post("/api/v1/negotiation/expire-stale")

        assert response.status_code == 200
        assert response.json()["expired_count"] == 1

    def test_secret_required_when_configured(self, make_client, test_settings):
        client = make_client(config=test_settings.model_copy(update={"CRON_SECRET": "s3cret"}))

        assert client.post("/api/v1/negotiation/expire-stale").status_code == 401
        assert client.post(
            "/api/v1/negotiation/expire-stale", headers={"Authorization": "Bearer wrong"}
        ).status_code == 401

        response = client.post("/api/v1/negotiation/expire-stale", headers={"Authorization": "Bearer s3cret"})
        assert response.status_code == 200
        assert response.json()["expired_count"] == 0


@pytest.mark.integration
class TestStatus:
    """Health and root endpoints."""

    def test_health_without_provider(self, client):
        response = client.get("/api/v1/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["components"]["database"]["available"] is True
        assert data["components"]["llm"]["enabled"] is False

    def test_health_with_provider(self, make_client):
        client = make_client(provider=MockLLMProvider())
        data = client.get("/api/v1/health").json()
        assert data["components"]["llm"] == {"enabled": True, "available": True, "error": None}

    def test_root(self, client, test_settings):
        data = client.get("/").json()
        assert data["app"] == test_settings.APP_NAME
        assert data["status"] == "running"
