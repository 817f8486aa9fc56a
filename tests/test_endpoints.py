"""Tests for API endpoints."""

import pytest
from fastapi.testclient import TestClient

from conftest import FakeEngine, RecordingBackend, events
from copilot.main import app
from copilot.models.events import SettledEvent, TokenEvent
from copilot.services.orchestrator import TurnOrchestrator
from copilot.services.session_manager import InMemorySessionManager, get_session_manager
from copilot.tools.registry import ToolsRegistry


@pytest.fixture
def engine():
    return FakeEngine(
        [events(TokenEvent("Hello"), TokenEvent(" there"), SettledEvent())],
        installed=["llama3.2:3b", "my-custom-model:latest"],
    )


@pytest.fixture
def manager(engine):
    tools_registry = ToolsRegistry(backend=RecordingBackend())
    return InMemorySessionManager(
        orchestrator_factory=lambda store: TurnOrchestrator(store, engine, tools_registry),
        engine=engine,
        default_model="llama3.2:3b",
    )


@pytest.fixture
def client(manager):
    app.dependency_overrides[get_session_manager] = lambda: manager
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestHealthEndpoint:
    """Tests for the health check endpoint."""

    def test_health_check_returns_200(self, client):
        """Test that health check returns 200 status."""
        response = client.get("/health")
        assert response.status_code == 200

    def test_health_check_response_structure(self, client):
        """Test that health check returns expected JSON structure."""
        data = client.get("/health").json()

        assert data["status"] == "healthy"
        assert data["version"] == "0.1.0"
        assert data["engine_running"] is True
        assert "timestamp" in data

    def test_health_check_reports_engine_down(self, client, engine):
        """Test that an unreachable engine is reported."""
        engine.running = False
        assert client.get("/health").json()["engine_running"] is False


class TestChatEndpoint:
    """Tests for sending messages."""

    def test_chat_creates_session_and_replies(self, client):
        """Test a full turn through the API."""
        response = client.post("/chat", json={"message": "Hi"})
        data = response.json()

        assert response.status_code == 200
        assert data["response"] == "Hello there"
        assert data["state"] == "completed"
        assert data["error"] is None
        assert len(data["session_id"]) > 0

    def test_chat_with_page_context(self, client, engine):
        """Test that page context is accepted and reported."""
        payload = {
            "message": "Summarize",
            "page_context": {
                "page": {"url": "https://example.com", "title": "Example", "readable": {"text_content": "Body"}}
            },
        }

        data = client.post("/chat", json=payload).json()

        assert data["token_estimate"] > 0
        assert engine.requests[0].context.page.content == "Body"

    def test_chat_with_invalid_session(self, client):
        """Test that unknown session ids are rejected."""
        response = client.post("/chat", json={"message": "Hi", "session_id": "does-not-exist"})

        assert response.status_code == 400
        assert "Invalid session ID" in response.json()["detail"]

    def test_chat_without_model(self, client, manager):
        """Test that a session without a model is rejected with nothing recorded."""
        manager.default_model = None
        session_id = client.post("/sessions").json()["session_id"]

        response = client.post("/chat", json={"message": "Hi", "session_id": session_id})

        assert response.status_code == 400
        assert "No model selected" in response.json()["detail"]
        assert client.get(f"/chat/{session_id}").json()["messages"] == []

    def test_chat_rejects_empty_message(self, client):
        """Test request validation."""
        assert client.post("/chat", json={"message": ""}).status_code == 422


class TestConversationEndpoints:
    """Tests for managing a conversation."""

    @pytest.fixture
    def session_id(self, client):
        return client.post("/sessions").json()["session_id"]

    def test_create_session(self, client):
        """Test that a new session starts empty with the default model."""
        response = client.post("/sessions")
        data = response.json()

        assert response.status_code == 201
        assert data["current_model"] == "llama3.2:3b"
        assert data["messages"] == []
        assert data["turn_state"] == "idle"

    def test_get_conversation(self, client, session_id):
        """Test the conversation snapshot after a turn."""
        client.post("/chat", json={"message": "Hi", "session_id": session_id})

        data = client.get(f"/chat/{session_id}").json()

        assert [m["role"] for m in data["messages"]] == ["user", "assistant"]
        assert data["is_streaming"] is False
        assert data["turn_state"] == "completed"

    def test_get_unknown_conversation(self, client):
        """Test that unknown sessions return 404."""
        assert client.get("/chat/unknown").status_code == 404

    def test_set_model(self, client, session_id):
        """Test switching models."""
        data = client.put(f"/chat/{session_id}/model", json={"model": "llava:7b"}).json()
        assert data["current_model"] == "llava:7b"

    def test_set_planning_mode(self, client, session_id):
        """Test toggling planning mode."""
        data = client.put(f"/chat/{session_id}/planning", json={"enabled": True}).json()
        assert data["planning_mode"] is True

    def test_clear_messages(self, client, session_id):
        """Test clearing the conversation."""
        client.post("/chat", json={"message": "Hi", "session_id": session_id})

        data = client.delete(f"/chat/{session_id}/messages").json()

        assert data["messages"] == []
        assert data["error"] is None

    def test_cancel_when_idle(self, client, session_id):
        """Test that cancelling an idle session reports nothing cancelled."""
        data = client.post(f"/chat/{session_id}/cancel").json()
        assert data == {"session_id": session_id, "cancelled": False}


class TestModelsEndpoint:
    """Tests for listing models."""

    def test_lists_installed_models_with_badges(self, client):
        """Test that installed models carry registry metadata when known."""
        models = client.get("/models").json()

        known, unknown = models
        assert known["name"] == "llama3.2:3b"
        assert known["display_name"] == "Llama 3.2 3B"
        assert known["size"] == "2.0 GB"
        assert "Tools" in known["badges"]
        assert unknown["display_name"] == "my-custom-model:latest"
        assert unknown["badges"] == []
