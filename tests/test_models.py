"""Tests for data models."""

import json
from datetime import UTC, datetime

import pytest
from pydantic import ValidationError

from copilot.config import Settings
from copilot.models.context import DEFAULT_LIMITS, PageContext
from copilot.models.conversation import ChatRequest, ChatResponse, HealthResponse
from copilot.models.events import EngineRequest
from copilot.models.messages import ChatMessage, ContextInfo, Message, ToolCall, ToolResult


class TestConversationModels:
    """Tests for API request/response models."""

    def test_chat_request_valid(self):
        """Test valid chat request."""
        request = ChatRequest(message="Hello")
        assert request.message == "Hello"
        assert request.session_id is None
        assert request.use_case == "normal"

    def test_chat_request_from_json(self):
        """Test chat request parsing from JSON with page context."""
        json_data = (
            '{"message": "What is this?", "session_id": "clhqxrisp0001s67w2qccjhqr", '
            '"page_context": {"page": {"url": "https://example.com", "screenshot": "AAAA", "favicon": "x"}}}'
        )
        request = ChatRequest.model_validate(json.loads(json_data))

        assert request.session_id == "clhqxrisp0001s67w2qccjhqr"
        assert isinstance(request.page_context, PageContext)
        assert request.page_context.page.screenshot == "AAAA"

    def test_chat_request_rejects_unknown_use_case(self):
        """Test that use cases are validated."""
        with pytest.raises(ValidationError):
            ChatRequest(message="Hi", use_case="everything")

    def test_chat_response_valid(self):
        """Test valid chat response."""
        response = ChatResponse(session_id="s", response="Hi there!", state="completed")
        assert response.error is None

    def test_health_response_valid(self):
        """Test valid health response."""
        now = datetime.now(UTC)
        response = HealthResponse(status="healthy", timestamp=now, version="1.0.0", engine_running=False)
        assert response.timestamp == now


class TestMessageModels:
    """Tests for conversation message models."""

    def test_message_defaults(self):
        """Test defaults of a new message."""
        message = Message(role="assistant")

        assert message.content == ""
        assert message.is_tool_execution is False
        assert message.thinking is None
        assert message.timestamp.tzinfo is not None

    def test_invalid_role(self):
        """Test that only conversation roles are accepted."""
        with pytest.raises(ValidationError):
            Message(role="system")

    def test_tool_call_gets_id(self):
        """Test that tool calls get an id when the engine gives none."""
        assert ToolCall(name="web_search").id

    def test_tool_result_succeeded(self):
        """Test the success flag of tool results."""
        assert ToolResult(name="t", result=[]).succeeded is True
        assert ToolResult(name="t", error="boom").succeeded is False

    def test_context_info_is_frozen(self):
        """Test that context snapshots cannot be modified."""
        info = ContextInfo(page_url="https://example.com", context_sent=True)
        with pytest.raises(ValidationError):
            info.context_sent = False

    def test_limits_are_frozen(self):
        """Test that shared context profiles cannot be modified."""
        with pytest.raises(ValidationError):
            DEFAULT_LIMITS.max_history_items = 100

    def test_engine_request_has_images(self):
        """Test image detection on engine requests."""
        plain = EngineRequest(model="m", messages=[ChatMessage(role="user", content="hi")])
        with_image = EngineRequest(model="m", messages=[ChatMessage(role="user", content="hi", images=["AAAA"])])

        assert plain.has_images is False
        assert with_image.has_images is True


class TestSettings:
    """Tests for service settings."""

    def test_defaults(self, monkeypatch):
        """Test default settings."""
        monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
        settings = Settings(_env_file=None)

        assert settings.engine == "ollama"
        assert settings.max_tool_rounds == 10
        assert settings.default_model is None
        assert settings.anthropic_api_key is None

    def test_environment_overrides(self, monkeypatch):
        """Test COPILOT_ environment variables."""
        monkeypatch.setenv("COPILOT_DEFAULT_MODEL", "qwen3:8b")
        monkeypatch.setenv("COPILOT_PLANNING_MODE", "true")
        monkeypatch.setenv("ANTHROPIC_API_KEY", "test-key")

        settings = Settings(_env_file=None)

        assert settings.default_model == "qwen3:8b"
        assert settings.planning_mode is True
        assert settings.anthropic_api_key == "test-key"

    def test_max_tool_rounds_must_be_positive(self):
        """Test validation of the tool round limit."""
        with pytest.raises(ValidationError):
            Settings(_env_file=None, max_tool_rounds=0)
