"""Tests for the Anthropic inference engine and the engine factory."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock

import httpx
import pytest
from anthropic import APIConnectionError

from copilot.clients.anthropic import AnthropicEngine
from copilot.clients.factory import create_engine
from copilot.clients.ollama import OllamaEngine
from copilot.config import Settings
from copilot.models.context import OptimizedContext, PageContent
from copilot.models.events import EngineRequest, SettledEvent, TokenEvent, ToolCallBatchEvent
from copilot.models.messages import ChatMessage
from copilot.services.errors import ErrorCategory, classify_engine_error


class FakeStream:
    """Stand-in for the SDK's message stream context manager."""

    def __init__(self, stream_events, final_message):
        self._events = stream_events
        self._final_message = final_message

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return False

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for event in self._events:
            yield event

    async def get_final_message(self):
        return self._final_message

    async def close(self):
        pass


def _text_delta(text: str):
    return SimpleNamespace(type="content_block_delta", delta=SimpleNamespace(type="text_delta", text=text))


class TestBuildParams:
    """Tests for request translation."""

    def test_context_goes_to_system_prompt(self):
        """Test that context becomes the system prompt and the screenshot an image block."""
        engine = AnthropicEngine(client=Mock())
        request = EngineRequest(
            model="claude-sonnet-4-5",
            messages=[ChatMessage(role="user", content="What is this?")],
            context=OptimizedContext(
                page=PageContent(url="https://example.com", title="Example"),
                screenshot="data:image/jpeg;base64,AAAA",
            ),
        )

        params = engine.build_params(request)

        assert params["system"].startswith("## Current Page Context")
        content = params["messages"][0]["content"]
        assert content[0] == {"type": "image", "source": {"type": "base64", "media_type": "image/jpeg", "data": "AAAA"}}
        assert content[-1] == {"type": "text", "text": "What is this?"}

    def test_tools_and_tool_results(self):
        """Test tool schema translation and tool output replay."""
        engine = AnthropicEngine(client=Mock())
        schema = {"type": "object", "properties": {}, "required": []}
        request = EngineRequest(
            model="claude-sonnet-4-5",
            messages=[
                ChatMessage(role="user", content="Where am I?"),
                ChatMessage(role="tool", content="title: Home", tool_name="get_page_metadata"),
            ],
            tools=[{"type": "function", "function": {"name": "get_page_metadata", "description": "d", "parameters": schema}}],
        )

        params = engine.build_params(request)

        assert params["tools"] == [{"name": "get_page_metadata", "description": "d", "input_schema": schema}]
        assert params["messages"][1]["role"] == "user"
        assert "title: Home" in params["messages"][1]["content"][0]["text"]

    def test_requires_api_key(self, monkeypatch):
        """Test that an API key is required without a client."""
        monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
        with pytest.raises(ValueError, match="ANTHROPIC_API_KEY"):
            AnthropicEngine()


class TestStreamChat:
    """Tests for streaming through the SDK."""

    @pytest.mark.asyncio
    async def test_text_and_tool_use(self):
        """Test that text deltas stream and tool_use blocks become one batch."""
        final_message = SimpleNamespace(
            stop_reason="tool_use",
            content=[
                SimpleNamespace(type="text", text="Checking"),
                SimpleNamespace(type="tool_use", id="toolu_1", name="web_search", input={"query": "python"}),
            ],
        )
        client = Mock()
        client.messages.stream.return_value = FakeStream([_text_delta("Check"), _text_delta("ing")], final_message)
        engine = AnthropicEngine(client=client)

        request = EngineRequest(model="claude-sonnet-4-5", messages=[ChatMessage(role="user", content="Search")])
        events = [event async for event in engine.stream_chat(request)]

        assert events[:2] == [TokenEvent("Check"), TokenEvent("ing")]
        assert isinstance(events[2], ToolCallBatchEvent)
        assert events[2].calls[0].id == "toolu_1"
        assert events[2].calls[0].arguments == {"query": "python"}
        assert events[3] == SettledEvent()

    @pytest.mark.asyncio
    async def test_connection_error_keeps_its_cause(self):
        """Test that SDK connection errors reach the caller with the transport cause attached."""
        request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
        error = APIConnectionError(request=request)
        error.__cause__ = httpx.ConnectError("All connection attempts failed", request=request)
        client = Mock()
        client.messages.stream.side_effect = error
        engine = AnthropicEngine(client=client)

        chat = EngineRequest(model="claude-sonnet-4-5", messages=[ChatMessage(role="user", content="Hi")])
        with pytest.raises(APIConnectionError) as exc_info:
            [event async for event in engine.stream_chat(chat)]

        assert classify_engine_error(exc_info.value).category == ErrorCategory.CONNECTION_REFUSED
        assert engine._active_streams == {}


class TestCancel:
    """Tests for per-request cancellation."""

    @pytest.mark.asyncio
    async def test_cancel_closes_only_that_stream(self):
        """Test that cancelling one request leaves other open streams alone."""
        engine = AnthropicEngine(client=Mock())
        first, second = Mock(close=AsyncMock()), Mock(close=AsyncMock())
        engine._active_streams = {"req-1": first, "req-2": second}

        await engine.cancel("req-2")

        second.close.assert_awaited_once()
        first.close.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_cancel_unknown_request_is_noop(self):
        """Test that cancelling a finished request does nothing."""
        engine = AnthropicEngine(client=Mock())
        await engine.cancel("missing")


class TestEngineFactory:
    """Tests for selecting the engine from settings."""

    def test_ollama(self):
        """Test the default engine."""
        engine = create_engine(Settings(_env_file=None, ollama_base_url="http://gpu-box:11434"))

        assert isinstance(engine, OllamaEngine)
        assert engine.config.base_url == "http://gpu-box:11434"

    def test_anthropic(self):
        """Test the hosted engine."""
        engine = create_engine(Settings(_env_file=None, engine="anthropic", anthropic_api_key="test-key"))
        assert isinstance(engine, AnthropicEngine)
