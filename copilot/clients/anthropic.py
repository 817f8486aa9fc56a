"""Anthropic Messages API client exposed as a streaming inference engine."""

import os
from collections.abc import AsyncGenerator
from dataclasses import dataclass
from typing import Any

from anthropic import APIStatusError, AsyncAnthropic
from anthropic.lib.streaming import AsyncMessageStream

from copilot.models.events import (
    EngineEvent,
    EngineRequest,
    ReasoningEvent,
    SettledEvent,
    TokenEvent,
    ToolCallBatchEvent,
)
from copilot.models.messages import ChatMessage, ToolCall
from copilot.services.context_builder import format_context_prompt
from copilot.services.errors import EngineError
from copilot.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class AnthropicConfig:
    """Configuration for the Anthropic engine."""

    max_tokens: int = 4096
    temperature: float = 0.3
    timeout: float = 300.0


class AnthropicEngine:
    """Inference engine backed by the Anthropic Messages streaming API."""

    client: AsyncAnthropic
    config: AnthropicConfig

    def __init__(
        self,
        api_key: str | None = None,
        config: AnthropicConfig | None = None,
        client: AsyncAnthropic | None = None,
    ):
        """Initialize the Anthropic engine.

        Args:
            api_key: Anthropic API key (defaults to ANTHROPIC_API_KEY env var)
            config: Engine configuration
            client: Preconfigured SDK client
        """
        self.config = config or AnthropicConfig()

        if client is None:
            anthropic_api_key = api_key or os.getenv("ANTHROPIC_API_KEY")
            if not anthropic_api_key:
                raise ValueError("ANTHROPIC_API_KEY environment variable is required")
            # Retries are left to the user, who can resend the prompt
            client = AsyncAnthropic(api_key=anthropic_api_key, max_retries=0, timeout=self.config.timeout)

        self.client = client
        self._active_streams: dict[str, AsyncMessageStream] = {}

    def build_params(self, request: EngineRequest) -> dict[str, Any]:
        """Build keyword arguments for `messages.stream`."""
        params: dict[str, Any] = {
            "model": request.model,
            "max_tokens": self.config.max_tokens,
            "temperature": self.config.temperature,
            "messages": [_to_anthropic_message(message) for message in request.messages],
        }

        if request.context is not None:
            params["system"] = format_context_prompt(request.context)
            if request.context.screenshot:
                first_user = next((m for m in params["messages"] if m["role"] == "user"), None)
                if first_user is not None:
                    first_user["content"].insert(0, _image_block(request.context.screenshot))

        if request.tools:
            params["tools"] = [
                {
                    "name": tool["function"]["name"],
                    "description": tool["function"]["description"],
                    "input_schema": tool["function"]["parameters"],
                }
                for tool in request.tools
            ]

        return params

    async def stream_chat(self, request: EngineRequest) -> AsyncGenerator[EngineEvent, None]:
        params = self.build_params(request)
        logger.debug(f"Making Anthropic API call with model: {request.model}, {len(params['messages'])} messages")

        try:
            async with self.client.messages.stream(**params) as stream:
                self._active_streams[request.request_id] = stream
                async for event in stream:
                    if event.type != "content_block_delta":
                        continue
                    if event.delta.type == "text_delta":
                        yield TokenEvent(text=event.delta.text)
                    elif event.delta.type == "thinking_delta":
                        yield ReasoningEvent(text=event.delta.thinking)

                final_message = await stream.get_final_message()
        except APIStatusError as e:
            raise EngineError(f"HTTP {e.status_code}: {e.message}") from e
        finally:
            self._active_streams.pop(request.request_id, None)

        tool_calls = [
            ToolCall(id=block.id, name=block.name, arguments=dict(block.input))
            for block in final_message.content
            if block.type == "tool_use"
        ]
        if tool_calls:
            yield ToolCallBatchEvent(calls=tool_calls)

        logger.debug(f"Response complete - Stop reason: {final_message.stop_reason}")
        yield SettledEvent()

    async def cancel(self, request_id: str) -> None:
        stream = self._active_streams.get(request_id)
        if stream is not None:
            logger.info(f"Cancelling Anthropic request {request_id}")
            await stream.close()

    async def is_running(self) -> bool:
        # Hosted API; reachability is checked by the first request
        return True

    async def list_models(self) -> list[str]:
        page = await self.client.models.list()
        return [model.id for model in page.data]


def _to_anthropic_message(message: ChatMessage) -> dict[str, Any]:
    """Convert an outbound chat message to an Anthropic message dict.

    Tool output is replayed as user text because tool_use ids are not kept in
    the conversation history.
    """
    if message.role == "tool":
        return {
            "role": "user",
            "content": [{"type": "text", "text": f"[Result of tool {message.tool_name}]\n{message.content}"}],
        }

    role = "assistant" if message.role == "assistant" else "user"
    content: list[dict[str, Any]] = [_image_block(image) for image in message.images or []]
    content.append({"type": "text", "text": message.content})
    return {"role": role, "content": content}


def _image_block(image: str) -> dict[str, Any]:
    media_type = "image/png"
    data = image
    if image.startswith("data:") and "," in image:
        header, data = image.split(",", 1)
        media_type = header.removeprefix("data:").split(";", 1)[0] or media_type

    return {"type": "image", "source": {"type": "base64", "media_type": media_type, "data": data}}
