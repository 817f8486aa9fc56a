"""Ollama chat client streaming NDJSON responses."""

import json
from collections.abc import AsyncGenerator
from dataclasses import dataclass
from typing import Any

import httpx

from copilot.models.events import (
    EngineEvent,
    EngineRequest,
    ReasoningEvent,
    SettledEvent,
    TokenEvent,
    ToolCallBatchEvent,
)
from copilot.models.messages import ToolCall
from copilot.services.context_builder import format_context_prompt
from copilot.services.errors import EngineError
from copilot.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class OllamaConfig:
    """Configuration for the Ollama client."""

    base_url: str = "http://localhost:11434"
    connect_timeout: float = 10.0
    # Vision requests can take minutes before the first chunk arrives
    text_timeout: float = 60.0
    image_timeout: float = 300.0
    health_timeout: float = 3.0


class OllamaEngine:
    """Inference engine backed by a local Ollama server."""

    def __init__(self, config: OllamaConfig | None = None, client: httpx.AsyncClient | None = None):
        """Initialize the Ollama client.

        Args:
            config: Client configuration
            client: HTTP client (tests pass one with a mock transport)
        """
        self.config = config or OllamaConfig()
        self.client = client or httpx.AsyncClient(base_url=self.config.base_url)
        self._active_responses: dict[str, httpx.Response] = {}

    def build_payload(self, request: EngineRequest) -> dict[str, Any]:
        """Build the /api/chat body for a request.

        Context goes in front of the first user message rather than in a
        system message; some vision models fail on system prompts while
        streaming.
        """
        messages = [message.model_dump(exclude_none=True) for message in request.messages]

        if request.context is not None:
            first_user = next((m for m in messages if m["role"] == "user"), None)
            if first_user is not None:
                context_prompt = format_context_prompt(request.context)
                if context_prompt:
                    first_user["content"] = f"{context_prompt}\n\n{first_user['content']}"
                if request.context.screenshot:
                    first_user["images"] = [*first_user.get("images", []), _strip_data_url(request.context.screenshot)]

        for message in messages:
            if "images" in message:
                message["images"] = [_strip_data_url(image) for image in message["images"]]

        payload: dict[str, Any] = {"model": request.model, "messages": messages, "stream": True}
        if request.tools:
            payload["tools"] = request.tools
        if request.options:
            payload["options"] = request.options
        return payload

    async def stream_chat(self, request: EngineRequest) -> AsyncGenerator[EngineEvent, None]:
        payload = self.build_payload(request)
        read_timeout = self.config.image_timeout if request.has_images else self.config.text_timeout
        timeout = httpx.Timeout(read_timeout, connect=self.config.connect_timeout)

        logger.debug(
            f"Sending chat request: model={request.model}, messages={len(payload['messages'])}, "
            f"tools={len(request.tools or [])}, timeout={read_timeout}s"
        )

        async with self.client.stream("POST", "/api/chat", json=payload, timeout=timeout) as response:
            self._active_responses[request.request_id] = response
            try:
                if response.status_code != 200:
                    body = (await response.aread()).decode("utf-8", errors="replace")
                    raise EngineError(f"HTTP {response.status_code}: {body}")

                async for line in response.aiter_lines():
                    if not line.strip():
                        continue

                    try:
                        data = json.loads(line)
                    except json.JSONDecodeError:
                        logger.warning(f"Failed to parse response line: {line[:200]}")
                        continue

                    if data.get("error"):
                        raise EngineError(str(data["error"]))

                    for event in _events_from_chunk(data):
                        yield event

                    if data.get("done"):
                        break
            finally:
                self._active_responses.pop(request.request_id, None)

        yield SettledEvent()

    async def cancel(self, request_id: str) -> None:
        response = self._active_responses.get(request_id)
        if response is not None:
            logger.info(f"Cancelling Ollama request {request_id}")
            await response.aclose()

    async def is_running(self) -> bool:
        try:
            response = await self.client.get("/api/version", timeout=self.config.health_timeout)
        except httpx.HTTPError:
            return False
        return response.status_code == 200

    async def list_models(self) -> list[str]:
        """Names of the models installed in Ollama."""
        response = await self.client.get("/api/tags", timeout=self.config.health_timeout)
        response.raise_for_status()
        return [model["name"] for model in response.json().get("models", [])]

    async def aclose(self) -> None:
        await self.client.aclose()


def _events_from_chunk(data: dict[str, Any]) -> list[EngineEvent]:
    """Translate one streamed chunk into engine events."""
    message = data.get("message") or {}
    events: list[EngineEvent] = []

    raw_calls = message.get("tool_calls") or []
    if raw_calls:
        events.append(ToolCallBatchEvent(calls=[_parse_tool_call(raw) for raw in raw_calls]))

    if message.get("thinking"):
        events.append(ReasoningEvent(text=message["thinking"]))

    if message.get("content"):
        events.append(TokenEvent(text=message["content"]))

    return events


def _parse_tool_call(raw: dict[str, Any]) -> ToolCall:
    function = raw.get("function") or {}
    arguments = function.get("arguments") or {}

    if isinstance(arguments, str):
        try:
            arguments = json.loads(arguments)
        except json.JSONDecodeError:
            logger.warning(f"Tool call arguments are not JSON: {arguments[:200]}")
            arguments = {}

    if raw.get("id"):
        return ToolCall(id=raw["id"], name=function.get("name", ""), arguments=arguments)
    return ToolCall(name=function.get("name", ""), arguments=arguments)


def _strip_data_url(image: str) -> str:
    """Ollama expects bare base64, not data URLs."""
    if image.startswith("data:") and "," in image:
        return image.split(",", 1)[1]
    return image
