"""Conversation message models."""

from datetime import UTC, datetime
from typing import Any, Literal

from cuid2 import cuid_wrapper
from pydantic import BaseModel, Field

cuid = cuid_wrapper()

MessageRole = Literal["user", "assistant", "tool"]


class ToolCall(BaseModel):
    """A tool invocation requested by the model."""

    id: str = Field(default_factory=cuid)
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)


class ToolResult(BaseModel):
    """Outcome of one tool call.

    `error` and `result` may both be set; check `error` first.
    """

    id: str = Field(default_factory=cuid)
    name: str
    result: Any = None
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


class ContextInfo(BaseModel):
    """Snapshot of the page context captured for a user message."""

    page_url: str | None = None
    page_title: str | None = None
    has_screenshot: bool = False
    has_content: bool = False
    has_selected_text: bool = False
    has_history: bool = False
    has_bookmarks: bool = False
    token_estimate: int | None = None
    context_sent: bool = False

    class Config:
        frozen = True


class MessageTiming(BaseModel):
    """Latency instrumentation for an assistant message (epoch seconds)."""

    start_time: float | None = None
    first_token_time: float | None = None
    time_to_first_token: float | None = None
    end_time: float | None = None
    total_time: float | None = None


class Message(BaseModel):
    """A message in the conversation history."""

    id: str = Field(default_factory=cuid)
    role: MessageRole
    content: str = ""
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    images: list[str] | None = None
    context_info: ContextInfo | None = None
    tool_call: ToolCall | None = None
    tool_result: ToolResult | None = None
    is_tool_execution: bool = False
    thinking: str | None = None
    timing: MessageTiming | None = None


class ChatMessage(BaseModel):
    """A message as sent to the inference engine."""

    role: Literal["system", "user", "assistant", "tool"]
    content: str
    images: list[str] | None = None
    tool_name: str | None = None
