"""Events emitted by an inference engine while a round is streaming."""

from dataclasses import dataclass, field
from typing import Any

from cuid2 import cuid_wrapper

from copilot.models.context import OptimizedContext
from copilot.models.messages import ChatMessage, ToolCall

cuid = cuid_wrapper()


@dataclass
class TokenEvent:
    """A chunk of response text."""

    text: str


@dataclass
class ReasoningEvent:
    """A chunk of the model's thinking trace."""

    text: str


@dataclass
class ToolCallBatchEvent:
    """The model asked for one or more tools to be run."""

    calls: list[ToolCall]


@dataclass
class SettledEvent:
    """The request finished without error."""


@dataclass
class FailedEvent:
    """The engine reported an error for the request."""

    error: str


EngineEvent = TokenEvent | ReasoningEvent | ToolCallBatchEvent | SettledEvent | FailedEvent


@dataclass
class EngineRequest:
    """One round's request to the inference engine."""

    model: str
    messages: list[ChatMessage]
    context: OptimizedContext | None = None
    tools: list[dict[str, Any]] | None = None
    options: dict[str, Any] = field(default_factory=dict)
    # Handle for cancelling this request on a shared engine
    request_id: str = field(default_factory=cuid)

    @property
    def has_images(self) -> bool:
        if self.context is not None and self.context.screenshot:
            return True
        return any(message.images for message in self.messages)
