"""Conversation state store for one chat session."""

from typing import Any

from copilot.models.messages import Message, MessageRole, MessageTiming
from copilot.services.errors import StaleRoundError
from copilot.utils.logging import get_logger

logger = get_logger(__name__)


class ConversationStore:
    """Authoritative message history and turn flags of one conversation.

    Streaming mutations go to the newest message. While a round is active its
    placeholder id is the round token: appends that pass a `round_id` are
    rejected unless it is both the active round and the tail message.
    """

    def __init__(self, current_model: str | None = None, planning_mode: bool = False):
        self.messages: list[Message] = []
        self.is_streaming: bool = False
        self.current_model: str | None = current_model
        self.streaming_content: str = ""
        self.error: str | None = None
        self.planning_mode: bool = planning_mode
        self.active_round_id: str | None = None

    def add_message(self, role: MessageRole, content: str = "", **fields: Any) -> Message:
        """Append a fully formed message and return it."""
        message = Message(role=role, content=content, **fields)
        self.messages.append(message)
        return message

    def start_new_message(self, role: MessageRole) -> str:
        """Append an empty placeholder, make it the active round and return its id."""
        message = Message(role=role)
        self.messages.append(message)
        self.active_round_id = message.id
        return message.id

    def append_to_last_message(self, text: str, round_id: str | None = None) -> None:
        """Concatenate text onto the newest message."""
        message = self._last_message_for(round_id)
        if message is not None:
            message.content += text

    def append_thinking_to_last_message(self, text: str, round_id: str | None = None) -> None:
        """Concatenate reasoning text onto the newest message's thinking trace."""
        message = self._last_message_for(round_id)
        if message is not None:
            message.thinking = (message.thinking or "") + text

    def _last_message_for(self, round_id: str | None) -> Message | None:
        if not self.messages:
            return None

        last = self.messages[-1]
        if round_id is not None and (round_id != self.active_round_id or last.id != round_id):
            raise StaleRoundError(
                f"Round {round_id} is not the live round (active: {self.active_round_id}, tail: {last.id})"
            )
        return last

    def end_round(self, round_id: str) -> None:
        """Release the round token if it is still held by round_id."""
        if self.active_round_id == round_id:
            self.active_round_id = None

    def get_message(self, message_id: str) -> Message | None:
        for message in reversed(self.messages):
            if message.id == message_id:
                return message
        return None

    def get_last_message(self) -> Message | None:
        return self.messages[-1] if self.messages else None

    def count_messages(self, role: MessageRole) -> int:
        return sum(1 for message in self.messages if message.role == role)

    def update_message_timing(self, message_id: str, **timing: float | None) -> None:
        """Merge timing fields into a message's timing record."""
        message = self.get_message(message_id)
        if message is None:
            logger.warning(f"Timing update for unknown message {message_id}")
            return

        current = message.timing or MessageTiming()
        message.timing = current.model_copy(update=timing)

    def append_streaming_content(self, text: str) -> None:
        self.streaming_content += text

    def reset_streaming_content(self) -> None:
        self.streaming_content = ""

    def set_streaming(self, streaming: bool) -> None:
        self.is_streaming = streaming

    def set_current_model(self, model: str | None) -> None:
        self.current_model = model

    def set_error(self, error: str | None) -> None:
        self.error = error

    def set_planning_mode(self, enabled: bool) -> None:
        self.planning_mode = enabled

    def clear_messages(self) -> None:
        """Reset history, error, streaming buffer and round token together."""
        self.messages = []
        self.error = None
        self.streaming_content = ""
        self.active_round_id = None

    def as_dict(self) -> dict[str, Any]:
        """Return a JSON-ready snapshot of the conversation state."""
        return {
            "messages": [message.model_dump(mode="json") for message in self.messages],
            "is_streaming": self.is_streaming,
            "current_model": self.current_model,
            "streaming_content": self.streaming_content,
            "error": self.error,
            "planning_mode": self.planning_mode,
        }
