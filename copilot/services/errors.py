"""Chat errors and classification of inference engine failures."""

from dataclasses import dataclass
from enum import StrEnum


class ErrorCategory(StrEnum):
    """User-facing error categories."""

    NO_MODEL_SELECTED = "no_model_selected"
    CONNECTION_LOST = "connection_lost"
    CONNECTION_REFUSED = "connection_refused"
    TIMEOUT = "timeout"
    UNKNOWN = "unknown"
    TOOL_EXECUTION = "tool_execution"


NO_MODEL_SELECTED_MESSAGE = "No model selected. Please choose a model before sending a message."


class ChatError(Exception):
    """Base class for conversation errors."""


class NoModelSelectedError(ChatError):
    """Raised when a turn is started without a selected model."""

    def __init__(self) -> None:
        super().__init__(NO_MODEL_SELECTED_MESSAGE)


class TurnInProgressError(ChatError):
    """Raised when a second turn is started while one is still outstanding."""


class StaleRoundError(ChatError):
    """Raised when a mutation targets a round that is no longer current."""


class EngineError(ChatError):
    """Raised when the inference engine reports a failure."""


_CONNECTION_LOST_SIGNATURES = (
    "econnreset",
    "connection reset",
    "socket hang up",
    "hang up",
    "epipe",
    "broken pipe",
    "disconnected",
    "remoteprotocolerror",
    "readerror",
)
_CONNECTION_REFUSED_SIGNATURES = ("econnrefused", "connection refused", "connecterror")
_TIMEOUT_SIGNATURES = ("timeout", "timed out", "etimedout")


@dataclass(frozen=True)
class ClassifiedError:
    """An engine failure mapped to a category and a user-facing message."""

    category: ErrorCategory
    message: str


def _describe_chain(error: BaseException) -> str:
    """Type names and messages of an exception and everything it wraps."""
    parts: list[str] = []
    seen: set[int] = set()
    current: BaseException | None = error

    while current is not None and id(current) not in seen:
        seen.add(id(current))
        parts.append(f"{type(current).__name__}: {current}")
        current = current.__cause__ or current.__context__

    return " | ".join(parts)


def classify_engine_error(error: BaseException | str) -> ClassifiedError:
    """Classify a transport failure from its type name and message.

    SDK errors often wrap the transport failure, so the whole
    `__cause__`/`__context__` chain is searched. The raw message reported for
    unknown errors is always the outermost one.
    """
    if isinstance(error, BaseException):
        raw_message = str(error) or type(error).__name__
        haystack = _describe_chain(error).lower()
    else:
        raw_message = error
        haystack = error.lower()

    if any(signature in haystack for signature in _CONNECTION_REFUSED_SIGNATURES):
        return ClassifiedError(
            ErrorCategory.CONNECTION_REFUSED,
            "Cannot connect to the model server. Please make sure it is running and try again.",
        )

    if any(signature in haystack for signature in _TIMEOUT_SIGNATURES):
        return ClassifiedError(
            ErrorCategory.TIMEOUT,
            "The model took too long to respond. It may be overloaded; try again or use a smaller model.",
        )

    if any(signature in haystack for signature in _CONNECTION_LOST_SIGNATURES):
        return ClassifiedError(
            ErrorCategory.CONNECTION_LOST,
            "The connection to the model was lost. Please try again.",
        )

    return ClassifiedError(ErrorCategory.UNKNOWN, raw_message or "Unknown error")
