"""Interface the orchestrator uses to talk to an inference engine."""

from collections.abc import AsyncGenerator
from typing import Protocol

from copilot.models.events import EngineEvent, EngineRequest


class InferenceEngine(Protocol):
    """Streaming chat backend.

    `stream_chat` yields tokens, reasoning tokens and at most one tool-call
    batch per round, then a `SettledEvent` or `FailedEvent`. Transport errors
    may also be raised from the iterator.

    One engine may serve several conversations at once, so cancellation
    targets a single request by its `request_id`.
    """

    def stream_chat(self, request: EngineRequest) -> AsyncGenerator[EngineEvent, None]:
        """Submit a chat request and stream its events."""
        ...

    async def cancel(self, request_id: str) -> None:
        """Abort the request with this id if it is still outstanding."""
        ...

    async def is_running(self) -> bool:
        """Check whether the engine is reachable."""
        ...

    async def list_models(self) -> list[str]:
        """Names of the models the engine can serve."""
        ...
