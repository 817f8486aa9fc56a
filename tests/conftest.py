"""Shared fixtures: a scripted inference engine and in-memory tool backends."""

import asyncio
import itertools
from typing import Any

import pytest

from copilot.models.events import EngineEvent, EngineRequest, SettledEvent
from copilot.services.conversation_store import ConversationStore
from copilot.services.orchestrator import TurnOrchestrator
from copilot.tools.registry import ToolsRegistry

PAUSE = object()


class FakeEngine:
    """Inference engine that replays one scripted event list per round.

    Script items are events to yield, exceptions to raise, or `PAUSE`, which
    blocks that request until `resume()` or `cancel()` is called for it.
    """

    def __init__(self, rounds: list[list[Any]] | None = None, installed: list[str] | None = None):
        self.rounds = list(rounds or [])
        self.installed = installed or []
        self.requests: list[EngineRequest] = []
        self.cancelled_ids: list[str] = []
        self.paused_ids: list[str] = []
        self.running = True
        self.paused = asyncio.Event()
        self._resume: dict[str, asyncio.Event] = {}

    @property
    def cancel_calls(self) -> int:
        return len(self.cancelled_ids)

    async def stream_chat(self, request: EngineRequest):
        self.requests.append(request)
        script = self.rounds.pop(0) if self.rounds else [SettledEvent()]
        resume = self._resume.setdefault(request.request_id, asyncio.Event())

        for item in script:
            if item is PAUSE:
                self.paused_ids.append(request.request_id)
                self.paused.set()
                await resume.wait()
                continue
            if isinstance(item, Exception):
                raise item
            yield item

    def resume(self, request_id: str | None = None) -> None:
        targets = [request_id] if request_id is not None else list(self._resume)
        for target in targets:
            self._resume.setdefault(target, asyncio.Event()).set()

    async def cancel(self, request_id: str) -> None:
        self.cancelled_ids.append(request_id)
        self._resume.setdefault(request_id, asyncio.Event()).set()

    async def wait_paused(self, count: int) -> None:
        while len(self.paused_ids) < count:
            await asyncio.sleep(0)

    async def is_running(self) -> bool:
        return self.running

    async def list_models(self) -> list[str]:
        return self.installed


class RecordingBackend:
    """Tool backend returning canned results and recording calls."""

    def __init__(self, results: dict[str, Any] | None = None, failures: dict[str, Exception] | None = None):
        self.results = results or {}
        self.failures = failures or {}
        self.calls: list[tuple[str, dict[str, Any]]] = []

    async def execute(self, tool_name: str, args: dict[str, Any]) -> Any:
        self.calls.append((tool_name, args))
        if tool_name in self.failures:
            raise self.failures[tool_name]
        return self.results.get(tool_name)


class BlockingBackend:
    """Tool backend that waits until released, for cancellation tests."""

    def __init__(self, result: Any = "done"):
        self.result = result
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def execute(self, tool_name: str, args: dict[str, Any]) -> Any:
        self.started.set()
        await self.release.wait()
        return self.result


def make_orchestrator(
    engine: FakeEngine,
    backend: Any = None,
    model: str | None = "llama3.2:3b",
    planning_mode: bool = False,
    **kwargs: Any,
) -> TurnOrchestrator:
    """Build an orchestrator over a fresh store with a deterministic clock."""
    store = ConversationStore(current_model=model, planning_mode=planning_mode)
    ticks = itertools.count(100.0, 1.0)
    return TurnOrchestrator(
        store=store,
        engine=engine,
        tools_registry=ToolsRegistry(backend=backend or RecordingBackend()),
        clock=lambda: next(ticks),
        **kwargs,
    )


def events(*items: EngineEvent | Exception | object) -> list[Any]:
    return list(items)


@pytest.fixture
def store():
    """Empty conversation store with a model selected."""
    return ConversationStore(current_model="llama3.2:3b")


@pytest.fixture
def backend():
    return RecordingBackend()
