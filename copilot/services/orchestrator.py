"""Turn orchestrator: drives one user prompt through to a finished reply.

A turn moves through the states

    idle -> building_context -> requesting
         -> [tools_pending -> executing_tools -> requesting]*
         -> completed | cancelled | failed

Each request to the engine is a round. A round owns the assistant placeholder
it opened; its id is passed to every store mutation so that a stale round can
never write into a newer one.
"""

import asyncio
import json
import time
from collections.abc import Callable
from contextlib import aclosing
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from copilot.clients.base import InferenceEngine
from copilot.models.context import OptimizedContext, PageContext, UseCase
from copilot.models.events import (
    EngineRequest,
    FailedEvent,
    ReasoningEvent,
    SettledEvent,
    TokenEvent,
    ToolCallBatchEvent,
)
from copilot.models.messages import ChatMessage, ContextInfo, Message, ToolCall, ToolResult
from copilot.services.context_builder import (
    HeuristicTokenEstimator,
    TokenEstimator,
    build_optimized_context,
    get_recommended_limits,
)
from copilot.services.conversation_store import ConversationStore
from copilot.services.errors import (
    NO_MODEL_SELECTED_MESSAGE,
    ClassifiedError,
    EngineError,
    ErrorCategory,
    NoModelSelectedError,
    TurnInProgressError,
    classify_engine_error,
)
from copilot.services.model_registry import ModelRegistry, get_model_registry
from copilot.tools.registry import ToolsRegistry
from copilot.utils.logging import get_logger

logger = get_logger(__name__)

ERROR_MESSAGE_PREFIX = "Error: "
STOPPED_MESSAGE = "Generation stopped by user."
NO_DATA_MESSAGE = "No data returned"


class TurnState(StrEnum):
    """Lifecycle of a conversation turn."""

    IDLE = "idle"
    BUILDING_CONTEXT = "building_context"
    REQUESTING = "requesting"
    TOOLS_PENDING = "tools_pending"
    EXECUTING_TOOLS = "executing_tools"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


@dataclass
class TurnResult:
    """Outcome of `send_chat_message`."""

    state: TurnState
    token_estimate: int | None = None
    rounds: int = 0
    error_category: ErrorCategory | None = None


@dataclass
class _Turn:
    model: str
    context: OptimizedContext | None
    attach_context: bool
    token_estimate: int | None
    tools: list[dict[str, Any]] | None
    rounds: int = 0
    round_id: str | None = None
    request_id: str | None = None
    round_started_at: float = 0.0
    first_token_seen: bool = False
    cancelled: bool = False


def build_outbound_messages(messages: list[Message]) -> list[ChatMessage]:
    """Filter conversation history down to what the model should see.

    Drops empty assistant placeholders, error and stop notices, and
    tool-announcement messages. Tool results are kept.
    """
    outbound: list[ChatMessage] = []

    for message in messages:
        if message.is_tool_execution:
            continue

        if message.role == "assistant":
            if not message.content.strip():
                continue
            if message.content.startswith(ERROR_MESSAGE_PREFIX) or message.content == STOPPED_MESSAGE:
                continue

        if message.role == "tool":
            tool_name = message.tool_result.name if message.tool_result else None
            outbound.append(ChatMessage(role="tool", content=message.content, tool_name=tool_name))
        else:
            outbound.append(ChatMessage(role=message.role, content=message.content, images=message.images))

    return outbound


def format_tool_result(result: ToolResult) -> str:
    """Message content reporting a tool's outcome."""
    if result.error is not None:
        return f"Tool {result.name} failed: {result.error}"
    if result.result is None or result.result == "":
        return NO_DATA_MESSAGE
    if isinstance(result.result, str):
        return result.result
    return json.dumps(result.result, indent=2, default=str, ensure_ascii=False)


class TurnOrchestrator:
    """Runs conversation turns against one store and one inference engine."""

    def __init__(
        self,
        store: ConversationStore,
        engine: InferenceEngine,
        tools_registry: ToolsRegistry,
        model_registry: ModelRegistry | None = None,
        estimator: TokenEstimator | None = None,
        max_tool_rounds: int = 10,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize the orchestrator.

        Args:
            store: Conversation state this orchestrator mutates
            engine: Inference engine used for every round
            tools_registry: Tools offered when planning mode is on
            model_registry: Capability lookup (defaults to the shared registry)
            estimator: Token estimator for context payloads
            max_tool_rounds: Rounds allowed before a tool loop is cut off
            clock: Wall clock in seconds, used for message timing
        """
        self.store = store
        self.engine = engine
        self.tools_registry = tools_registry
        self.model_registry = model_registry or get_model_registry()
        self.estimator = estimator or HeuristicTokenEstimator()
        self.max_tool_rounds = max_tool_rounds
        self.clock = clock

        self.state = TurnState.IDLE
        self._turn: _Turn | None = None

    @property
    def is_busy(self) -> bool:
        return self._turn is not None

    async def send_chat_message(
        self,
        prompt: str,
        images: list[str] | None = None,
        page_context: PageContext | None = None,
        use_case: UseCase = "normal",
    ) -> TurnResult:
        """Run one turn to completion, cancellation or failure.

        Raises:
            NoModelSelectedError: If no model is selected; nothing is recorded
            TurnInProgressError: If a turn is already running
        """
        if self._turn is not None:
            raise TurnInProgressError("A response is already being generated for this conversation")

        model = self.store.current_model
        if not model:
            self.store.set_error(NO_MODEL_SELECTED_MESSAGE)
            self.state = TurnState.FAILED
            raise NoModelSelectedError()

        self.store.set_error(None)
        self.state = TurnState.BUILDING_CONTEXT

        is_first_user_message = self.store.count_messages("user") == 0
        context = self._build_context(model, page_context, use_case)
        attach_context = context is not None and is_first_user_message

        context_info = None
        if page_context is not None:
            context_info = _context_info(page_context, context, attach_context)

        self.store.add_message("user", prompt, images=images or None, context_info=context_info)

        # Fixed for the whole turn, follow-up rounds included
        offer_tools = self.store.planning_mode and self.model_registry.supports_tool_calling(model)

        turn = _Turn(
            model=model,
            context=context,
            attach_context=attach_context,
            token_estimate=context.token_estimate if context else None,
            tools=self.tools_registry.to_provider_format() if offer_tools else None,
        )
        self._turn = turn
        self.store.set_streaming(True)

        logger.info(
            f"Starting turn: model={model}, tools={'on' if offer_tools else 'off'}, "
            f"context={'attached' if attach_context else 'none'}"
        )

        try:
            return await self._run_rounds(turn)
        except asyncio.CancelledError:
            if not turn.cancelled:
                turn.cancelled = True
                self._teardown(turn)
                self.state = TurnState.CANCELLED
            raise
        finally:
            if self._turn is turn:
                self._turn = None

    async def cancel_generation(self) -> bool:
        """Stop the running turn.

        Partial content stays in place and one stop notice is appended.
        In-flight tool calls finish but their results are not recorded.

        Returns:
            True if a turn was cancelled
        """
        turn = self._turn
        if turn is None or turn.cancelled:
            return False

        turn.cancelled = True
        self._turn = None
        self._teardown(turn)
        self.store.add_message("assistant", STOPPED_MESSAGE)
        self.state = TurnState.CANCELLED
        logger.info(f"Turn cancelled by user after {turn.rounds} round(s)")

        if turn.request_id is not None:
            try:
                await self.engine.cancel(turn.request_id)
            except Exception as e:
                logger.warning(f"Engine cancel failed: {e}")

        return True

    def _build_context(
        self, model: str, page_context: PageContext | None, use_case: UseCase
    ) -> OptimizedContext | None:
        if page_context is None:
            return None

        is_vision = self.model_registry.supports_vision(model)
        limits = get_recommended_limits(is_vision, bool(page_context.page.screenshot), use_case)
        return build_optimized_context(page_context.page, page_context.browsing, is_vision, limits, self.estimator)

    async def _run_rounds(self, turn: _Turn) -> TurnResult:
        while True:
            self._open_round(turn)

            request = EngineRequest(
                model=turn.model,
                messages=build_outbound_messages(self.store.messages),
                context=turn.context if turn.rounds == 1 and turn.attach_context else None,
                tools=turn.tools,
            )

            self.state = TurnState.REQUESTING
            try:
                tool_calls = await self._stream_round(turn, request)
            except Exception as e:
                if turn.cancelled:
                    return self._cancelled_result(turn)
                return self._fail(turn, classify_engine_error(e))

            if turn.cancelled:
                return self._cancelled_result(turn)

            if not tool_calls:
                return self._complete(turn)

            if turn.rounds >= self.max_tool_rounds:
                logger.warning(f"Tool loop reached max rounds ({self.max_tool_rounds})")
                return self._fail(
                    turn,
                    ClassifiedError(
                        ErrorCategory.UNKNOWN,
                        f"Stopped after {self.max_tool_rounds} tool rounds without a final answer.",
                    ),
                )

            self.state = TurnState.TOOLS_PENDING
            self._close_round(turn)

            self.state = TurnState.EXECUTING_TOOLS
            logger.info(f"Model requested {len(tool_calls)} tool(s) in round {turn.rounds}")
            for call in tool_calls:
                await self._run_tool(turn, call)
                if turn.cancelled:
                    return self._cancelled_result(turn)

    def _open_round(self, turn: _Turn) -> None:
        turn.rounds += 1
        turn.round_id = self.store.start_new_message("assistant")
        turn.round_started_at = self.clock()
        turn.first_token_seen = False
        self.store.update_message_timing(turn.round_id, start_time=turn.round_started_at)
        self.store.reset_streaming_content()
        logger.debug(f"Opened round {turn.rounds} ({turn.round_id})")

    def _close_round(self, turn: _Turn) -> None:
        if turn.round_id is None:
            return

        now = self.clock()
        self.store.update_message_timing(turn.round_id, end_time=now, total_time=now - turn.round_started_at)
        self.store.end_round(turn.round_id)
        turn.round_id = None

    async def _stream_round(self, turn: _Turn, request: EngineRequest) -> list[ToolCall]:
        """Consume one round's event stream and return the requested tool calls."""
        tool_calls: list[ToolCall] = []
        turn.request_id = request.request_id

        try:
            async with aclosing(self.engine.stream_chat(request)) as events:
                async for event in events:
                    if turn.cancelled:
                        break

                    if isinstance(event, TokenEvent):
                        self._on_token(turn, event.text)
                    elif isinstance(event, ReasoningEvent):
                        self.store.append_thinking_to_last_message(event.text, turn.round_id)
                    elif isinstance(event, ToolCallBatchEvent):
                        tool_calls.extend(event.calls)
                    elif isinstance(event, FailedEvent):
                        raise EngineError(event.error)
                    elif isinstance(event, SettledEvent):
                        break
        finally:
            turn.request_id = None

        return tool_calls

    def _on_token(self, turn: _Turn, text: str) -> None:
        self.store.append_to_last_message(text, turn.round_id)
        self.store.append_streaming_content(text)

        if not turn.first_token_seen and turn.round_id is not None:
            turn.first_token_seen = True
            now = self.clock()
            self.store.update_message_timing(
                turn.round_id,
                first_token_time=now,
                time_to_first_token=now - turn.round_started_at,
            )

    async def _run_tool(self, turn: _Turn, call: ToolCall) -> None:
        self.store.add_message(
            "assistant",
            f"Executing tool: {call.name}",
            tool_call=call,
            is_tool_execution=True,
        )

        result = await self.tools_registry.execute_tool(call.name, call.arguments)
        if turn.cancelled:
            return

        if result.error is not None:
            logger.warning(f"Tool {call.name} returned an error: {result.error}")
        self.store.add_message("tool", format_tool_result(result), tool_result=result)

    def _teardown(self, turn: _Turn) -> None:
        self._close_round(turn)
        self.store.set_streaming(False)
        self.store.reset_streaming_content()

    def _complete(self, turn: _Turn) -> TurnResult:
        self._teardown(turn)
        self.state = TurnState.COMPLETED
        logger.info(f"Turn completed in {turn.rounds} round(s)")
        return TurnResult(state=TurnState.COMPLETED, token_estimate=turn.token_estimate, rounds=turn.rounds)

    def _fail(self, turn: _Turn, error: ClassifiedError) -> TurnResult:
        logger.error(f"Turn failed ({error.category}): {error.message}")
        self._teardown(turn)
        self.store.add_message("assistant", f"{ERROR_MESSAGE_PREFIX}{error.message}")
        self.store.set_error(error.message)
        self.state = TurnState.FAILED
        return TurnResult(
            state=TurnState.FAILED,
            token_estimate=turn.token_estimate,
            rounds=turn.rounds,
            error_category=error.category,
        )

    def _cancelled_result(self, turn: _Turn) -> TurnResult:
        return TurnResult(state=TurnState.CANCELLED, token_estimate=turn.token_estimate, rounds=turn.rounds)


def _context_info(page_context: PageContext, context: OptimizedContext | None, sent: bool) -> ContextInfo:
    page = page_context.page
    return ContextInfo(
        page_url=page.url,
        page_title=page.title,
        has_screenshot=bool(page.screenshot),
        has_content=bool(context and context.page.content),
        has_selected_text=bool(page.selected_text),
        has_history=bool(context and context.browsing_history),
        has_bookmarks=bool(context and context.bookmarks),
        token_estimate=context.token_estimate if context else None,
        context_sent=sent,
    )
