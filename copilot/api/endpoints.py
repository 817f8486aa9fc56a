"""API endpoints for the browser copilot service."""

from datetime import UTC, datetime

from fastapi import APIRouter, Depends, HTTPException

from copilot import __version__
from copilot.models.conversation import (
    CancelResponse,
    ChatRequest,
    ChatResponse,
    ConversationStateResponse,
    HealthResponse,
    ModelInfo,
    PlanningModeRequest,
    SetModelRequest,
)
from copilot.services.errors import NoModelSelectedError, TurnInProgressError
from copilot.services.model_registry import format_model_size, get_capability_badges, get_model_registry
from copilot.services.session_manager import ConversationSession, InMemorySessionManager, get_session_manager
from copilot.utils.logging import get_logger, session_log_context

logger = get_logger(__name__)

router = APIRouter()


def _require_session(session_id: str, manager: InMemorySessionManager) -> ConversationSession:
    session = manager.get_session(session_id)
    if not session:
        logger.warning(f"Unknown session ID: {session_id}")
        raise HTTPException(status_code=404, detail=f"Session not found: {session_id}")
    return session


def _state_response(session: ConversationSession) -> ConversationStateResponse:
    return ConversationStateResponse(**session.as_dict())


@router.post("/sessions", response_model=ConversationStateResponse, status_code=201, tags=["Chat"])
async def create_session(manager: InMemorySessionManager = Depends(get_session_manager)) -> ConversationStateResponse:
    """Start an empty conversation with the default model and planning mode."""
    return _state_response(manager.create_session())


@router.post("/chat", response_model=ChatResponse, tags=["Chat"])
async def send_chat(
    request: ChatRequest,
    manager: InMemorySessionManager = Depends(get_session_manager),
) -> ChatResponse:
    """Run one conversation turn and return the assistant's final reply."""
    if request.session_id:
        logger.info(f"Validating existing session: {request.session_id}")
        session = manager.get_session(request.session_id)
        if not session:
            logger.warning(f"Invalid session ID provided: {request.session_id}")
            raise HTTPException(status_code=400, detail=f"Invalid session ID: {request.session_id}")
    else:
        logger.info("Creating new session")
        session = manager.create_session()

    session_id = session.session_id
    logger.info(f"Processing message for session {session_id}: {request.message[:50]}...")

    try:
        with session_log_context(session_id):
            result = await session.orchestrator.send_chat_message(
                request.message,
                images=request.images,
                page_context=request.page_context,
                use_case=request.use_case,
            )
    except NoModelSelectedError as e:
        logger.warning(f"No model selected for session {session_id}")
        raise HTTPException(status_code=400, detail=str(e)) from e
    except TurnInProgressError as e:
        logger.warning(f"Rejected concurrent message for session {session_id}")
        raise HTTPException(status_code=409, detail=str(e)) from e
    except Exception as e:
        logger.error(f"Chat processing error for session {session_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to process message") from e

    last = session.store.get_last_message()
    response_text = last.content if last and last.role == "assistant" else ""

    return ChatResponse(
        session_id=session_id,
        response=response_text,
        state=result.state.value,
        token_estimate=result.token_estimate,
        error=session.store.error,
    )


@router.get("/chat/{session_id}", response_model=ConversationStateResponse, tags=["Chat"])
async def get_conversation(
    session_id: str,
    manager: InMemorySessionManager = Depends(get_session_manager),
) -> ConversationStateResponse:
    """Return the conversation history and turn flags of a session."""
    return _state_response(_require_session(session_id, manager))


@router.post("/chat/{session_id}/cancel", response_model=CancelResponse, tags=["Chat"])
async def cancel_generation(
    session_id: str,
    manager: InMemorySessionManager = Depends(get_session_manager),
) -> CancelResponse:
    """Stop the turn currently running in a session."""
    session = _require_session(session_id, manager)
    cancelled = await session.orchestrator.cancel_generation()
    logger.info(f"Cancel requested for session {session_id}: {'cancelled' if cancelled else 'nothing running'}")
    return CancelResponse(session_id=session_id, cancelled=cancelled)


@router.put("/chat/{session_id}/model", response_model=ConversationStateResponse, tags=["Chat"])
async def set_model(
    session_id: str,
    request: SetModelRequest,
    manager: InMemorySessionManager = Depends(get_session_manager),
) -> ConversationStateResponse:
    """Select the model used by the next turn."""
    session = _require_session(session_id, manager)
    session.store.set_current_model(request.model)
    logger.info(f"Session {session_id} switched model to {request.model}")
    return _state_response(session)


@router.put("/chat/{session_id}/planning", response_model=ConversationStateResponse, tags=["Chat"])
async def set_planning_mode(
    session_id: str,
    request: PlanningModeRequest,
    manager: InMemorySessionManager = Depends(get_session_manager),
) -> ConversationStateResponse:
    """Enable or disable tool use for subsequent turns."""
    session = _require_session(session_id, manager)
    session.store.set_planning_mode(request.enabled)
    return _state_response(session)


@router.delete("/chat/{session_id}/messages", response_model=ConversationStateResponse, tags=["Chat"])
async def clear_messages(
    session_id: str,
    manager: InMemorySessionManager = Depends(get_session_manager),
) -> ConversationStateResponse:
    """Clear the conversation history. Not allowed while a turn is running."""
    session = _require_session(session_id, manager)
    if session.orchestrator.is_busy:
        raise HTTPException(status_code=409, detail="Cannot clear messages while a response is being generated")
    session.store.clear_messages()
    return _state_response(session)


@router.get("/models", response_model=list[ModelInfo], tags=["Models"])
async def list_models(manager: InMemorySessionManager = Depends(get_session_manager)) -> list[ModelInfo]:
    """List installed models annotated with registry capabilities."""
    try:
        installed = await manager.engine.list_models()
    except Exception as e:
        logger.error(f"Failed to list models: {e}", exc_info=True)
        raise HTTPException(status_code=502, detail="Inference engine is unavailable") from e

    registry = get_model_registry()
    models: list[ModelInfo] = []
    for name in installed:
        metadata = registry.find_model_metadata(name)
        models.append(
            ModelInfo(
                name=name,
                display_name=metadata.display_name if metadata else name,
                description=metadata.description if metadata else "",
                size=format_model_size(metadata.size) if metadata and metadata.size else None,
                recommended=metadata.recommended if metadata else False,
                badges=get_capability_badges(metadata),
            )
        )
    return models


@router.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check(manager: InMemorySessionManager = Depends(get_session_manager)) -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(UTC),
        version=__version__,
        engine_running=await manager.engine.is_running(),
    )
