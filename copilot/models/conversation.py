"""Request and response models for the chat API."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from copilot.models.context import PageContext, UseCase


class ChatRequest(BaseModel):
    """Request model for the chat endpoint."""

    message: str = Field(min_length=1)
    session_id: str | None = None
    images: list[str] | None = None
    page_context: PageContext | None = None
    use_case: UseCase = "normal"


class ChatResponse(BaseModel):
    """Response model for the chat endpoint."""

    session_id: str
    response: str
    state: str
    token_estimate: int | None = None
    error: str | None = None


class SetModelRequest(BaseModel):
    """Select the model used for the next turn."""

    model: str | None


class PlanningModeRequest(BaseModel):
    """Turn tool use on or off."""

    enabled: bool


class ConversationStateResponse(BaseModel):
    """Snapshot of one conversation."""

    session_id: str
    turn_state: str
    messages: list[dict[str, Any]]
    is_streaming: bool
    current_model: str | None
    streaming_content: str
    error: str | None
    planning_mode: bool


class CancelResponse(BaseModel):
    session_id: str
    cancelled: bool


class ModelInfo(BaseModel):
    """An installed model with its registry metadata."""

    name: str
    display_name: str
    description: str = ""
    size: str | None = None
    recommended: bool = False
    badges: list[str] = []


class HealthResponse(BaseModel):
    """Response model for health check endpoint."""

    status: str
    timestamp: datetime
    version: str
    engine_running: bool
