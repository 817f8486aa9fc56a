"""Model capability metadata."""

from typing import Literal

from pydantic import BaseModel

Capability = Literal["vision", "chat", "completion", "embedding", "tool_calling"]


class ModelCapabilities(BaseModel):
    """What a model can do."""

    vision: bool = False
    chat: bool = False
    completion: bool = False
    embedding: bool = False
    tool_calling: bool = False


class ModelMetadata(BaseModel):
    """Registry entry describing a model."""

    id: str
    name: str
    display_name: str
    family: str | None = None
    description: str = ""
    parameter_size: str | None = None
    size: int | None = None
    recommended: bool = False
    capabilities: ModelCapabilities

    class Config:
        frozen = True
