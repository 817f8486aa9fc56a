"""Inference engine factory."""

from copilot.clients.anthropic import AnthropicEngine
from copilot.clients.base import InferenceEngine
from copilot.clients.ollama import OllamaConfig, OllamaEngine
from copilot.config import Settings


def create_engine(settings: Settings) -> InferenceEngine:
    """Create the inference engine selected in settings.

    Raises:
        ValueError: If the engine is not supported
    """
    if settings.engine == "ollama":
        return OllamaEngine(OllamaConfig(base_url=settings.ollama_base_url))
    if settings.engine == "anthropic":
        return AnthropicEngine(api_key=settings.anthropic_api_key)
    raise ValueError(f"Unsupported inference engine: {settings.engine}")
