"""Static registry of model capabilities."""

from collections.abc import Iterable
from typing import ClassVar

from copilot.models.registry import Capability, ModelCapabilities, ModelMetadata

_CHAT_TOOLS = ModelCapabilities(chat=True, completion=True, tool_calling=True)
_CHAT_ONLY = ModelCapabilities(chat=True, completion=True)
_VISION_CHAT = ModelCapabilities(vision=True, chat=True, completion=True)
_VISION_TOOLS = ModelCapabilities(vision=True, chat=True, completion=True, tool_calling=True)
_EMBEDDING = ModelCapabilities(embedding=True)

GB = 1024 * 1024 * 1024
MB = 1024 * 1024


class ModelRegistry:
    """Lookup table answering which capabilities a model has.

    Lookups are pure: the same name always resolves to the same entry.
    """

    MODELS: ClassVar[list[ModelMetadata]] = [
        ModelMetadata(
            id="llama3.2-3b",
            name="llama3.2:3b",
            display_name="Llama 3.2 3B",
            family="llama",
            description="Small general purpose chat model with tool calling.",
            parameter_size="3B",
            size=2 * GB,
            recommended=True,
            capabilities=_CHAT_TOOLS,
        ),
        ModelMetadata(
            id="llama3.2-vision-11b",
            name="llama3.2-vision:11b",
            display_name="Llama 3.2 Vision 11B",
            family="llama-vision",
            description="Vision model that can read screenshots.",
            parameter_size="11B",
            size=int(7.9 * GB),
            recommended=True,
            capabilities=_VISION_CHAT,
        ),
        ModelMetadata(
            id="llama3.1-8b",
            name="llama3.1:8b",
            display_name="Llama 3.1 8B",
            family="llama",
            description="General purpose chat model with tool calling.",
            parameter_size="8B",
            size=int(4.9 * GB),
            capabilities=_CHAT_TOOLS,
        ),
        ModelMetadata(
            id="qwen3-8b",
            name="qwen3:8b",
            display_name="Qwen 3 8B",
            family="qwen",
            description="Reasoning model that streams its thinking separately.",
            parameter_size="8B",
            size=int(5.2 * GB),
            recommended=True,
            capabilities=_CHAT_TOOLS,
        ),
        ModelMetadata(
            id="qwen2.5-7b",
            name="qwen2.5:7b",
            display_name="Qwen 2.5 7B",
            family="qwen",
            description="Multilingual chat model with tool calling.",
            parameter_size="7B",
            size=int(4.7 * GB),
            capabilities=_CHAT_TOOLS,
        ),
        ModelMetadata(
            id="qwen2.5vl-7b",
            name="qwen2.5vl:7b",
            display_name="Qwen 2.5 VL 7B",
            family="qwen2.5vl",
            description="Vision-language model.",
            parameter_size="7B",
            size=6 * GB,
            capabilities=_VISION_CHAT,
        ),
        ModelMetadata(
            id="mistral-7b",
            name="mistral:7b",
            display_name="Mistral 7B",
            family="mistral",
            description="Fast chat model with tool calling.",
            parameter_size="7B",
            size=int(4.1 * GB),
            capabilities=_CHAT_TOOLS,
        ),
        ModelMetadata(
            id="gemma3-4b",
            name="gemma3:4b",
            display_name="Gemma 3 4B",
            family="gemma",
            description="Compact multimodal model.",
            parameter_size="4B",
            size=int(3.3 * GB),
            capabilities=_VISION_CHAT,
        ),
        ModelMetadata(
            id="llava-7b",
            name="llava:7b",
            display_name="LLaVA 7B",
            family="llava",
            description="Vision assistant model.",
            parameter_size="7B",
            size=int(4.7 * GB),
            capabilities=_VISION_CHAT,
        ),
        ModelMetadata(
            id="phi3-mini",
            name="phi3:mini",
            display_name="Phi-3 Mini",
            family="phi",
            description="Very small chat model.",
            parameter_size="3.8B",
            size=int(2.2 * GB),
            capabilities=_CHAT_ONLY,
        ),
        ModelMetadata(
            id="deepseek-r1-7b",
            name="deepseek-r1:7b",
            display_name="DeepSeek R1 7B",
            family="deepseek",
            description="Reasoning model.",
            parameter_size="7B",
            size=int(4.7 * GB),
            capabilities=_CHAT_ONLY,
        ),
        ModelMetadata(
            id="nomic-embed-text",
            name="nomic-embed-text:latest",
            display_name="Nomic Embed Text",
            family="nomic-embed",
            description="Text embedding model.",
            parameter_size="137M",
            size=274 * MB,
            capabilities=_EMBEDDING,
        ),
        ModelMetadata(
            id="claude-sonnet",
            name="claude-sonnet-4-5",
            display_name="Claude Sonnet",
            family="claude",
            description="Hosted Anthropic model.",
            capabilities=_VISION_TOOLS,
        ),
    ]

    def __init__(self, models: Iterable[ModelMetadata] | None = None):
        """Initialize the registry.

        Args:
            models: Entries to use instead of the built-in table
        """
        self.models: list[ModelMetadata] = list(models) if models is not None else list(self.MODELS)

    def find_model_metadata(self, model_name: str) -> ModelMetadata | None:
        """Find metadata by exact name, id, base name, then family substring."""
        for model in self.models:
            if model.name == model_name:
                return model

        for model in self.models:
            if model.id == model_name:
                return model

        base_name = _base_name(model_name)
        for model in self.models:
            if _base_name(model.name) == base_name:
                return model

        lowered = model_name.lower()
        for model in self.models:
            if model.family and model.family in lowered:
                return model

        return None

    def supports_vision(self, model_name: str) -> bool:
        metadata = self.find_model_metadata(model_name)
        return metadata.capabilities.vision if metadata else False

    def supports_tool_calling(self, model_name: str) -> bool:
        metadata = self.find_model_metadata(model_name)
        return metadata.capabilities.tool_calling if metadata else False

    def get_recommended_models(self) -> list[ModelMetadata]:
        return [model for model in self.models if model.recommended]

    def get_models_by_capability(self, capability: Capability) -> list[ModelMetadata]:
        return [model for model in self.models if getattr(model.capabilities, capability)]

    def get_vision_models(self) -> list[ModelMetadata]:
        return self.get_models_by_capability("vision")

    def get_text_only_models(self) -> list[ModelMetadata]:
        return [model for model in self.models if not model.capabilities.vision]

    def get_available_models(self, installed_names: Iterable[str]) -> list[ModelMetadata]:
        """Registry models that are not installed under their name or base name."""
        installed = set(installed_names)
        installed_bases = {_base_name(name) for name in installed}

        return [
            model
            for model in self.models
            if model.name not in installed and _base_name(model.name) not in installed_bases
        ]


def _base_name(model_name: str) -> str:
    return model_name.split(":", 1)[0]


def format_model_size(size_bytes: int) -> str:
    """Format a model size for display."""
    gigabytes = size_bytes / GB
    if gigabytes >= 1:
        return f"{gigabytes:.1f} GB"
    return f"{size_bytes / MB:.0f} MB"


def get_capability_badges(metadata: ModelMetadata | None) -> list[str]:
    """Human-readable capability labels for a model."""
    if metadata is None:
        return []

    badges: list[str] = []
    if metadata.capabilities.vision:
        badges.append("Vision")
    if metadata.capabilities.chat:
        badges.append("Chat")
    if metadata.capabilities.completion:
        badges.append("Completion")
    if metadata.capabilities.embedding:
        badges.append("Embeddings")
    if metadata.capabilities.tool_calling:
        badges.append("Tools")
    return badges


_model_registry: ModelRegistry | None = None


def get_model_registry() -> ModelRegistry:
    """Get or create the shared model registry."""
    global _model_registry
    if _model_registry is None:
        _model_registry = ModelRegistry()
    return _model_registry
