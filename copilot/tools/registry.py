"""Tools registry: declarations, provider schemas and execution."""

from collections.abc import Iterable
from typing import Any

from pydantic import ValidationError

from copilot.models.messages import ToolResult
from copilot.tools.base import ToolBackend, ToolDefinition
from copilot.tools.browser import create_browser_tools
from copilot.utils.logging import get_logger

logger = get_logger(__name__)


def tools_to_provider_format(tools: Iterable[ToolDefinition]) -> list[dict[str, Any]]:
    """Convert tools to the function-calling format used by Ollama and OpenAI."""
    return [
        {
            "type": "function",
            "function": {
                "name": tool.name,
                "description": tool.description,
                "parameters": tool.get_json_schema(),
            },
        }
        for tool in tools
    ]


class ToolsRegistry:
    """Registry for the tools offered to the model."""

    def __init__(self, backend: ToolBackend | None = None, tools: Iterable[ToolDefinition] | None = None):
        """Initialize the registry.

        Args:
            backend: Backend used by the default browser tools
            tools: Explicit tool list, registered instead of the defaults
        """
        self._tools: dict[str, ToolDefinition] = {}

        if tools is None:
            if backend is None:
                raise ValueError("Must provide a tool backend or an explicit tool list")
            tools = create_browser_tools(backend)

        for tool in tools:
            self.register_tool(tool)

    def register_tool(self, tool: ToolDefinition) -> None:
        """Register a tool, replacing any tool with the same name."""
        self._tools[tool.name] = tool

    def get_tool(self, name: str) -> ToolDefinition | None:
        return self._tools.get(name)

    def get_tools(self) -> list[ToolDefinition]:
        return list(self._tools.values())

    def get_tool_names(self) -> list[str]:
        """Get list of all registered tool names."""
        return list(self._tools.keys())

    def has_tool(self, name: str) -> bool:
        """Check if a tool is registered."""
        return name in self._tools

    def to_provider_format(self) -> list[dict[str, Any]]:
        return tools_to_provider_format(self._tools.values())

    async def execute_tool(self, name: str, args: dict[str, Any]) -> ToolResult:
        """Execute one tool call.

        Never raises: unknown tools, invalid arguments and backend failures
        come back with `error` set and `result` of None. Invalid arguments
        never reach the backend.
        """
        tool = self._tools.get(name)
        if tool is None:
            logger.error(f"Unknown tool requested: {name}")
            return ToolResult(name=name, result=None, error=f"Unknown tool: {name}")

        try:
            args = tool.parse_arguments(args)
        except ValidationError as e:
            error = f"Invalid arguments for {name}: {_describe_validation_error(e)}"
            logger.warning(error)
            return ToolResult(name=name, result=None, error=error)

        logger.debug(f"Executing tool: {name} with input: {args}")
        try:
            result = await tool.executor(args)
        except Exception as e:
            logger.error(f"Tool {name} failed: {e}")
            return ToolResult(name=name, result=None, error=str(e) or "Tool execution failed")

        logger.debug(f"Tool {name} succeeded: {str(result)[:100]}...")
        return ToolResult(name=name, result=result)


def _describe_validation_error(error: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(part) for part in err['loc']) or 'arguments'}: {err['msg']}" for err in error.errors()
    )


_tools_registry: ToolsRegistry | None = None


def get_tools_registry(backend: ToolBackend | None = None) -> ToolsRegistry:
    """Get or create the shared tools registry."""
    global _tools_registry

    if _tools_registry is None:
        if backend is None:
            raise ValueError("Must provide a tool backend for initial registry creation")
        _tools_registry = ToolsRegistry(backend)

    return _tools_registry
