"""Tools the assistant can call inside the browser."""

from copilot.tools.registry import ToolsRegistry, get_tools_registry, tools_to_provider_format

__all__ = ["ToolsRegistry", "get_tools_registry", "tools_to_provider_format"]
