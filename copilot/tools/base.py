"""Base types and definitions for tools."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from functools import cached_property
from typing import Any, Literal, Protocol

from pydantic import BaseModel, ConfigDict, create_model

ParameterType = Literal["string", "number", "boolean", "object", "array"]
ToolExecutor = Callable[[dict[str, Any]], Awaitable[Any]]

_PYTHON_TYPES: dict[str, Any] = {
    "string": str,
    "number": int | float,
    "boolean": bool,
    "object": dict[str, Any],
    "array": list[Any],
}


class ToolParameter(BaseModel):
    """One parameter a tool accepts."""

    name: str
    type: ParameterType
    description: str
    required: bool = False
    enum: list[str] | None = None


@dataclass
class ToolDefinition:
    """Definition of a tool the model may call."""

    name: str
    description: str
    executor: ToolExecutor
    parameters: list[ToolParameter] = field(default_factory=list)

    @cached_property
    def arguments_model(self) -> type[BaseModel]:
        """Pydantic model checking call arguments against the declared parameters."""
        fields: dict[str, Any] = {}
        for param in self.parameters:
            annotation = Literal[tuple(param.enum)] if param.enum else _PYTHON_TYPES[param.type]
            fields[param.name] = (annotation, ...) if param.required else (annotation | None, None)

        return create_model(
            f"{self.name}_arguments",
            __config__=ConfigDict(extra="allow"),
            **fields,
        )

    def parse_arguments(self, raw_args: dict[str, Any]) -> dict[str, Any]:
        """Validate call arguments.

        Arguments the model left out stay absent and undeclared ones pass
        through unchanged.

        Raises:
            ValidationError: If a required argument is missing or a value
                does not match its declared type or enum
        """
        parsed = self.arguments_model.model_validate(raw_args)
        return {**raw_args, **parsed.model_dump(exclude_unset=True)}

    def get_json_schema(self) -> dict[str, Any]:
        """Get the JSON schema describing this tool's arguments."""
        properties: dict[str, Any] = {}
        for param in self.parameters:
            prop: dict[str, Any] = {"type": param.type, "description": param.description}
            if param.enum:
                prop["enum"] = list(param.enum)
            properties[param.name] = prop

        return {
            "type": "object",
            "properties": properties,
            "required": [param.name for param in self.parameters if param.required],
        }


class ToolBackend(Protocol):
    """Runs a tool inside the browser and returns its raw result."""

    async def execute(self, tool_name: str, args: dict[str, Any]) -> Any:
        """Execute a tool call.

        Raises:
            Exception: If the browser could not run the tool
        """
        ...
