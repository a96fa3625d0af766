"""Tool interface for LLM function calling."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

_JSON_TYPES: dict[str, tuple[type, ...]] = {
    "string": (str,),
    "integer": (int,),
    "number": (int, float),
    "boolean": (bool,),
}


@dataclass
class ToolResult:
    """Result from tool execution."""

    success: bool
    output: str
    error: str | None = None
    metadata: dict[str, Any] | None = None


class Tool(ABC):
    """Something the assistant can do on the user's behalf."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique tool name."""
        ...

    @property
    @abstractmethod
    def description(self) -> str:
        """Tool description for LLM."""
        ...

    @property
    @abstractmethod
    def parameters(self) -> dict[str, Any]:
        """JSON Schema for tool parameters."""
        ...

    @abstractmethod
    async def execute(self, **kwargs: Any) -> ToolResult:
        """Execute the tool with given arguments."""
        ...

    def get_schema(self) -> dict[str, Any]:
        """Get tool schema for LLM function calling."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }

    def validate_args(self, args: dict[str, Any]) -> tuple[bool, str | None]:
        """Check arguments against the parameter schema.

        Only required fields, primitive types and enums are checked.

        Returns:
            (valid, error_message)
        """
        properties = self.parameters.get("properties", {})

        for required in self.parameters.get("required", []):
            if required not in args:
                return False, f"Missing required argument: {required}"

        for key, value in args.items():
            schema = properties.get(key)
            if schema is None:
                continue
            expected = _JSON_TYPES.get(schema.get("type", ""))
            # bool is an int subclass
            if expected and (
                not isinstance(value, expected)
                or (isinstance(value, bool) and bool not in expected)
            ):
                return False, f"Argument '{key}' must be of type {schema['type']}"
            if "enum" in schema and value not in schema["enum"]:
                return False, f"Argument '{key}' must be one of: {', '.join(map(str, schema['enum']))}"

        return True, None
