"""Tool registry for managing and dispatching tools."""

import logging
from typing import Any

from .base import Tool, ToolResult

logger = logging.getLogger(__name__)


class ToolRegistry:
    """Registry for available tools."""

    def __init__(self) -> None:
        self._tools: dict[str, Tool] = {}

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def register(self, tool: Tool) -> None:
        """Register a tool."""
        if tool.name in self._tools:
            raise ValueError(f"Tool '{tool.name}' already registered")
        self._tools[tool.name] = tool

    def get(self, name: str) -> Tool | None:
        """Get a tool by name."""
        return self._tools.get(name)

    def list_tools(self) -> list[str]:
        """List all registered tool names."""
        return list(self._tools)

    def get_tools_schema(self) -> list[dict[str, Any]]:
        """Get schemas for all tools (for LLM function calling)."""
        return [tool.get_schema() for tool in self._tools.values()]

    async def dispatch(self, tool_name: str, args: dict[str, Any]) -> ToolResult:
        """Run a tool by name.

        Unknown tools, invalid arguments and exceptions raised by the tool
        all come back as failed results.
        """
        tool = self._tools.get(tool_name)
        if tool is None:
            return ToolResult(success=False, output="", error=f"Unknown tool: {tool_name}")

        valid, error = tool.validate_args(args)
        if not valid:
            return ToolResult(success=False, output="", error=error)

        try:
            return await tool.execute(**args)
        except Exception as e:
            logger.warning(f"Tool {tool_name} failed: {e}")
            return ToolResult(
                success=False,
                output="",
                error=f"Tool execution failed: {e}",
            )
